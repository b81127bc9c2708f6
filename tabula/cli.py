"""
Command line entry point.

    python -m tabula show animals.tsv --schema animal:str,size:str,location:str,n:int
    python -m tabula show trades.csv --schema sym:str,qty:int,px:float \\
        --sep , --header --order-by px --desc --limit 10
    python -m tabula group animals.tsv --schema ... --by location
    python -m tabula aggregate trades.csv --schema ... --by sym --agg sum:qty --agg mean:px
"""

import argparse
import logging
import sys

from rich.console import Console

from .aggregation import AttrAggr
from .context import TableContext, ExecutionConfig
from .errors import TableError
from .io import load_ss
from .rendering import render_groups, render_table
from .schema import parse_schema

logger = logging.getLogger(__name__)


def _add_load_args(p):
    p.add_argument("file", help="Delimited text file")
    p.add_argument("--schema", required=True,
                   help="Comma separated NAME:TYPE pairs (types: int, float, str)")
    p.add_argument("--sep", default="\t", help="Field separator (default: tab)")
    p.add_argument("--header", action="store_true", help="File starts with a title line")
    p.add_argument("--limit", type=int, default=20, help="Rows to display (default: 20)")


def build_parser():
    parser = argparse.ArgumentParser(
        prog="tabula",
        description="Inspect delimited files with the tabula table engine",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    parser.add_argument("--parallel", action="store_true",
                        help="Run grouping and ordering on a thread pool")

    sub = parser.add_subparsers(dest="command")

    # show
    show_p = sub.add_parser("show", help="Print the rows of a file")
    _add_load_args(show_p)
    show_p.add_argument("--order-by", action="append", default=[],
                        help="Order by column (repeatable, most significant first)")
    show_p.add_argument("--desc", action="store_true", help="Descending order")

    # group
    group_p = sub.add_parser("group", help="Show the groups of one or more columns")
    _add_load_args(group_p)
    group_p.add_argument("--by", action="append", required=True, help="Group-by column")

    # aggregate
    agg_p = sub.add_parser("aggregate", help="Summarise groups")
    _add_load_args(agg_p)
    agg_p.add_argument("--by", action="append", required=True, help="Group-by column")
    agg_p.add_argument("--agg", action="append", required=True, metavar="POLICY:COLUMN",
                       help=f"Aggregation, policy one of {[p.value for p in AttrAggr]}")

    return parser


def _load(args, context):
    schema = parse_schema(args.schema)
    return load_ss(schema, args.file, context, args.sep, args.header)


def cmd_show(args, context, console):
    table = _load(args, context)
    if args.order_by:
        table.order(args.order_by, asc=not args.desc)
    render_table(table, console, title=args.file, max_rows=args.limit)


def cmd_group(args, context, console):
    table = _load(args, context)
    table.group(args.by, "_group")
    render_groups(table, "_group", console)


def cmd_aggregate(args, context, console):
    table = _load(args, context)
    agg_dict = {}
    for spec in args.agg:
        policy, sep, col = spec.partition(":")
        if not sep:
            raise ValueError(f"Expected POLICY:COLUMN, got {spec!r}")
        agg_dict[col] = policy
    summary = table.aggregate_table(args.by, agg_dict)
    render_table(summary, console, title=f"{args.file} by {', '.join(args.by)}",
                 max_rows=args.limit)


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )
    console = Console()
    context = TableContext(ExecutionConfig(parallel=args.parallel))

    commands = {"show": cmd_show, "group": cmd_group, "aggregate": cmd_aggregate}
    if args.command not in commands:
        parser.print_help()
        return 1
    try:
        commands[args.command](args, context, console)
    except (TableError, ValueError, OSError) as e:
        logger.debug("Command failed", exc_info=True)
        console.print(f"[bold red]Error:[/bold red] {e}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
