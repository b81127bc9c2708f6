"""
Rendering — Rich tables for tabula tables and graph summaries.
"""

from rich.table import Table as RichTable
from rich.text import Text

from .schema import AttrType, strip_ordinal


def _cell(attr_type, value):
    if attr_type is AttrType.FLT:
        return Text(f"{value:,.4f}", style="cyan")
    if attr_type is AttrType.INT:
        return Text(str(value), style="green")
    return str(value)


def render_table(table, console, title=None, max_rows=20):
    """
    Render the first `max_rows` valid rows of `table` (logical order).

    Numeric columns are right-aligned; a footer line reports how many rows
    were left out.
    """
    tbl = RichTable(
        title=title or f"Table ({table.num_valid_rows} rows)",
        title_style="bold white",
        show_header=True,
        header_style="bold cyan",
    )
    schema = table.schema
    for name, attr_type in schema:
        tbl.add_column(strip_ordinal(name), justify="right" if attr_type.is_numeric else "left")

    shown = 0
    for row in table:
        if max_rows is not None and shown >= max_rows:
            break
        tbl.add_row(*[_cell(t, row[n]) for n, t in schema])
        shown += 1

    console.print(tbl)
    hidden = table.num_valid_rows - shown
    if hidden > 0:
        console.print(f"[dim]... {hidden} more rows[/dim]")


def render_groups(table, name, console):
    """Render the groups of the group statement `name`: key, size, row ids."""
    tbl = RichTable(
        title=f"Groups — {strip_ordinal(name)}",
        title_style="bold white",
        header_style="bold cyan",
    )
    tbl.add_column("Key", style="bold")
    tbl.add_column("Rows", justify="right", width=8)
    tbl.add_column("Row ids")
    for key, rows in table.groups(name).items():
        label = ", ".join(str(v) for v in key)
        tbl.add_row(label, str(len(rows)), " ".join(str(r) for r in rows))
    console.print(tbl)


def render_graph_summary(graphs, console, title="Graph sequence"):
    """One line per graph: index, node count, edge count."""
    tbl = RichTable(title=title, title_style="bold white", header_style="bold cyan")
    tbl.add_column("#", justify="right", width=4)
    tbl.add_column("Nodes", justify="right")
    tbl.add_column("Edges", justify="right")
    for i, graph in enumerate(graphs):
        style = "dim" if graph.num_edges == 0 else None
        tbl.add_row(str(i), str(graph.num_nodes), str(graph.num_edges), style=style)
    console.print(tbl)
