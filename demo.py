#!/usr/bin/env python3
"""
End-to-end demo of tabula.

Walks through the engine on a small animals table:
1. Build a table under a shared context
2. Select rows with a predicate tree
3. Group, count and aggregate
4. Order with a rank column
5. Join against a second table and run a similarity join
6. Build a graph sequence from an edge table
7. Save and reload (text and binary)
"""

import logging
import tempfile
from pathlib import Path

from rich.console import Console

from tabula import (
    AttrAggr,
    GraphBridge,
    PredComp,
    Predicate,
    SimType,
    Table,
    TableContext,
    const_pred,
    load_bin,
    load_ss,
)
from tabula.rendering import render_graph_summary, render_groups, render_table

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
    datefmt="%H:%M:%S",
)
log = logging.getLogger("demo")

SCHEMA = [("Animal", str), ("Size", str), ("Location", str), ("Number", int)]


def main():
    console = Console(width=110)
    console.rule("[bold]tabula — End-to-End Demo")

    # ── 1. Build ─────────────────────────────────────────────────────────
    ctx = TableContext()
    animals = Table(SCHEMA, ctx)
    animals.extend([
        ("Lion", "big", "Africa", 1),
        ("Koala", "medium", "Australia", 1),
        ("Ant", "small", "Africa", 1),
        ("Elephant", "big", "Africa", 2),
        ("Kangaroo", "big", "Australia", 3),
    ])
    render_table(animals, console, title="1. Animals")

    # ── 2. Select ────────────────────────────────────────────────────────
    pred = Predicate(
        (const_pred("Location", PredComp.EQ, "Africa") & const_pred("Size", PredComp.EQ, "big"))
        | (const_pred("Location", PredComp.EQ, "Australia")
           & const_pred("Size", PredComp.EQ, "medium"))
    )
    matched = animals.select(pred, remove=False)
    console.print(f"\n2. Predicate {pred!r} matches rows {matched}")

    # ── 3. Group / count / aggregate ─────────────────────────────────────
    animals.group(["Location"], "LocGroup")
    animals.count("LocCount", "Location")
    animals.aggregate(["Location"], AttrAggr.SUM, "Number", "LocTotal")
    render_groups(animals, "LocGroup", console)
    summary = animals.aggregate_table(["Location"], {"Number": "sum", "Animal": "count"})
    render_table(summary, console, title="3. Per-location summary")

    # ── 4. Order ─────────────────────────────────────────────────────────
    animals.order(["Location", "Number"], "Rank", reset_rank_by_msc=True)
    render_table(animals.project(["Animal", "Location", "Number", "Rank"]), console,
                 title="4. Ordered by Location, Number")

    # ── 5. Joins ─────────────────────────────────────────────────────────
    habitats = Table([("Location", str), ("Lat", float), ("Lon", float)], ctx)
    habitats.extend([
        ("Africa", -1.29, 36.82),
        ("Australia", -33.87, 151.21),
    ])
    joined = animals.join("Location", habitats, "Location")
    log.info(f"Joined {len(animals)} animals with {len(habitats)} habitats -> {len(joined)} rows")
    near = habitats.self_sim_join(["Lat", "Lon"], "Km", SimType.HAVERSINE, 20000.0)
    render_table(near.project(["Location-1", "Location-2", "Km"]), console,
                 title="5. Habitat distances (km)")

    # ── 6. Graph sequence ────────────────────────────────────────────────
    edges = Table([("Src", int), ("Dst", int), ("Ts", int)], ctx)
    edges.extend([(1, 2, 1), (2, 3, 2), (1, 3, 3), (3, 1, 5), (4, 1, 6)])
    bridge = GraphBridge(edges, "Src", "Dst", edge_attrs=["Ts"])
    graphs = [bridge.to_graph_sequence_iterator("Ts", AttrAggr.FIRST, 2, 2)]
    graphs.extend(bridge)
    render_graph_summary(graphs, console, title="6. Graphs per 2-tick window")

    # ── 7. Persistence ───────────────────────────────────────────────────
    with tempfile.TemporaryDirectory() as tmp:
        text_path = Path(tmp) / "animals.tsv"
        bin_path = Path(tmp) / "animals.bin"
        animals.save_ss(text_path)
        animals.save_bin(bin_path)
        from_text = load_ss(animals.schema, text_path, ctx, has_title_line=True)
        from_bin = load_bin(bin_path, ctx)
    console.print(f"\n7. Reloaded {len(from_text)} rows from text, "
                  f"{len(from_bin)} rows from binary "
                  f"(same order: {from_bin.row_ids() == animals.row_ids()})")


if __name__ == "__main__":
    main()
