"""
Graph bridge — turns a row selection into nodes, edges and attributes.

The table never builds a graph object itself. GraphBridge.build_graph()
returns a GraphData record (node ids, edges keyed by physical row id, and
per-node / per-edge attribute maps) for whichever graph library consumes it.
Node ids are the column value for int columns, the string-pool id for string
columns, and a sequential id per distinct value for float columns.

Row partitioning helpers split the table into buckets (sliding or expanding
windows over a split column, explicit intervals, or groups) so that a caller
can request one graph per bucket, either all at once or lazily:

    bridge = GraphBridge(table, "src", "dst", edge_attrs=["weight"])
    first = bridge.to_graph_sequence_iterator("ts", AttrAggr.FIRST, 10, 5)
    for graph in bridge:          # the remaining graphs
        ...
"""

import logging
from dataclasses import dataclass, field
from functools import partial

from .aggregation import AttrAggr, aggregate_vector, to_policy
from .errors import EmptyTableError, IncompatibleSchemaError, SchemaError, StateError
from .grouping import group_rows
from .parallel import map_chunks
from .schema import AttrType, normalize_col_name, strip_ordinal

logger = logging.getLogger(__name__)


@dataclass
class GraphData:
    """Nodes, edges and attributes of one graph."""
    nodes: list = field(default_factory=list)
    edges: dict = field(default_factory=dict)          # edge id -> (src node, dst node)
    node_attrs: dict = field(default_factory=dict)     # attr -> {node: value}
    edge_attrs: dict = field(default_factory=dict)     # attr -> {edge id: value}
    node_values: dict = field(default_factory=dict)    # node -> column value

    @property
    def num_nodes(self):
        return len(self.nodes)

    @property
    def num_edges(self):
        return len(self.edges)


def _edge_chunk(src_col, dst_col, rows):
    return list(zip(rows, src_col.take(rows).tolist(), dst_col.take(rows).tolist()))


class GraphBridge:
    """
    Builds graphs from a table's rows.

    src_col / dst_col: columns holding the endpoint values of each edge; they
        must share one type
    edge_attrs: columns copied onto each edge
    src_node_attrs / dst_node_attrs: columns describing the source (resp.
        destination) node of each row
    node_attrs: (src column, dst column) pairs describing the same node
        attribute from either end of an edge
    """

    def __init__(self, table, src_col, dst_col, edge_attrs=(), src_node_attrs=(),
                 dst_node_attrs=(), node_attrs=()):
        src_type = table.get_col_type(src_col)
        dst_type = table.get_col_type(dst_col)
        if src_type is not dst_type:
            raise IncompatibleSchemaError(
                f"Source column {src_col} is {src_type.value}, "
                f"destination column {dst_col} is {dst_type.value}")
        for name in list(edge_attrs) + list(src_node_attrs) + list(dst_node_attrs):
            table.resolve_col(name)
        for src_attr, dst_attr in node_attrs:
            if table.get_col_type(src_attr) is not table.get_col_type(dst_attr):
                raise IncompatibleSchemaError(
                    f"Node attribute columns {src_attr} and {dst_attr} differ in type")

        self.table = table
        self.src_col = normalize_col_name(src_col)
        self.dst_col = normalize_col_name(dst_col)
        self.node_type = src_type
        self.edge_attrs = list(edge_attrs)
        self.src_node_attrs = list(src_node_attrs)
        self.dst_node_attrs = list(dst_node_attrs)
        self.node_attrs = [tuple(pair) for pair in node_attrs]
        self._buckets = None
        self._cursor = -1
        self._policy = AttrAggr.FIRST

    # ── Single graph ────────────────────────────────────────────────────

    def _edge_rows(self, rows):
        _, src = self.table._col(self.src_col)
        _, dst = self.table._col(self.dst_col)
        config = self.table.context.config
        if config.parallel:
            parts = map_chunks(partial(_edge_chunk, src, dst), rows, config)
            return [edge for part in parts for edge in part]
        return _edge_chunk(src, dst, rows)

    def build_graph(self, row_ids=None, policy=AttrAggr.FIRST):
        """
        Graph over `row_ids` (all valid rows if None). Each row becomes one
        edge; conflicting values of a node attribute seen on several rows
        are folded with `policy`.
        """
        policy = to_policy(policy)
        table = self.table
        if row_ids is None:
            rows = table.row_ids()
        else:
            rows = [int(r) for r in row_ids if table.is_row_valid(r)]

        graph = GraphData()
        float_ids = {}

        def node_id(value):
            if self.node_type is AttrType.FLT:
                nid = float_ids.get(value)
                if nid is None:
                    nid = float_ids[value] = len(float_ids)
            else:
                nid = value
            if nid not in graph.node_values:
                graph.nodes.append(nid)
                graph.node_values[nid] = (table.context.resolve(value)
                                          if self.node_type is AttrType.STR else value)
            return nid

        src_nodes = {}
        dst_nodes = {}
        for row, src_val, dst_val in self._edge_rows(rows):
            s = node_id(src_val)
            d = node_id(dst_val)
            graph.edges[row] = (s, d)
            src_nodes[row] = s
            dst_nodes[row] = d

        for name in self.edge_attrs:
            attr = strip_ordinal(normalize_col_name(name))
            graph.edge_attrs[attr] = {row: table.get_val(name, row) for row in graph.edges}

        collected = {}
        for name in self.src_node_attrs:
            self._collect(collected, strip_ordinal(normalize_col_name(name)), name, src_nodes)
        for name in self.dst_node_attrs:
            self._collect(collected, strip_ordinal(normalize_col_name(name)), name, dst_nodes)
        for src_attr, dst_attr in self.node_attrs:
            attr = strip_ordinal(normalize_col_name(src_attr))
            self._collect(collected, attr, src_attr, src_nodes)
            self._collect(collected, attr, dst_attr, dst_nodes)
        for attr, per_node in collected.items():
            graph.node_attrs[attr] = {nid: aggregate_vector(values, policy)
                                      for nid, values in per_node.items()}

        logger.debug(f"Built graph from {len(rows)} rows: "
                     f"{graph.num_nodes} nodes, {graph.num_edges} edges")
        return graph

    def _collect(self, collected, attr, col, row_to_node):
        per_node = collected.setdefault(attr, {})
        for row, nid in row_to_node.items():
            per_node.setdefault(nid, []).append(self.table.get_val(col, row))

    # ── Row partitioning ────────────────────────────────────────────────

    def _split_values(self, split_col):
        attr_type, col = self.table._col(split_col)
        if attr_type is AttrType.STR:
            raise SchemaError(f"Split column {split_col} must be numeric")
        rows = self.table.row_ids()
        return rows, col.take(rows).tolist()

    def fill_buckets_by_window(self, split_col, window, jump, start=None, end=None):
        """
        Row-id buckets over windows of `split_col` values.

        With jump > 0, bucket k holds rows whose value lies in
        [start + k*jump, start + k*jump + window); with jump == 0 the windows
        expand: bucket k covers [start, start + (k+1)*window). `start` and
        `end` default to the column's minimum and maximum.
        """
        if window <= 0 or jump < 0:
            raise ValueError(f"Invalid window={window}, jump={jump}")
        rows, values = self._split_values(split_col)
        if not rows:
            raise EmptyTableError("Cannot split an empty table into windows")
        start = min(values) if start is None else start
        end = max(values) if end is None else end

        step = jump if jump else window
        num_buckets = int((end - start) // step) + 1 if end >= start else 0
        buckets = [[] for _ in range(num_buckets)]
        for row, val in zip(rows, values):
            if val < start or val > end:
                continue
            if jump == 0:
                first = int((val - start) // window)
                for k in range(first, num_buckets):
                    buckets[k].append(row)
            else:
                for k in range(num_buckets):
                    lo = start + k * jump
                    if lo <= val < lo + window:
                        buckets[k].append(row)
        return buckets

    def fill_buckets_by_interval(self, split_col, intervals):
        """One bucket per half-open (lo, hi) interval of `split_col` values."""
        rows, values = self._split_values(split_col)
        buckets = [[] for _ in intervals]
        for row, val in zip(rows, values):
            for k, (lo, hi) in enumerate(intervals):
                if lo <= val < hi:
                    buckets[k].append(row)
        return buckets

    def fill_buckets_by_group(self, group_col):
        """One bucket per distinct value of `group_col`, in ascending key order."""
        grouping = group_rows(self.table, [group_col], config=self.table.context.config)
        return [grouping[key] for key in sorted(grouping)]

    # ── Graph sequences ─────────────────────────────────────────────────

    def graphs_from_buckets(self, buckets, policy=AttrAggr.FIRST):
        return [self.build_graph(rows, policy) for rows in buckets]

    def to_graph_sequence(self, split_col, policy, window, jump, start=None, end=None):
        buckets = self.fill_buckets_by_window(split_col, window, jump, start, end)
        return self.graphs_from_buckets(buckets, policy)

    def to_var_graph_sequence(self, split_col, policy, intervals):
        return self.graphs_from_buckets(self.fill_buckets_by_interval(split_col, intervals), policy)

    def to_graph_per_group(self, group_col, policy):
        return self.graphs_from_buckets(self.fill_buckets_by_group(group_col), policy)

    def _start_sequence(self, buckets, policy):
        if not buckets:
            raise StateError("Graph sequence is empty")
        self._buckets = buckets
        self._policy = to_policy(policy)
        self._cursor = 0
        logger.debug(f"Started graph sequence of {len(buckets)} graphs")
        return self.build_graph(buckets[0], self._policy)

    def to_graph_sequence_iterator(self, split_col, policy, window, jump, start=None, end=None):
        """Start a lazy window sequence; returns its first graph."""
        buckets = self.fill_buckets_by_window(split_col, window, jump, start, end)
        return self._start_sequence(buckets, policy)

    def to_var_graph_sequence_iterator(self, split_col, policy, intervals):
        return self._start_sequence(self.fill_buckets_by_interval(split_col, intervals), policy)

    def to_graph_per_group_iterator(self, group_col, policy):
        return self._start_sequence(self.fill_buckets_by_group(group_col), policy)

    def is_last_graph(self):
        if self._buckets is None:
            raise StateError("No graph sequence in progress")
        return self._cursor >= len(self._buckets) - 1

    def next_graph(self):
        """The graph after the last one returned by the sequence."""
        if self.is_last_graph():
            raise StateError("Graph sequence already exhausted")
        self._cursor += 1
        return self.build_graph(self._buckets[self._cursor], self._policy)

    def __iter__(self):
        return self

    def __next__(self):
        if self.is_last_graph():
            raise StopIteration
        return self.next_graph()
