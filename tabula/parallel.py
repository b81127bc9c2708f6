"""
Chunked data-parallel helpers.

An operation that qualifies for parallel execution splits its row-id list
into contiguous chunks, computes a partial result per chunk on a thread
pool, and merges the partial results in chunk order, so the merged result
does not depend on which worker finished first.
"""

import logging
from concurrent.futures import ThreadPoolExecutor

logger = logging.getLogger(__name__)


def partition_ranges(n, num_partitions):
    """
    Split range(n) into at most `num_partitions` contiguous (start, end)
    half-open ranges of near-equal size.
    """
    num_partitions = max(1, min(num_partitions, n))
    if n == 0:
        return []
    size, extra = divmod(n, num_partitions)
    ranges = []
    start = 0
    for i in range(num_partitions):
        end = start + size + (1 if i < extra else 0)
        ranges.append((start, end))
        start = end
    return ranges


def chunked(items, num_chunks):
    return [items[start:end] for start, end in partition_ranges(len(items), num_chunks)]


def map_chunks(fn, items, config):
    """
    Apply `fn` to contiguous chunks of `items` on `config.num_workers`
    threads. Returns the per-chunk results in chunk order.
    """
    chunks = chunked(items, config.num_chunks)
    if len(chunks) <= 1:
        return [fn(chunk) for chunk in chunks]
    logger.debug(f"Running {getattr(fn, '__name__', 'task')} over {len(chunks)} chunks "
                 f"on {config.num_workers} workers")
    with ThreadPoolExecutor(max_workers=config.num_workers) as pool:
        futures = [pool.submit(fn, chunk) for chunk in chunks]
        return [future.result() for future in futures]
