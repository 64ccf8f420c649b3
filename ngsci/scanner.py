"""
Windowed scan of an alignment store.

Every chromosome is cut into blocks of ``block_size`` bases. For each block the
reads overlapping the block, extended upstream by the read length (the buffer),
are fetched once and every base of the block is scored from the reads covering
it. Blocks are independent tasks; their results are merged back in block
order.
"""

import logging
import math
import multiprocessing
from concurrent.futures import ProcessPoolExecutor, as_completed
from typing import NamedTuple

import numpy as np
from tqdm import tqdm

from ngsci.errors import ConfigurationError
from ngsci.export import write_results
from ngsci.metrics import get_metric, METRICS
from ngsci.read import Chemistry, resolve_read
from ngsci.readlength import estimate_read_length

logger = logging.getLogger(__name__)


class Block(NamedTuple):
    index: int
    window_start: int
    window_stop: int
    effective_start: int


class ScanConfig(NamedTuple):
    chemistry: Chemistry
    block_size: int
    buffer: int
    metric: str


def block_count(length: int, block_size: int) -> int:
    return math.ceil(length / block_size)


def block_bounds(length: int, block_size: int, buffer: int, index: int) -> Block:
    """
    Window of block ``index``. The fetch window reaches ``buffer`` bases
    upstream of the block, only [effective_start, window_stop) is reported.
    """
    window_start = max(0, index * block_size - buffer)
    window_stop = min((index + 1) * block_size, length)
    effective_start = window_start + buffer if window_start > 0 else window_start
    # buffer >= block start: the window starts at 0 but bases before the block belong to earlier blocks
    effective_start = max(effective_start, index * block_size)
    return Block(index, window_start, window_stop, effective_start)


def score_block(store, chrom: str, length: int, index: int, config: ScanConfig, metric=None) -> dict:
    """
    Score every base of one block.

    Returns {strand_key: [(base, *score), ...]} for every strand key of the
    configured chemistry, bases in increasing order.
    """
    if metric is None:
        metric = get_metric(config.metric, config.buffer)
    block = block_bounds(length, config.block_size, config.buffer, index)
    keys = config.chemistry.strand_keys
    results = {key: [] for key in keys}

    reads = []
    for alignment in store.fetch(chrom, block.window_start, block.window_stop):
        read = resolve_read(alignment, config.chemistry)
        if read is not None:
            reads.append(read)
    reads.sort(key=lambda r: r.start)

    starts = np.fromiter((r.start for r in reads), dtype=np.int64, count=len(reads))
    stops = np.fromiter((r.stop for r in reads), dtype=np.int64, count=len(reads))
    if not metric.inclusive_stop:
        stops = stops - 1
    zero = metric.zero

    for base in range(block.effective_start, block.window_stop):
        # reads are sorted by start, so the candidates are a prefix
        candidates = np.searchsorted(starts, base, side='right')
        covering = np.flatnonzero(stops[:candidates] >= base)
        if len(covering) == 0:
            for key in keys:
                results[key].append((base, *zero))
            continue

        groups = {key: [] for key in keys}
        for i in covering:
            groups[reads[i].strand].append(reads[i])
        for key in keys:
            group = groups[key]
            score = metric.score(group) if group else zero
            results[key].append((base, *score))

    return results


def merge_blocks(blocks, keys) -> dict:
    """Concatenate per-block results in block index order."""
    merged = {key: [] for key in keys}
    for block in blocks:
        for key in keys:
            merged[key].extend(block[key])
    return merged


def scan_chromosome(store, chrom: str, length: int, config: ScanConfig, metric=None, progress=False) -> dict:
    """Score every base of one chromosome, block by block, in the calling process."""
    if metric is None:
        metric = get_metric(config.metric, config.buffer)
    blocks = [
        score_block(store, chrom, length, i, config, metric)
        for i in tqdm(range(block_count(length, config.block_size)), desc=chrom,
                      unit='blocks', disable=not progress)
    ]
    return merge_blocks(blocks, config.chemistry.strand_keys)


# Worker process state, set once per process by _init_worker
_STORE = None
_CONFIG = None
_METRIC = None


def _init_worker(store, config: ScanConfig):
    global _STORE, _CONFIG, _METRIC
    _STORE = store
    _CONFIG = config
    _METRIC = get_metric(config.metric, config.buffer)


def _score_block_task(chrom, length, index):
    return index, score_block(_STORE, chrom, length, index, _CONFIG, _METRIC)


class ComplexityIndex:
    """
    Per-base complexity index of an alignment store.

    Holds the run configuration (chromosome lengths, read length, chemistry,
    block size, worker count, metric) and, once ``run`` has been called, the
    results: {chrom: {strand_key: [(base, *score), ...]}}.
    """

    def __init__(self, store, lengths, strand=None, threads=1, metric='ngsci',
                 block_size=None, read_length=None, log=None, progress=True):
        self.log = log or logger
        self.store = store
        self.chroms = dict(lengths)
        self.chemistry = Chemistry.parse(strand)

        if not isinstance(threads, int) or threads < 1:
            raise ConfigurationError(f"Number of threads must be a positive integer, got {threads!r}")
        self.threads = threads

        if not isinstance(metric, str) or metric.lower() not in METRICS:
            raise ConfigurationError(f"Unknown metric {metric!r}, expected one of: {', '.join(METRICS)}")
        self.metric_name = metric.lower()

        if block_size is None:
            block_size = METRICS[self.metric_name].default_block_size
        if not isinstance(block_size, int) or block_size < 1:
            raise ConfigurationError(f"Block size must be a positive integer, got {block_size!r}")
        self.block_size = block_size

        if read_length is None:
            read_length = estimate_read_length(store, self.block_size)
        self.read_length = read_length
        self.metric = get_metric(self.metric_name, read_length)

        self.progress = progress
        self.results = None
        self.log.info(
            f"{self.metric_name.upper()}: {len(self.chroms)} chromosome(s), read length {self.read_length}, "
            f"block size {self.block_size}, strand {self.chemistry.value}, {self.threads} thread(s)"
        )

    @property
    def config(self) -> ScanConfig:
        return ScanConfig(self.chemistry, self.block_size, self.read_length, self.metric_name)

    @property
    def strand_keys(self) -> tuple:
        return self.chemistry.strand_keys

    def run(self) -> dict:
        """Scan every chromosome. Any failing block aborts the whole run."""
        if self.threads == 1:
            results = self._run_serial()
        else:
            results = self._run_parallel()
        self.results = results
        return results

    def _run_serial(self):
        config = self.config
        results = {}
        for chrom, length in self.chroms.items():
            self.log.debug(f"Scanning {chrom} ({length} bases)")
            results[chrom] = scan_chromosome(self.store, chrom, length, config, self.metric, self.progress)
        return results

    def _run_parallel(self):
        config = self.config
        results = {}
        # spawn: every worker unpickles the store and opens its own handle
        executor = ProcessPoolExecutor(max_workers=self.threads, mp_context=multiprocessing.get_context('spawn'),
                                       initializer=_init_worker, initargs=(self.store, config))
        try:
            for chrom, length in self.chroms.items():
                self.log.debug(f"Scanning {chrom} ({length} bases) with {self.threads} workers")
                n = block_count(length, self.block_size)
                blocks = [None] * n
                futures = [executor.submit(_score_block_task, chrom, length, i) for i in range(n)]
                for future in tqdm(as_completed(futures), total=n, desc=chrom,
                                   unit='blocks', disable=not self.progress):
                    index, block = future.result()
                    blocks[index] = block
                results[chrom] = merge_blocks(blocks, self.strand_keys)
        except BaseException:
            executor.shutdown(wait=True, cancel_futures=True)
            raise
        executor.shutdown(wait=True)
        return results

    def export(self, outfile):
        """Write the results to ``outfile``; returns None if ``run`` was never called."""
        if self.results is None:
            return None
        write_results(self.results, outfile, self.metric)
        return outfile
