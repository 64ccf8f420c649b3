"""
Complexity metrics.

A metric reduces the set of reads covering a single base to a tuple of
scores. All three variants deduplicate the reads by start coordinate, reduce
every pair of unique reads to a number (shared or non-shared length) and
normalize the sum with constants derived from the nominal read length.

    lci     legacy library complexity index: unique starts x average overlap
    sci     sequencing complexity index, overlap based
    ngsci   next-generation sequencing complexity index, dissimilarity based
"""

import numpy as np

from ngsci.errors import ConfigurationError, InvariantViolation


def overlap(r1, r2) -> int:
    """Number of bases shared by two reads. Containment is not special-cased."""
    if r1.start > r2.start:
        return r2.stop - r1.start
    return r1.stop - r2.start


def dissimilarity(r1, r2) -> int:
    """Number of bases covered by only one of two reads."""
    if r1.start > r2.start:
        if r1.stop < r2.stop:  # r1 inside r2
            return (r1.start - r2.start) + (r2.stop - r1.stop)
        return r1.start - r2.start
    if r1.stop > r2.stop:  # r2 inside r1
        return (r2.start - r1.start) + (r1.stop - r2.stop)
    return r2.start - r1.start


def deduplicate_by_start(reads):
    """
    Keep one read per start coordinate, the longest one. Returns the kept reads
    sorted by start; among equally long reads the first encountered wins.
    """
    ordered = sorted(reads, key=lambda r: (r.start, -r.length))
    unique = []
    for read in ordered:
        if not unique or unique[-1].start != read.start:
            unique.append(read)
    return unique


def _coordinates(reads):
    starts = np.fromiter((r.start for r in reads), dtype=np.int64, count=len(reads))
    stops = np.fromiter((r.stop for r in reads), dtype=np.int64, count=len(reads))
    return starts, stops


def overlap_matrix(reads) -> np.ndarray:
    """Pairwise overlap of every read against every other read, zero diagonal."""
    starts, stops = _coordinates(reads)
    s1, s2 = starts[:, None], starts[None, :]
    e1, e2 = stops[:, None], stops[None, :]
    matrix = np.where(s1 > s2, e2 - s1, e1 - s2)
    np.fill_diagonal(matrix, 0)
    return matrix


def dissimilarity_matrix(reads) -> np.ndarray:
    """Pairwise dissimilarity of every read against every other read, zero diagonal."""
    starts, stops = _coordinates(reads)
    s1, s2 = starts[:, None], starts[None, :]
    e1, e2 = stops[:, None], stops[None, :]
    matrix = np.where(
        s1 > s2,
        np.where(e1 < e2, (s1 - s2) + (e2 - e1), s1 - s2),
        np.where(e1 > e2, (s2 - s1) + (e1 - e2), s2 - s1),
    )
    np.fill_diagonal(matrix, 0)
    return matrix


def summed_pairwise(matrix: np.ndarray) -> int:
    """Sum of a pairwise matrix over unordered pairs (strict upper triangle)."""
    if len(matrix) <= 1:
        return 0
    return int(np.triu(matrix, k=1).sum())


def max_summed_dissimilarity(read_length: int) -> float:
    """
    Summed dissimilarity of a read against the other reads at a fully saturated
    base (one unique read per possible start), summed over every start offset.
    """
    L = read_length
    r = np.arange(1, L + 1, dtype=np.float64)
    return float(np.sum(L ** 2 / 2 - L * r + L / 2 + r ** 2 - r))


class ComplexityMetric:
    """
    Base class of the per-base scoring strategies.

    Subclasses set ``name``, ``columns`` (export header after Chrom,Base,Strand),
    ``default_block_size`` and ``inclusive_stop`` (whether a read [start, stop)
    is considered to cover base ``stop``), and implement ``_score``.
    """

    name = None
    columns = ()
    default_block_size = 1600
    inclusive_stop = False

    def __init__(self, read_length: int):
        if not isinstance(read_length, (int, np.integer)) or read_length < 2:
            raise ConfigurationError(f"Read length must be an integer >= 2, got {read_length!r}")
        self.read_length = int(read_length)

    @property
    def zero(self) -> tuple:
        """Score of a base no read covers."""
        return self._score([], [])

    def score(self, reads) -> tuple:
        reads = list(reads)
        return self._score(reads, deduplicate_by_start(reads))

    def _score(self, reads, unique) -> tuple:
        raise NotImplementedError

    def __repr__(self):
        return f"{type(self).__name__}(read_length={self.read_length})"


class LCIMetric(ComplexityMetric):
    name = 'lci'
    columns = ('LCI',)
    default_block_size = 1000
    inclusive_stop = True

    def _score(self, reads, unique):
        n = len(unique)
        if n <= 1:
            return (0.0,)
        matrix = overlap_matrix(unique)
        average_overlap = float(np.mean(matrix.sum(axis=1) / (n - 1)))
        lci = n * average_overlap / self.read_length
        if lci < 0:
            raise InvariantViolation(f"Negative LCI {lci} for reads {unique}")
        return (round(lci, 4),)


class SCIMetric(ComplexityMetric):
    name = 'sci'
    columns = ('Depth', 'Unique_Reads', 'Overlap', 'SCI')

    def __init__(self, read_length):
        super().__init__(read_length)
        L = self.read_length
        self.denominator = float(L ** 2 * (L - 1) ** 2)

    def _score(self, reads, unique):
        n = len(unique)
        summed = summed_pairwise(overlap_matrix(unique)) if n > 1 else 0
        normalized = self.read_length * summed / self.denominator
        weighted = 300 * n * summed / (2 * self.denominator)
        if normalized < 0 or weighted < 0:
            raise InvariantViolation(f"Negative SCI for reads {unique}")
        return (len(reads), n, round(normalized, 4), round(weighted, 4))


class NGSCIMetric(ComplexityMetric):
    name = 'ngsci'
    columns = ('Depth', 'Unique_Reads', 'Overlap', 'NGS-CI')

    def __init__(self, read_length):
        super().__init__(read_length)
        L = self.read_length
        self.denominator = L * 3 * max_summed_dissimilarity(L) / (L - 1)

    def _score(self, reads, unique):
        n = len(unique)
        summed = summed_pairwise(dissimilarity_matrix(unique)) if n > 1 else 0
        normalized = summed / self.read_length
        weighted = n * summed / self.denominator
        if normalized < 0 or weighted < 0:
            raise InvariantViolation(f"Negative NGS-CI for reads {unique}")
        return (len(reads), n, round(normalized, 4), round(weighted, 4))


METRICS = {metric.name: metric for metric in (LCIMetric, SCIMetric, NGSCIMetric)}


def get_metric(name: str, read_length: int) -> ComplexityMetric:
    """Build the metric registered under ``name`` for the given read length."""
    try:
        metric_class = METRICS[name.lower()]
    except (KeyError, AttributeError):
        raise ConfigurationError(
            f"Unknown metric {name!r}, expected one of: {', '.join(METRICS)}"
        ) from None
    return metric_class(read_length)
