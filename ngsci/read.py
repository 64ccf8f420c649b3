"""
Reads and strand resolution.

An aligned record from the alignment store is turned into a ``Read`` holding
only what the complexity metrics need: start, stop and (optionally) the
logical strand of the sequenced molecule. The logical strand depends on the
library chemistry:

    none  every read is unstranded
    F     single-end, read orientation is the strand
    FR    paired-end, read 1 on the transcript strand (e.g. dUTP second strand)
    RF    paired-end, read 1 on the opposite strand (e.g. dUTP first strand)
"""

from enum import Enum

from ngsci.errors import ConfigurationError, InvariantViolation

STRANDS = ('+', '-')


class Read:
    """An aligned read reduced to its footprint [start, stop) and strand."""

    __slots__ = ('start', 'stop', 'strand')

    def __init__(self, start: int, stop: int, strand=None):
        if not isinstance(start, int) or not isinstance(stop, int) or stop <= start:
            raise InvariantViolation(f"Invalid read coordinates: start={start!r} stop={stop!r}")
        if strand is not None and strand not in STRANDS:
            raise InvariantViolation(f"Invalid read strand: {strand!r}")
        object.__setattr__(self, 'start', start)
        object.__setattr__(self, 'stop', stop)
        object.__setattr__(self, 'strand', strand)

    def __setattr__(self, name, value):
        raise AttributeError("Read is immutable")

    def __getstate__(self):
        return (self.start, self.stop, self.strand)

    def __setstate__(self, state):
        for name, value in zip(self.__slots__, state):
            object.__setattr__(self, name, value)

    @property
    def length(self) -> int:
        return self.stop - self.start

    def __eq__(self, other):
        if not isinstance(other, Read):
            return NotImplemented
        return (self.start, self.stop, self.strand) == (other.start, other.stop, other.strand)

    def __hash__(self):
        return hash((self.start, self.stop, self.strand))

    def __repr__(self):
        return f"Read({self.start}, {self.stop}, strand={self.strand!r})"


class Chemistry(Enum):
    NONE = 'none'
    F = 'F'
    FR = 'FR'
    RF = 'RF'

    @classmethod
    def parse(cls, value):
        """Parse a chemistry name ('F', 'FR', 'RF', 'none' or None)."""
        if value is None or isinstance(value, cls):
            return value or cls.NONE
        try:
            return cls(value)
        except ValueError:
            raise ConfigurationError(
                f"Strand specific option {value} is invalid. It must be one of: [FR, RF, F]"
            ) from None

    @property
    def stranded(self) -> bool:
        return self is not Chemistry.NONE

    @property
    def strand_keys(self) -> tuple:
        """Result keys produced by a scan with this chemistry."""
        return STRANDS if self.stranded else (None,)


# (first_in_pair, is_reverse) -> strand
_STRAND_TABLE = {
    Chemistry.NONE: {
        (True, False): None, (True, True): None,
        (False, False): None, (False, True): None,
    },
    Chemistry.F: {
        (True, False): '+', (True, True): '-',
        (False, False): '+', (False, True): '-',
    },
    Chemistry.FR: {
        (True, False): '+', (True, True): '-',
        (False, False): '-', (False, True): '+',
    },
    Chemistry.RF: {
        (True, False): '-', (True, True): '+',
        (False, False): '+', (False, True): '-',
    },
}


def resolve_strand(chemistry: Chemistry, first_in_pair: bool, is_reverse: bool):
    return _STRAND_TABLE[chemistry][(bool(first_in_pair), bool(is_reverse))]


def resolve_read(alignment, chemistry: Chemistry):
    """
    Convert a raw alignment (a pysam AlignedSegment or anything exposing the
    same attributes) into a Read. Returns None for unmapped alignments and for
    records without a stored sequence.
    """
    if alignment.is_unmapped or not alignment.query_length:
        return None
    strand = resolve_strand(chemistry, alignment.is_read1, alignment.is_reverse)
    start = alignment.reference_start
    return Read(start, start + alignment.query_length, strand)
