"""pysam backed alignment store and reference catalog."""

import logging
import os

import pysam

from ngsci.errors import AlignmentIOError, ConfigurationError

logger = logging.getLogger(__name__)


class BamAlignmentStore:
    """
    Read-only access to a BAM file. A BAM without a .bai is indexed when first
    opened.

    The pysam handle is opened lazily and never pickled, so a store can be
    handed to worker processes and each of them opens its own handle.
    """

    def __init__(self, path):
        self.path = os.fspath(path)
        self._bamfile = None
        if not os.path.exists(self.path):
            raise AlignmentIOError(f"Unable to open bamfile {self.path} (file not found)")

    def __getstate__(self):
        return {'path': self.path}

    def __setstate__(self, state):
        self.path = state['path']
        self._bamfile = None

    def __repr__(self):
        return f"BamAlignmentStore({self.path!r})"

    def __str__(self):
        return self.path

    def _open(self) -> pysam.AlignmentFile:
        try:
            return pysam.AlignmentFile(self.path, "rb")
        except (OSError, ValueError) as e:
            raise AlignmentIOError(f"Unable to open bamfile {self.path}: {e}") from e

    def index(self):
        """Build the .bai index next to the BAM file."""
        logger.info(f"Bamfile {self.path} has no index, indexing it")
        try:
            pysam.index(self.path)
        except (pysam.SamtoolsError, OSError) as e:
            raise AlignmentIOError(f"Unable to index bamfile {self.path}: {e}") from e

    @property
    def bamfile(self) -> pysam.AlignmentFile:
        if self._bamfile is None:
            bamfile = self._open()
            if not bamfile.has_index():
                bamfile.close()
                self.index()
                bamfile = self._open()
                if not bamfile.has_index():
                    bamfile.close()
                    raise AlignmentIOError(f"Bamfile {self.path} has no index after indexing")
            self._bamfile = bamfile
        return self._bamfile

    def close(self):
        if self._bamfile is not None:
            self._bamfile.close()
            self._bamfile = None

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    @property
    def references(self) -> dict:
        """Contig lengths from the BAM header, in header order."""
        return dict(zip(self.bamfile.references, self.bamfile.lengths))

    def fetch(self, contig, start, stop):
        """Every alignment overlapping [start, stop) of ``contig``."""
        try:
            yield from self.bamfile.fetch(contig, start, stop, multiple_iterators=True)
        except (OSError, ValueError) as e:
            raise AlignmentIOError(f"Failed to fetch {contig}:{start}-{stop} from {self.path}: {e}") from e

    def alignments(self):
        """Every alignment, in file order."""
        return self.bamfile.fetch(until_eof=True, multiple_iterators=True)

    def mapped_counts(self) -> dict:
        return {stat.contig: stat.mapped for stat in self.bamfile.get_index_statistics()}


def reference_lengths(store, reference=None, contigs=None) -> dict:
    """
    Lengths of the chromosomes to scan.

    Lengths come from the FASTA ``reference`` when given (restricted to
    chromosomes present in the BAM index), otherwise from the BAM header.
    ``contigs`` limits the result to the named chromosomes, in that order.
    """
    indexed = store.mapped_counts()
    if reference is not None:
        reference = os.fspath(reference)
        if not os.path.exists(reference):
            raise AlignmentIOError(f"Reference file {reference} not found")
        try:
            with pysam.FastaFile(reference) as fasta:
                lengths = dict(zip(fasta.references, fasta.lengths))
        except (OSError, ValueError) as e:
            raise AlignmentIOError(f"Unable to read reference {reference}: {e}") from e
        lengths = {chrom: length for chrom, length in lengths.items() if chrom in indexed}
        if not lengths:
            logger.warning(f"No sequence of {reference} is present in the index of {store}")
    else:
        lengths = {chrom: length for chrom, length in store.references.items() if chrom in indexed}

    if contigs:
        unknown = [c for c in contigs if c not in lengths]
        if unknown:
            raise ConfigurationError(f"Unknown contig(s): {', '.join(unknown)}")
        lengths = {c: lengths[c] for c in contigs}
    return lengths
