import sys
from pathlib import Path
from typing import NamedTuple

import pysam
import pytest

# Add the repository root to sys.path so ngsci imports without installation
ROOT_PATH = Path(__file__).resolve().parent.parent
if ROOT_PATH.as_posix() not in sys.path:
    sys.path.insert(0, ROOT_PATH.as_posix())


FLAG_PAIRED = 0x1
FLAG_UNMAPPED = 0x4
FLAG_REVERSE = 0x10
FLAG_READ1 = 0x40
FLAG_READ2 = 0x80


class FakeAlignment(NamedTuple):
    """Just the AlignedSegment attributes the engine reads."""
    reference_start: int
    query_length: int
    is_read1: bool = True
    is_reverse: bool = False
    is_unmapped: bool = False
    contig: str = 'chr1'


class FakeStore:
    """In-memory alignment store over FakeAlignment records."""

    def __init__(self, alignments, contigs=('chr1',)):
        self.records = list(alignments)
        self.contigs = contigs
        self.fetches = []

    def fetch(self, contig, start, stop):
        self.fetches.append((contig, start, stop))
        return [
            a for a in self.records
            if a.contig == contig and not a.is_unmapped
            and a.reference_start < stop and a.reference_start + a.query_length > start
        ]

    def alignments(self):
        return iter(self.records)

    def mapped_counts(self):
        counts = {contig: 0 for contig in self.contigs}
        for a in self.records:
            if not a.is_unmapped:
                counts[a.contig] += 1
        return counts

    def __str__(self):
        return 'fake.bam'


@pytest.fixture
def make_bam(tmp_path):
    """
    Build an indexed BAM. ``reads`` are (contig, start, length, flag) tuples,
    ``contigs`` maps contig name to length.
    """
    def _make_bam(reads, contigs, name='test.bam'):
        path = tmp_path / name
        header = {
            'HD': {'VN': '1.0', 'SO': 'coordinate'},
            'SQ': [{'SN': contig, 'LN': length} for contig, length in contigs.items()],
        }
        names = list(contigs)
        ordered = sorted(reads, key=lambda r: (names.index(r[0]), r[1]))
        with pysam.AlignmentFile(str(path), 'wb', header=header) as out:
            for i, (contig, start, length, flag) in enumerate(ordered):
                segment = pysam.AlignedSegment(out.header)
                segment.query_name = f'read{i}'
                segment.query_sequence = 'A' * length
                segment.flag = flag
                segment.reference_id = names.index(contig)
                segment.reference_start = start
                segment.mapping_quality = 60
                segment.cigartuples = [(0, length)]
                segment.query_qualities = pysam.qualitystring_to_array('I' * length)
                out.write(segment)
        pysam.index(str(path))
        return path
    return _make_bam


@pytest.fixture
def make_fasta(tmp_path):
    """Build an indexed FASTA of poly-A sequences, ``contigs`` maps name to length."""
    def _make_fasta(contigs, name='test.fa'):
        path = tmp_path / name
        with open(path, 'w') as f:
            for contig, length in contigs.items():
                f.write(f'>{contig}\n')
                seq = 'A' * length
                for i in range(0, length, 60):
                    f.write(seq[i:i + 60] + '\n')
        pysam.faidx(str(path))
        return path
    return _make_fasta
