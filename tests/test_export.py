"""Tests for ngsci.export."""

import pyBigWig
import pytest

from ngsci.export import read_results, write_bigwig, write_results
from ngsci.metrics import LCIMetric, NGSCIMetric, SCIMetric

STRANDED = {
    'chr1': {
        '+': [(0, 2, 2, 0.8158, 0.0003), (1, 1, 1, 0.0, 0.0), (2, 0, 0, 0.0, 0.0)],
        '-': [(0, 0, 0, 0.0, 0.0), (1, 3, 2, 0.5, 0.05), (2, 0, 0, 0.0, 0.0)],
    },
    'chr2': {
        '+': [(0, 0, 0, 0.0, 0.0)],
        '-': [(0, 1, 1, 0.0, 0.0)],
    },
}
UNSTRANDED = {'chr1': {None: [(0, 1.25), (1, 0.0), (2, 3.5)]}}
LENGTHS = {'chr1': 3, 'chr2': 1}


def _rows(results):
    return {
        (chrom, base, strand or '', score[-1])
        for chrom, strands in results.items()
        for strand, records in strands.items()
        for base, *score in records
    }


class TestWriteResults:

    @pytest.mark.parametrize("metric, header", [
        (NGSCIMetric(76), "Chrom,Base,Strand,Depth,Unique_Reads,Overlap,NGS-CI"),
        (SCIMetric(76), "Chrom,Base,Strand,Depth,Unique_Reads,Overlap,SCI"),
        (LCIMetric(76), "Chrom,Base,Strand,LCI"),
    ])
    def test_header_follows_metric(self, tmp_path, metric, header):
        path = write_results({}, tmp_path / 'out.csv', metric)
        assert path.read_text().splitlines() == [header]

    def test_rows_written_in_result_order(self, tmp_path):
        path = write_results(STRANDED, tmp_path / 'out.csv', NGSCIMetric(76))
        lines = path.read_text().splitlines()
        assert lines[1] == "chr1,0,+,2,2,0.8158,0.0003"
        assert lines[4] == "chr1,0,-,0,0,0.0,0.0"
        assert lines[-1] == "chr2,0,-,1,1,0.0,0.0"
        assert len(lines) == 1 + 8

    def test_unstranded_key_written_empty(self, tmp_path):
        path = write_results(UNSTRANDED, tmp_path / 'out.csv', LCIMetric(76))
        assert path.read_text().splitlines()[1] == "chr1,0,,1.25"

    def test_round_trip(self, tmp_path):
        path = write_results(STRANDED, tmp_path / 'out.csv', NGSCIMetric(76))
        table = read_results(path)
        assert list(table.columns) == ['Chrom', 'Base', 'Strand', 'Depth', 'Unique_Reads', 'Overlap', 'NGS-CI']
        parsed = set(zip(table['Chrom'], table['Base'], table['Strand'], table['NGS-CI']))
        assert parsed == _rows(STRANDED)
        assert list(table['Base'][:3]) == [0, 1, 2]

    def test_round_trip_unstranded_gzip(self, tmp_path):
        path = write_results(UNSTRANDED, tmp_path / 'out.csv.gz', LCIMetric(76))
        assert path.read_bytes()[:2] == b'\x1f\x8b'
        table = read_results(path)
        assert list(table['Strand']) == ['', '', '']
        assert set(zip(table['Chrom'], table['Base'], table['Strand'], table['LCI'])) == _rows(UNSTRANDED)


class TestWriteBigwig:

    def test_stranded_tracks(self, tmp_path):
        prefix = str(tmp_path / 'sample')
        filenames = write_bigwig(STRANDED, LENGTHS, prefix, NGSCIMetric(76))
        assert filenames == [prefix + '.plus.bw', prefix + '.minus.bw']

        bw = pyBigWig.open(prefix + '.plus.bw')
        assert bw.chroms() == LENGTHS
        assert bw.values('chr1', 0, 3) == pytest.approx([0.0003, 0.0, 0.0])
        bw.close()

    def test_unstranded_track(self, tmp_path):
        prefix = str(tmp_path / 'sample')
        assert write_bigwig(UNSTRANDED, {'chr1': 3}, prefix, LCIMetric(76)) == [prefix + '.bw']
        bw = pyBigWig.open(prefix + '.bw')
        assert bw.values('chr1', 0, 3) == pytest.approx([1.25, 0.0, 3.5])
        bw.close()
