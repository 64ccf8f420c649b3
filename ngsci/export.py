"""Writing (and reading back) complexity index tables."""

import gzip
import logging

import pandas as pd
import pyBigWig

logger = logging.getLogger(__name__)

INDEX_COLUMNS = ('Chrom', 'Base', 'Strand')


def _open(path, mode):
    path = str(path)
    if path.endswith('.gz'):
        return gzip.open(path, mode + 't')
    return open(path, mode)


def write_results(results, outfile, metric):
    """
    Write {chrom: {strand_key: [(base, *score), ...]}} as CSV, one row per base
    and strand. An unstranded key is written as an empty Strand field.
    """
    header = ",".join(INDEX_COLUMNS + tuple(metric.columns))
    rows = 0
    with _open(outfile, 'w') as f:
        f.write(header + "\n")
        for chrom, strands in results.items():
            for strand, records in strands.items():
                strand_field = strand or ''
                for base, *scores in records:
                    line = [chrom, str(base), strand_field] + [str(s) for s in scores]
                    f.write(",".join(line) + "\n")
                    rows += 1
    logger.info(f"Wrote {rows} rows to {outfile}")
    return outfile


def read_results(path) -> pd.DataFrame:
    """Load a table written by write_results."""
    return pd.read_csv(
        path,
        dtype={'Chrom': str, 'Base': 'int64', 'Strand': str},
        keep_default_na=False,
        compression='infer',
    )


def write_bigwig(results, lengths, out_prefix, metric):
    """
    Write the last score column (the complexity index itself) of every strand
    key to ``<out_prefix>.bw``, or ``<out_prefix>.plus.bw`` / ``.minus.bw``
    when stranded. Returns the written filenames.
    """
    suffixes = {None: '', '+': '.plus', '-': '.minus'}
    strand_keys = []
    for strands in results.values():
        for key in strands:
            if key not in strand_keys:
                strand_keys.append(key)

    header = [(chrom, lengths[chrom]) for chrom in results if lengths[chrom] > 0]
    filenames = []
    for key in strand_keys:
        filename = f"{out_prefix}{suffixes[key]}.bw"
        bw = pyBigWig.open(filename, 'w')
        bw.addHeader(header)
        for chrom, length in header:
            records = results[chrom].get(key, [])
            if records:
                bw.addEntries(chrom, records[0][0], values=[float(r[-1]) for r in records], span=1, step=1)
        bw.close()
        logger.info(f"Wrote {metric.columns[-1]} track {filename}")
        filenames.append(filename)
    return filenames
