#!/usr/bin/env python3
"""
ngsci computes a sequencing complexity index for every base (and strand) of
the reference sequences in an indexed BAM file.

The complexity of a base is derived from how much the distinct reads covering
it overlap: many reads sharing the same footprint indicate low library
complexity (e.g. PCR duplicates), reads spread over many start sites indicate
high complexity.
"""

import argparse
import cProfile
import logging
import os
import pstats
import sys

from ngsci import __version__
from ngsci.bam import BamAlignmentStore, reference_lengths
from ngsci.errors import ComplexityIndexError
from ngsci.export import write_bigwig
from ngsci.metrics import METRICS
from ngsci.scanner import ComplexityIndex

logger = logging.getLogger(__name__)

LOG_FORMAT = "[%(levelname)5s] %(asctime)s : %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
LOG_LEVELS = {
    'debug': logging.DEBUG,
    'info': logging.INFO,
    'warn': logging.WARNING,
    'error': logging.ERROR,
}


class _MaxLevelFilter(logging.Filter):
    def __init__(self, level):
        super().__init__()
        self.level = level

    def filter(self, record):
        return record.levelno < self.level


def setup_logging(level: str = 'info') -> None:
    """Log debug/info/warning messages to stdout, errors to stderr."""
    formatter = logging.Formatter(LOG_FORMAT, DATE_FORMAT)

    stdout_handler = logging.StreamHandler(sys.stdout)
    stdout_handler.setFormatter(formatter)
    stdout_handler.addFilter(_MaxLevelFilter(logging.ERROR))

    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setFormatter(formatter)
    stderr_handler.setLevel(logging.ERROR)

    root_logger = logging.getLogger()
    root_logger.setLevel(LOG_LEVELS[level])
    root_logger.handlers = []
    root_logger.addHandler(stdout_handler)
    root_logger.addHandler(stderr_handler)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
            prog='ngsci',
            description="Calculate a per-base sequencing complexity index from an indexed BAM file.",
            epilog="""By default every reference sequence present in the BAM
                   index is processed. To limit processing to specific
                   contigs, use the --contig argument.

                   Note that the supplied file must be indexed (i.e.
                   must have an associated .bai file).
                   """
            )
    parser.add_argument('-b', '--bam', required=True, help='indexed bam file to process')
    parser.add_argument('-r', '--reference',
            help='reference fasta; sequence lengths are taken from the bam header if omitted')
    parser.add_argument('-o', '--output',
            help='output csv (default: <bam basename>.<metric>.csv, .gz to compress)')
    parser.add_argument('-s', '--strand', choices=['F', 'FR', 'RF'], default=None,
            help='strand specific chemistry (default: unstranded)')
    parser.add_argument('-t', '--threads', type=int, default=1,
            help='number of worker processes (default: 1)')
    parser.add_argument('-m', '--metric', choices=sorted(METRICS), default='ngsci',
            help='complexity index to calculate (default: ngsci)')
    parser.add_argument('--block-size', type=int, default=None,
            help='bases scored per unit of work (default: 1000 for lci, 1600 otherwise)')
    parser.add_argument('-c', '--contig', dest='contigs', action='append',
            help='limit calculation to specified contig(s), may be repeated')
    parser.add_argument('--bigwig', metavar='PREFIX',
            help='also write the index as bigWig track(s) with this prefix')
    parser.add_argument('--loglevel', choices=list(LOG_LEVELS), default='info',
            help='logging level (default: info)')
    parser.add_argument('--profile', action='store_true',
            help='print profiling information for the run')
    parser.add_argument('--no-progress', action='store_true', help='disable progress bars')
    parser.add_argument('--version', action='version', version=f"%(prog)s {__version__}")
    return parser


def run(args) -> str:
    """Run the complexity index described by parsed command line ``args``."""
    output = args.output
    if not output:
        basename = os.path.splitext(os.path.basename(args.bam))[0]
        output = f"{basename}.{args.metric}.csv"

    with BamAlignmentStore(args.bam) as store:
        lengths = reference_lengths(store, args.reference, args.contigs)
        calculator = ComplexityIndex(
            store,
            lengths,
            strand=args.strand,
            threads=args.threads,
            metric=args.metric,
            block_size=args.block_size,
            progress=not args.no_progress,
        )
        calculator.run()
    calculator.export(output)
    if args.bigwig:
        write_bigwig(calculator.results, lengths, args.bigwig, calculator.metric)
    return output


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.loglevel)

    profiler = cProfile.Profile() if args.profile else None
    try:
        if profiler:
            profiler.enable()
        output = run(args)
    except ComplexityIndexError as e:
        logger.error(str(e))
        return 1
    finally:
        if profiler:
            profiler.disable()
            pstats.Stats(profiler, stream=sys.stdout).sort_stats('cumulative').print_stats(25)

    logger.info(f"Complexity index written to {output}")
    return 0


if __name__ == '__main__':
    sys.exit(main())
