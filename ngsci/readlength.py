import logging

from ngsci.errors import AlignmentIOError

logger = logging.getLogger(__name__)

MIN_SAMPLED_READS = 100


def has_mapped_reads(store) -> bool:
    """True if the store's index reports any mapped read on a real contig."""
    return any(count > 0 for contig, count in store.mapped_counts().items() if contig != '*')


def estimate_read_length(store, batch_size: int) -> int:
    """
    Estimate the nominal read length of an alignment store.

    Alignments are sampled in the store's native order, ``batch_size`` at a
    time, until at least MIN_SAMPLED_READS usable (mapped, with a sequence)
    alignments have been seen or the store runs out. The longest sampled read
    is returned.
    """
    if not has_mapped_reads(store):
        raise AlignmentIOError(f"Alignment file {store} is empty! Check samtools idxstats.")

    lengths = []
    seen = 0
    target = batch_size
    for alignment in store.alignments():
        seen += 1
        if not alignment.is_unmapped and alignment.query_length:
            lengths.append(alignment.query_length)
        if seen == target:
            if len(lengths) >= MIN_SAMPLED_READS:
                break
            target += batch_size

    if not lengths:
        raise AlignmentIOError(f"No mapped alignments with a stored sequence in {store}")

    read_length = max(lengths)
    logger.debug(f"Sampled {seen} alignments ({len(lengths)} usable), read length {read_length}")
    return read_length
