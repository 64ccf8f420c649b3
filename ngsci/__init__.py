"""Per-base sequencing complexity index of aligned reads."""

__version__ = "1.0.0"

from ngsci.errors import (
    AlignmentIOError,
    ComplexityIndexError,
    ConfigurationError,
    InvariantViolation,
)
from ngsci.read import Chemistry, Read, resolve_read
from ngsci.metrics import LCIMetric, NGSCIMetric, SCIMetric, get_metric
from ngsci.scanner import ComplexityIndex
