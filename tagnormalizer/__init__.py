"""Normalize inconsistent cloud resource tag keys onto canonical names."""

from .batch import BatchDriver, BatchSummary
from .delta import build_delta
from .engine import ApplyVerifyEngine
from .errors import TagNormalizerError, TransportError, VerificationMismatch
from .matcher import MatchResult, match_tags
from .models import OperationResult, Status, TagDelta, TagSnapshot
from .rules import NormalizationRule, compile_rules, find_ambiguities, load_rules
from .transport import RetryingTransport, TagOperation, TagTransport

__version__ = "1.0.0"

__all__ = [
    "ApplyVerifyEngine",
    "BatchDriver",
    "BatchSummary",
    "MatchResult",
    "NormalizationRule",
    "OperationResult",
    "RetryingTransport",
    "Status",
    "TagDelta",
    "TagNormalizerError",
    "TagOperation",
    "TagSnapshot",
    "TagTransport",
    "TransportError",
    "VerificationMismatch",
    "build_delta",
    "compile_rules",
    "find_ambiguities",
    "load_rules",
    "match_tags",
]
