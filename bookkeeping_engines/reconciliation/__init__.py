"""Bank reconciliation engines: keyword extraction, tier matching, anomalies."""

from bookkeeping_engines.reconciliation.anomalies import (
    Anomaly,
    AnomalyKind,
    Severity,
    detect_anomalies,
)
from bookkeeping_engines.reconciliation.keywords import extract_keywords, keyword_overlap
from bookkeeping_engines.reconciliation.matching import (
    DEFAULT_THRESHOLDS,
    MatchingThresholds,
    MatchResult,
    eligible_candidates,
    match_transaction,
)

__all__ = [
    "Anomaly",
    "AnomalyKind",
    "DEFAULT_THRESHOLDS",
    "MatchResult",
    "MatchingThresholds",
    "Severity",
    "detect_anomalies",
    "eligible_candidates",
    "extract_keywords",
    "keyword_overlap",
    "match_transaction",
]
