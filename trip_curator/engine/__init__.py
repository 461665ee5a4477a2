"""Engine components: limiter, fan-out, validation, ranking, dedup and triage."""

from .cost import CostTracker
from .dedup import ClusterResult, cluster_candidates, normalize_content
from .fanout import Assignment, FanOutExecutor, FetchOptions, Provider
from .limiter import ConcurrencyLimiter, LimiterPool, LimiterStats
from .normalize import normalize_outputs, normalize_result
from .ranking import RankResult, rank_candidates, select_top_candidates
from .scoring import score_candidates
from .triage import TriageManager, hash_candidate, reconcile_triage
from .validation import CandidateValidator, ValidationOutcome, apply_validation, determine_status
from .verification_client import HttpVerificationClient, VerificationClient, VerificationReply

__all__ = [
    "Assignment",
    "CandidateValidator",
    "ClusterResult",
    "ConcurrencyLimiter",
    "CostTracker",
    "FanOutExecutor",
    "FetchOptions",
    "HttpVerificationClient",
    "LimiterPool",
    "LimiterStats",
    "Provider",
    "RankResult",
    "TriageManager",
    "ValidationOutcome",
    "VerificationClient",
    "VerificationReply",
    "apply_validation",
    "cluster_candidates",
    "determine_status",
    "hash_candidate",
    "normalize_content",
    "normalize_outputs",
    "normalize_result",
    "rank_candidates",
    "reconcile_triage",
    "score_candidates",
    "select_top_candidates",
]
