"""Product identification: scoring, matchers, orchestration and grouping."""

from product_match.matching.embedding_match import EmbeddingFallbackMatcher
from product_match.matching.exact_match import ExactFieldMatcher
from product_match.matching.orchestrator import IdentificationOrchestrator
from product_match.matching.scoring import score_candidate
from product_match.matching.types import (
    DetectedProductGroup,
    DetectedProductMatch,
    Identified,
    IdentificationError,
    IdentificationMatch,
    IdentificationOutcome,
    IdentifyRequest,
    MultipleDetectionRequest,
    MultipleDetectionResult,
    NewProductCreated,
    PartialMatch,
    Placeholder,
    ScoredCandidate,
)

__all__ = [
    "DetectedProductGroup",
    "DetectedProductMatch",
    "EmbeddingFallbackMatcher",
    "ExactFieldMatcher",
    "IdentificationError",
    "IdentificationMatch",
    "IdentificationOrchestrator",
    "IdentificationOutcome",
    "Identified",
    "IdentifyRequest",
    "MultipleDetectionRequest",
    "MultipleDetectionResult",
    "NewProductCreated",
    "PartialMatch",
    "Placeholder",
    "ScoredCandidate",
    "score_candidate",
]
