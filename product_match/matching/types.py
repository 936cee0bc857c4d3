"""Value types shared by the matchers and the orchestrator."""

from dataclasses import dataclass, field
from typing import Any, ClassVar, Union

from product_match.ai.schema import BoundingBox, VisionResult
from product_match.models.entities import (
    IdentificationStatus,
    MatchType,
    Product,
    ValidationSource,
)

FULL_IMAGE_BOX = BoundingBox(x=0.0, y=0.0, width=1.0, height=1.0)


@dataclass(frozen=True)
class Placeholder:
    """Key of a temporary, never-persisted catalog entry; `index` is the detection index."""

    index: int


CatalogKey = Union[int, Placeholder]


@dataclass(frozen=True)
class ScoredCandidate:
    product: Product
    base_similarity: float
    logos_bonus: float
    objects_bonus: float
    total_similarity: float
    matching_logos: tuple[str, ...] = ()
    matching_objects: tuple[str, ...] = ()


@dataclass(frozen=True)
class IdentificationMatch:
    """The winning catalog entry for one image (or one detected object) and how it was found."""

    product: Product
    confidence: float
    match_type: MatchType
    details: str = ""
    similarity: float | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


# --- single-object flow ---


@dataclass(frozen=True)
class IdentifyRequest:
    image: bytes
    source: ValidationSource = ValidationSource.manual
    name: str | None = None
    description: str | None = None
    category_id: int | None = None


@dataclass(frozen=True)
class Identified:
    match: IdentificationMatch
    vision: VisionResult
    processing_time_ms: int
    metadata: dict[str, Any] = field(default_factory=dict)

    status: ClassVar[IdentificationStatus] = IdentificationStatus.identified
    requires_validation: ClassVar[bool] = False

    @property
    def product(self) -> Product:
        return self.match.product


@dataclass(frozen=True)
class PartialMatch:
    """A match below the auto-approve threshold; a human should confirm it."""

    match: IdentificationMatch
    vision: VisionResult
    processing_time_ms: int
    metadata: dict[str, Any] = field(default_factory=dict)

    status: ClassVar[IdentificationStatus] = IdentificationStatus.partial_match
    requires_validation: ClassVar[bool] = True

    @property
    def product(self) -> Product:
        return self.match.product


@dataclass(frozen=True)
class NewProductCreated:
    product: Product
    vision: VisionResult
    processing_time_ms: int
    metadata: dict[str, Any] = field(default_factory=dict)

    status: ClassVar[IdentificationStatus] = IdentificationStatus.new_product_created
    requires_validation: ClassVar[bool] = False


@dataclass(frozen=True)
class IdentificationError:
    """Business-rule refusal (not an exception). `code` is machine-readable."""

    code: str
    message: str
    vision: VisionResult
    processing_time_ms: int
    metadata: dict[str, Any] = field(default_factory=dict)

    status: ClassVar[IdentificationStatus] = IdentificationStatus.error
    requires_validation: ClassVar[bool] = True


IdentificationOutcome = Union[Identified, PartialMatch, NewProductCreated, IdentificationError]


# --- multi-object flow ---


@dataclass(frozen=True)
class MultipleDetectionRequest:
    image: bytes
    source: ValidationSource = ValidationSource.manual
    group_by_product: bool = True
    min_confidence: float | None = None


@dataclass(frozen=True)
class DetectedProductMatch:
    """One detected object and the catalog entry (or placeholder) it resolved to."""

    key: CatalogKey
    product: Product
    bounding_box: BoundingBox
    confidence: float
    match_type: MatchType
    object_index: int
    similarity: float | None = None

    @property
    def is_temporary(self) -> bool:
        return isinstance(self.key, Placeholder)


@dataclass(frozen=True)
class DetectedProductGroup:
    key: CatalogKey
    product: Product
    quantity: int
    average_confidence: float
    detections: tuple[DetectedProductMatch, ...]
    is_confirmed: bool


@dataclass(frozen=True)
class MultipleDetectionResult:
    status: IdentificationStatus
    groups: tuple[DetectedProductGroup, ...]
    total_detections: int
    unique_products: int
    requires_validation: bool
    processing_time_ms: int
    metadata: dict[str, Any] = field(default_factory=dict)
