"""Pydantic data contracts for vision analysis and embedding services."""

from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_CATEGORY = "Other"


class ModelCard(BaseModel):
    """Metadata identifying an AI/vision model."""

    name: str
    version: str


class BoundingBox(BaseModel):
    """Normalized (0-1) rectangle. x, y are the top-left corner."""

    model_config = ConfigDict(frozen=True)

    x: float = Field(ge=0.0, le=1.0)
    y: float = Field(ge=0.0, le=1.0)
    width: float = Field(ge=0.0, le=1.0)
    height: float = Field(ge=0.0, le=1.0)


class VisionResult(BaseModel):
    """Structured attributes extracted from one product in an image."""

    model_config = ConfigDict(frozen=True)

    brand_name: str | None = None
    model_number: str | None = None
    inferred_category: str = DEFAULT_CATEGORY
    dominant_colors: list[str] = Field(default_factory=list)
    detected_logos: list[str] = Field(default_factory=list)
    detected_objects: list[str] = Field(default_factory=list)
    inferred_usage_tags: list[str] = Field(default_factory=list)
    image_tags: list[str] = Field(default_factory=list)
    bounding_box: BoundingBox | None = None
    product_name: str | None = None
    product_description: str | None = None

    @field_validator("brand_name", "model_number", "product_name", "product_description", mode="before")
    @classmethod
    def blank_is_none(cls, v: object) -> object:
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator("inferred_category", mode="before")
    @classmethod
    def default_category(cls, v: object) -> object:
        if v is None or (isinstance(v, str) and not v.strip()):
            return DEFAULT_CATEGORY
        return v

    @field_validator(
        "dominant_colors",
        "detected_logos",
        "detected_objects",
        "inferred_usage_tags",
        "image_tags",
        mode="before",
    )
    @classmethod
    def none_is_empty(cls, v: object) -> object:
        return [] if v is None else v

    @property
    def tag_set(self) -> set[str]:
        """Lowercase union of inferred usage tags and image tags."""
        return {t.lower() for t in [*self.inferred_usage_tags, *self.image_tags]}
