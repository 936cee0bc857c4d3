"""Exception types raised by the identification engine."""


class ProductMatchError(Exception):
    """Base class for engine errors."""


class InvalidImageError(ProductMatchError):
    """The caller supplied an empty, oversized or undecodable image. Nothing was mutated."""


class CropError(ProductMatchError):
    """A bounding box could not be cropped out of the source image."""


class UpstreamError(ProductMatchError):
    """The vision analyzer or embedding generator failed for one unit of work."""

    def __init__(self, service: str, message: str) -> None:
        super().__init__(f"{service} failed: {message}")
        self.service = service


class ConfigNotFoundError(ProductMatchError):
    """No threshold configuration exists with the requested id."""

    def __init__(self, config_id: int | None) -> None:
        super().__init__(f"Threshold configuration {config_id} does not exist.")
        self.config_id = config_id
