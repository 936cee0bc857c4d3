from product_match.core.config import get_config
from product_match.core.logging import setup_logging

__all__ = ["get_config", "setup_logging"]
