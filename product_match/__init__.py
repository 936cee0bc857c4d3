"""product-match: product identification and adaptive threshold learning."""

__version__ = "0.1.0"
