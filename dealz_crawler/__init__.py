"""Crawler for the eBucks shop: discovers products and their discount pricing."""

from .version import __version__

__all__ = ["__version__"]
