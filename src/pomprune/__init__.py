"""pomprune - keep a large Maven source tree reduced to its productized subset."""

__version__ = "0.4.0"
