"""Revenue Radar: map-area lead discovery, scoring, clustering and caching."""

__version__ = "0.1.0"
