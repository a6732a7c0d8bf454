"""In-process span aggregation with a tracez JSON API, and event-style log and metrics exporters."""

__version__ = "0.1.0"