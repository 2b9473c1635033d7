"""Tesla/TSLA news feed aggregator."""

__version__ = "1.2.0"
