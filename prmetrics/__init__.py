"""Pull request comment metrics scraper."""

__version__ = "1.0.0"
