"""Image asset pipeline: scrape, download, enrich, upload and track assets."""

__version__ = "0.1.0"
