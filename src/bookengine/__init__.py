"""bookengine - catalog search pagination and similar-book recommendations."""

__version__ = "0.1.0"
