"""contextguard - conversation context compaction before every model call."""

__version__ = "0.1.0"
