"""greenroom - asynchronous WebM conversion with chroma-key color detection."""

__version__ = "0.1.0"
