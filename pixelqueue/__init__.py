"""PixelQueue - asynchronous image transformation jobs."""

__version__ = "0.1.0"
