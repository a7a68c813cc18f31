"""Contexts, service lifecycles, loggers, framing, chunked uploads and a TCP tunnel."""

__version__ = "0.1.0"