"""Keep API catalog entries in sync with specification files tracked in Git repositories."""

__version__ = "0.1.0"
