"""Build-and-release orchestrator for Python source distributions."""

__version__ = "0.1.0"
