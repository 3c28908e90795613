"""Multi-provider streaming chat relay and its stream consumer."""

__version__ = "0.1.0"
