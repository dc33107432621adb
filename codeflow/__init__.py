"""CodeFlow: keep a visual graph of code nodes in sync with its source text."""

__version__ = "0.3.0"
