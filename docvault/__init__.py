"""DocVault: retrieval-augmented question answering over a private document vault."""

__version__ = "1.0.0"
