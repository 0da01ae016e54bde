"""Askly - document question answering over a shared Qdrant collection."""

__version__ = "0.1.0"
