"""Akoma Ntoso structured document engine."""

from .document import AKN_NAMESPACE, DocumentNode, StructuredDocument

__all__ = [
    "AKN_NAMESPACE",
    "DocumentNode",
    "StructuredDocument",
]
