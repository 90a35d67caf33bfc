"""Cargo manifest model, format-preserving document and dependency editor."""

from .document import ManifestDocument
from .models import DependencyKind, DependencySpec, SourceKind, TableLocation

__all__ = [
    "ManifestDocument",
    "DependencyKind",
    "DependencySpec",
    "SourceKind",
    "TableLocation",
]
