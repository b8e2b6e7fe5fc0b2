"""Rehost images referenced by Markdown documents onto one object store."""

from .config import RehostConfig, StorageConfig
from .encoding import decode, detect
from .markdown import AssetExtractor, extract_references, replace_image_links
from .models import AssetKind, AssetReference, ProcessResult, RehostResult, RehostStatus
from .pipeline import MarkdownRehoster

__all__ = [
    "AssetExtractor",
    "AssetKind",
    "AssetReference",
    "MarkdownRehoster",
    "ProcessResult",
    "RehostConfig",
    "RehostResult",
    "RehostStatus",
    "StorageConfig",
    "decode",
    "detect",
    "extract_references",
    "replace_image_links",
]
