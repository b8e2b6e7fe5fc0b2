"""Static lookups from file extensions to MIME types and storage categories."""

from __future__ import annotations

from typing import Dict, Optional

IMAGES = "images"
DOCUMENTS = "documents"
VIDEOS = "videos"
OTHERS = "others"

DEFAULT_MIME_TYPE = "application/octet-stream"

MIME_TYPES: Dict[str, str] = {
    # images
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "gif": "image/gif",
    "webp": "image/webp",
    "bmp": "image/bmp",
    "svg": "image/svg+xml",
    "heic": "image/heic",
    # documents
    "pdf": "application/pdf",
    "doc": "application/msword",
    "docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "txt": "text/plain",
    "md": "text/markdown",
    "xls": "application/vnd.ms-excel",
    "xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "ppt": "application/vnd.ms-powerpoint",
    "pptx": "application/vnd.openxmlformats-officedocument.presentationml.presentation",
    # videos
    "mp4": "video/mp4",
    "webm": "video/webm",
    "mov": "video/quicktime",
}


def normalize_extension(extension: Optional[str]) -> str:
    return (extension or "").strip().lstrip(".").lower()


def split_extension(filename: str) -> str:
    """Return the lowercase extension of ``filename`` without the dot."""
    if "." not in filename:
        return ""
    return normalize_extension(filename.rsplit(".", 1)[1])


def mime_type(extension: Optional[str]) -> str:
    return MIME_TYPES.get(normalize_extension(extension), DEFAULT_MIME_TYPE)


def is_image_extension(extension: Optional[str]) -> bool:
    return mime_type(extension).startswith("image/")


def is_video_extension(extension: Optional[str]) -> bool:
    return mime_type(extension).startswith("video/")


def is_document_extension(extension: Optional[str]) -> bool:
    ext = normalize_extension(extension)
    return ext in MIME_TYPES and not is_image_extension(ext) and not is_video_extension(ext)


def classify(extension: Optional[str]) -> str:
    """Map an extension onto one of the storage categories."""
    if is_image_extension(extension):
        return IMAGES
    if is_video_extension(extension):
        return VIDEOS
    if is_document_extension(extension):
        return DOCUMENTS
    return OTHERS

