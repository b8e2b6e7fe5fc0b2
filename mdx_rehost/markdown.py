"""Markdown image reference extraction and link rewriting."""

from __future__ import annotations

import logging
import re
from typing import Dict, Iterable, Iterator, List, Optional, Pattern

from .config import DEFAULT_IMAGE_EXTENSIONS, DEFAULT_NAMED_ALT_PATTERN, RehostConfig
from .models import AssetKind, AssetReference, RehostResult, RehostStatus

logger = logging.getLogger("mdx_rehost")

_ALT = r"!\[(?P<alt>{alt})\]"
# Allows one level of balanced parentheses inside the URL, e.g. ``a(1).png``.
_URL_BODY = r"(?:[^()\s]|\([^()\s]*\))*?"

INLINE_IMAGE_PATTERN = re.compile(
    _ALT.format(alt=r"[^\]\n]*")
    + r"\((?P<uri>data:image/(?P<subtype>[\w.+-]+);base64,(?P<payload>[^)\s]*))\)"
)


def _remote_pattern(alt: str, extensions: Iterable[str]) -> Pattern[str]:
    alternatives = "|".join(sorted((re.escape(ext) for ext in extensions), key=len, reverse=True))
    return re.compile(
        _ALT.format(alt=alt)
        + r"\((?P<url>https?://"
        + _URL_BODY
        + r"\.(?P<ext>(?i:"
        + alternatives
        + r")))\)"
    )


class AssetExtractor:
    """Find inline, remote and named-remote image references in Markdown text."""

    def __init__(
        self,
        image_extensions: Iterable[str] = DEFAULT_IMAGE_EXTENSIONS,
        named_alt_pattern: str = DEFAULT_NAMED_ALT_PATTERN,
    ) -> None:
        extensions = sorted({ext.lower().lstrip(".") for ext in image_extensions})
        if not extensions:
            raise ValueError("At least one image extension is required")
        self.remote_pattern = _remote_pattern(r"[^\]\n]*", extensions)
        self.named_pattern = _remote_pattern(named_alt_pattern, extensions)

    @classmethod
    def from_config(cls, config: RehostConfig) -> "AssetExtractor":
        return cls(config.image_extensions, config.named_alt_pattern)

    def _iter_inline(self, text: str) -> Iterator[AssetReference]:
        for match in INLINE_IMAGE_PATTERN.finditer(text):
            subtype = match.group("subtype").lower()
            yield AssetReference(
                kind=AssetKind.INLINE_BASE64,
                alt_text=match.group("alt"),
                locator=match.group("uri"),
                extension=subtype.split("+")[0],
                original_span=match.group(0),
                payload=match.group("payload"),
                start=match.start(),
            )

    def _iter_remote(
        self, text: str, pattern: Pattern[str], kind: AssetKind
    ) -> Iterator[AssetReference]:
        for match in pattern.finditer(text):
            yield AssetReference(
                kind=kind,
                alt_text=match.group("alt"),
                locator=match.group("url"),
                extension=match.group("ext").lower(),
                original_span=match.group(0),
                start=match.start(),
            )

    def extract(self, text: str) -> List[AssetReference]:
        """Return every image reference in document order, duplicates included."""
        inline = list(self._iter_inline(text))
        named = list(self._iter_remote(text, self.named_pattern, AssetKind.NAMED_REMOTE_URL))
        named_spans = {(ref.start, ref.original_span) for ref in named}
        remote = [
            ref
            for ref in self._iter_remote(text, self.remote_pattern, AssetKind.REMOTE_URL)
            if (ref.start, ref.original_span) not in named_spans
        ]
        references = sorted(inline + named + remote, key=lambda ref: ref.start)
        logger.debug(
            "Extracted %d image reference(s): %d inline, %d named, %d remote",
            len(references),
            len(inline),
            len(named),
            len(remote),
        )
        return references


def extract_references(text: str, config: Optional[RehostConfig] = None) -> List[AssetReference]:
    extractor = AssetExtractor.from_config(config) if config else AssetExtractor()
    return extractor.extract(text)


def format_image_link(alt_text: str, url: str) -> str:
    return f"![{alt_text}]({url})"


def replace_image_links(markdown: str, results: Iterable[RehostResult]) -> str:
    """Swap original image snippets for links to their rehosted copies.

    Every occurrence of a snippet is replaced and keeps its own alt text.
    Failed and skipped results leave the text untouched.
    """
    replacements: Dict[str, str] = {}
    for result in results:
        if result.status is not RehostStatus.SUCCESS or not result.url:
            continue
        for ref in result.occurrences or [result.reference]:
            replacements.setdefault(ref.original_span, format_image_link(ref.alt_text, result.url))

    if not replacements:
        return markdown

    updated = markdown
    # Longest first so a snippet nested inside another one is never split.
    for span in sorted(replacements, key=len, reverse=True):
        pattern = re.compile(re.escape(span))
        updated = pattern.sub(lambda _match, value=replacements[span]: value, updated)
    return updated
