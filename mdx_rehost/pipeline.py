"""High-level orchestration for rehosting the images of Markdown documents."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple, Union

from .config import RehostConfig
from .encoding import decode, detect
from .errors import RehostError, UnsupportedFileError
from .filetypes import DOCUMENTS, split_extension
from .images import AssetMaterializer
from .markdown import AssetExtractor, replace_image_links
from .models import (
    AssetKind,
    AssetReference,
    EncodingBasis,
    EncodingGuess,
    ProcessResult,
    RehostResult,
    RehostStatus,
    StoredObject,
)
from .storage import MARKDOWN_CONTENT_TYPE, AssetStore, ObjectStore

logger = logging.getLogger("mdx_rehost")

LocatorGroup = Tuple[AssetReference, List[AssetReference]]


def describe_reference(reference: AssetReference) -> str:
    """Short human-readable label for log lines."""
    if reference.kind is AssetKind.INLINE_BASE64:
        return f"inline image/{reference.extension} ({len(reference.payload or '')} base64 chars)"
    return reference.locator


def group_references(references: Sequence[AssetReference]) -> List[LocatorGroup]:
    """Group references by locator, preserving first-seen order.

    The representative is the first named reference for the locator if there
    is one (its alt text becomes the stored filename), else the first seen.
    """
    groups: Dict[str, List[AssetReference]] = {}
    for reference in references:
        groups.setdefault(reference.locator, []).append(reference)

    grouped: List[LocatorGroup] = []
    for occurrences in groups.values():
        representative = next(
            (ref for ref in occurrences if ref.kind is AssetKind.NAMED_REMOTE_URL),
            occurrences[0],
        )
        grouped.append((representative, occurrences))
    return grouped


def warn_key_collisions(results: Sequence[RehostResult]) -> None:
    """Log when distinct locators in one document were stored under the same key."""
    by_key: Dict[str, List[str]] = {}
    for result in results:
        if result.status is RehostStatus.SUCCESS and result.object_key:
            by_key.setdefault(result.object_key, []).append(describe_reference(result.reference))
    for key, sources in by_key.items():
        if len(sources) > 1:
            logger.warning(
                "%d images were stored under %s; only one survives: %s",
                len(sources),
                key,
                ", ".join(sources),
            )


class MarkdownRehoster:
    """Rewrite Markdown documents so every image lives on one object store."""

    def __init__(
        self,
        store: Union[AssetStore, ObjectStore],
        config: Optional[RehostConfig] = None,
        materializer: Optional[AssetMaterializer] = None,
    ) -> None:
        self.config = config or RehostConfig()
        if isinstance(store, AssetStore):
            self.store = store
        else:
            self.store = AssetStore(store, max_upload_bytes=self.config.max_asset_bytes)
        self.extractor = AssetExtractor.from_config(self.config)
        self.materializer = materializer or AssetMaterializer(self.config)

    def is_rehosted(self, reference: AssetReference) -> bool:
        """True when the reference already points at the target store."""
        if not reference.is_remote:
            return False
        prefix = self.store.url_prefix.rstrip("/")
        if not prefix:
            return False
        return reference.locator == prefix or reference.locator.startswith(prefix + "/")

    def _rehost(self, reference: AssetReference, occurrences: List[AssetReference]) -> RehostResult:
        label = describe_reference(reference)
        if self.is_rehosted(reference):
            logger.debug("Skipping %s: already hosted on the target store", label)
            return RehostResult(
                reference=reference,
                status=RehostStatus.SKIPPED,
                reason="already hosted on the target store",
                occurrences=occurrences,
            )
        try:
            asset = self.materializer.materialize(reference)
            stored = self.store.store(asset)
        except RehostError as exc:
            logger.warning("Failed to rehost %s: %s", label, exc)
            return RehostResult(
                reference=reference,
                status=RehostStatus.FAILED,
                error=str(exc),
                occurrences=occurrences,
            )
        except Exception as exc:  # pylint: disable=broad-except
            logger.exception("Unexpected error rehosting %s", label)
            return RehostResult(
                reference=reference,
                status=RehostStatus.FAILED,
                error=f"{type(exc).__name__}: {exc}",
                occurrences=occurrences,
            )

        logger.info("Rehosted %s -> %s", label, stored.url)
        return RehostResult(
            reference=reference,
            status=RehostStatus.SUCCESS,
            url=stored.url,
            object_key=stored.key,
            occurrences=occurrences,
        )

    def _rehost_all(self, groups: List[LocatorGroup]) -> List[RehostResult]:
        if not groups:
            return []
        workers = max(1, min(self.config.max_workers, len(groups)))
        if workers == 1:
            return [self._rehost(rep, occurrences) for rep, occurrences in groups]

        executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="mdx-rehost")
        try:
            futures = [executor.submit(self._rehost, rep, occurrences) for rep, occurrences in groups]
            results = [future.result() for future in futures]
        except BaseException:
            # Completed uploads are kept; anything not started is dropped.
            executor.shutdown(wait=False, cancel_futures=True)
            raise
        executor.shutdown(wait=True)
        return results

    def process_text(self, text: str, encoding: Optional[EncodingGuess] = None) -> ProcessResult:
        """Rehost the images of already-decoded Markdown text."""
        encoding = encoding or EncodingGuess("utf-8", EncodingBasis.DEFAULT)
        references = self.extractor.extract(text)
        groups = group_references(references)
        results = self._rehost_all(groups)
        warn_key_collisions(results)
        rewritten = replace_image_links(text, results)

        result = ProcessResult(
            text=rewritten,
            original_text=text,
            results=results,
            encoding=encoding,
        )
        logger.info(
            "Processed document (%s): %d reference(s), %d unique, %d rehosted, %d skipped, %d failed",
            encoding.charset,
            len(references),
            len(groups),
            len(result.succeeded),
            len(result.skipped),
            len(result.failed),
        )
        return result

    def process(self, raw: bytes) -> ProcessResult:
        """Decode raw document bytes and rehost their images."""
        if not isinstance(raw, (bytes, bytearray)):
            raise TypeError(f"Expected document bytes, got {type(raw).__name__}")
        raw = bytes(raw)
        guess = detect(raw)
        return self.process_text(decode(raw, guess), guess)

    def process_file(self, path: Path) -> ProcessResult:
        logger.info("Processing %s", path)
        return self.process(Path(path).read_bytes())

    def process_and_upload(self, raw: bytes, filename: str) -> Tuple[ProcessResult, StoredObject]:
        """Rehost a Markdown document, then store the rewritten document itself."""
        if split_extension(filename) != "md":
            raise UnsupportedFileError(f"Only Markdown (.md) files are supported: {filename}")
        result = self.process(raw)
        stored = self.store.upload(result.text.encode("utf-8"), filename, category=DOCUMENTS)
        logger.info("Uploaded processed document %s -> %s", filename, stored.key)
        return result, stored

    def refresh(self, key: str) -> Tuple[ProcessResult, StoredObject]:
        """Reprocess a Markdown object already in the store, overwriting it if it changed."""
        logger.info("Refreshing stored document %s", key)
        raw = self.store.backend.get(key)
        result = self.process(raw)
        if not result.changed:
            logger.info("Document %s unchanged, nothing to update", key)
            stored = StoredObject(
                key=key,
                url=self.store.backend.url(key),
                size=len(raw),
                content_type=MARKDOWN_CONTENT_TYPE,
                filename=key.rsplit("/", 1)[-1],
                uploaded_at=self.store.clock().strftime("%Y-%m-%d %H:%M:%S"),
            )
            return result, stored
        stored = self.store.replace_document(key, result.text)
        logger.info("Re-uploaded processed document %s", key)
        return result, stored
