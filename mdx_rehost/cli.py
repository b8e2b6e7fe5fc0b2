"""Command-line entry point for the Markdown image rehoster."""

from __future__ import annotations

import argparse
import logging
import sys
import time
from pathlib import Path
from typing import Iterable, List, Sequence

from .config import RehostConfig, StorageConfig
from .errors import RehostError
from .filetypes import DOCUMENTS, IMAGES
from .models import ProcessResult, RehostStatus
from .pipeline import MarkdownRehoster, describe_reference
from .storage import AssetStore, MinioObjectStore

logger = logging.getLogger("mdx_rehost.cli")


def _ensure_command_prefix(argv: Sequence[str], commands: Iterable[str]) -> Sequence[str]:
    if not argv:
        return argv
    first = argv[0]
    if first in commands or first.startswith("-"):
        return argv
    return ("rehost", *argv)


def _add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--workers",
        type=int,
        default=4,
        help="Maximum number of images downloaded concurrently",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=5.0,
        help="Connect and read timeout in seconds for each image download",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Rehost images referenced by Markdown documents onto a MinIO/S3 bucket.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    rehost_parser = subparsers.add_parser(
        "rehost", help="Rewrite Markdown files so their images live on the object store"
    )
    rehost_parser.add_argument("paths", nargs="+", type=Path, help="Markdown files to process")
    rehost_parser.add_argument(
        "--output",
        type=Path,
        default=None,
        help="Directory for rewritten files (defaults to printing to STDOUT)",
    )
    rehost_parser.add_argument(
        "--upload",
        action="store_true",
        help="Also store the rewritten Markdown documents in the bucket",
    )
    _add_common_arguments(rehost_parser)

    upload_parser = subparsers.add_parser("upload", help="Upload images or documents as-is")
    upload_parser.add_argument("paths", nargs="+", type=Path, help="Files to upload")
    upload_parser.add_argument(
        "--category",
        choices=[IMAGES, DOCUMENTS],
        default=None,
        help="Force the storage category instead of deriving it from the extension",
    )
    _add_common_arguments(upload_parser)

    refresh_parser = subparsers.add_parser(
        "refresh", help="Reprocess Markdown documents that are already stored"
    )
    refresh_parser.add_argument("keys", nargs="+", help="Object keys of stored documents")
    _add_common_arguments(refresh_parser)

    delete_parser = subparsers.add_parser("delete", help="Delete stored objects")
    delete_parser.add_argument("keys", nargs="+", help="Object keys to delete")
    _add_common_arguments(delete_parser)

    argv = list(sys.argv[1:] if argv is None else argv)
    argv = list(_ensure_command_prefix(argv, subparsers.choices.keys()))
    return parser.parse_args(argv)


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        force=True,
    )


def build_rehoster(args: argparse.Namespace) -> MarkdownRehoster:
    config = RehostConfig(
        connect_timeout=args.timeout,
        read_timeout=args.timeout,
        max_workers=args.workers,
    )
    backend = MinioObjectStore(StorageConfig.from_env())
    store = AssetStore(backend, max_upload_bytes=config.max_asset_bytes)
    return MarkdownRehoster(store, config)


def _log_report(source: str, result: ProcessResult) -> None:
    for outcome in result.results:
        label = describe_reference(outcome.reference)
        if outcome.status is RehostStatus.SUCCESS:
            logger.debug("%s: %s -> %s", source, label, outcome.url)
        elif outcome.status is RehostStatus.SKIPPED:
            logger.debug("%s: skipped %s (%s)", source, label, outcome.reason)
        else:
            logger.warning("%s: failed %s (%s)", source, label, outcome.error)


def _run_rehost(args: argparse.Namespace, rehoster: MarkdownRehoster) -> int:
    failures = 0
    overall_start = time.perf_counter()
    for path in args.paths:
        start = time.perf_counter()
        try:
            raw = path.read_bytes()
            if args.upload:
                result, stored = rehoster.process_and_upload(raw, path.name)
                logger.info("Uploaded %s -> %s", path, stored.url)
            else:
                result = rehoster.process(raw)
        except (OSError, RehostError) as exc:
            logger.error("Skipping %s: %s", path, exc)
            failures += 1
            continue

        _log_report(str(path), result)
        failures += len(result.failed)
        if args.output:
            output_dir = Path(args.output).resolve()
            output_dir.mkdir(parents=True, exist_ok=True)
            output_path = output_dir / path.name
            output_path.write_text(result.text, encoding="utf-8")
            logger.info("Saved Markdown to %s", output_path)
        elif not args.upload:
            sys.stdout.write(result.text if result.text.endswith("\n") else result.text + "\n")
            sys.stdout.flush()
        logger.debug("Processed %s in %.2fs", path, time.perf_counter() - start)

    logger.info(
        "Finished %d file(s) in %.2fs with %d failure(s)",
        len(args.paths),
        time.perf_counter() - overall_start,
        failures,
    )
    return 1 if failures else 0


def _run_upload(args: argparse.Namespace, rehoster: MarkdownRehoster) -> int:
    failures = 0
    for path in args.paths:
        try:
            stored = rehoster.store.upload(path.read_bytes(), path.name, category=args.category)
        except (OSError, RehostError) as exc:
            logger.error("Failed to upload %s: %s", path, exc)
            failures += 1
            continue
        print(stored.url)
    return 1 if failures else 0


def _run_refresh(args: argparse.Namespace, rehoster: MarkdownRehoster) -> int:
    failures = 0
    for key in args.keys:
        try:
            result, stored = rehoster.refresh(key)
        except RehostError as exc:
            logger.error("Failed to refresh %s: %s", key, exc)
            failures += 1
            continue
        _log_report(key, result)
        print(stored.url)
    return 1 if failures else 0


def _run_delete(args: argparse.Namespace, rehoster: MarkdownRehoster) -> int:
    missing: List[str] = []
    for key in args.keys:
        try:
            deleted = rehoster.store.backend.delete(key)
        except RehostError as exc:
            logger.error("Failed to delete %s: %s", key, exc)
            missing.append(key)
            continue
        if not deleted:
            logger.warning("No object stored under %s", key)
            missing.append(key)
    return 1 if missing else 0


_COMMANDS = {
    "rehost": _run_rehost,
    "upload": _run_upload,
    "refresh": _run_refresh,
    "delete": _run_delete,
}


def main(argv: Sequence[str] | None = None) -> int:
    args = parse_args(argv)
    _configure_logging(args.verbose)
    try:
        rehoster = build_rehoster(args)
    except (RuntimeError, ValueError) as exc:
        logger.error("Cannot connect to object storage: %s", exc)
        return 1
    return _COMMANDS[args.command](args, rehoster)


if __name__ == "__main__":
    sys.exit(main())
