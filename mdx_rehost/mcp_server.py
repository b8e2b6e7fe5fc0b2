"""MCP server exposing mdx-rehost tools."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, List

from mcp.server.fastmcp import FastMCP

from .config import RehostConfig, StorageConfig
from .pipeline import MarkdownRehoster, describe_reference
from .storage import MinioObjectStore

logger = logging.getLogger("mdx_rehost.mcp")
logger.setLevel(logging.ERROR)

mcp = FastMCP(name="mdx-rehost")


def _build_rehoster() -> MarkdownRehoster:
    return MarkdownRehoster(MinioObjectStore(StorageConfig.from_env()), RehostConfig())


def _resolve(path: str) -> Path:
    source = Path(path).expanduser()
    if not source.is_file():
        raise FileNotFoundError(f"Markdown file does not exist: {source}")
    return source


@mcp.tool()
def rehost(path: str) -> str:
    """Rehost the images of a Markdown file and return the rewritten Markdown."""
    result = _build_rehoster().process_file(_resolve(path))
    return result.text


@mcp.tool()
def rehost_report(path: str) -> List[Dict[str, str]]:
    """Rehost the images of a Markdown file and return the per-image outcomes."""
    result = _build_rehoster().process_file(_resolve(path))
    return [
        {
            "source": describe_reference(outcome.reference),
            "status": outcome.status.value,
            "detail": outcome.url or outcome.reason or outcome.error or "",
        }
        for outcome in result.results
    ]


def main() -> None:
    """Entry point for running the MCP server."""
    logging.basicConfig(level=logging.ERROR)
    mcp.run()


if __name__ == "__main__":
    main()
