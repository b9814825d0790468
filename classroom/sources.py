"""
classroom.sources — Load CSV text from a filesystem path or an HTTP(S) URL.

Every failure (missing file, undecodable bytes, network error, non-2xx
status) surfaces as DataSourceError. No retries: callers retry at the
request level if they want to.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path

import requests

from classroom.errors import DataSourceError

logger = logging.getLogger("classroom.sources")

SOURCE_TIMEOUT: float = float(os.getenv("SOURCE_TIMEOUT", "30"))
"""Timeout in seconds for remote CSV fetches."""


def is_url(source: str | Path) -> bool:
    return isinstance(source, str) and source.lower().startswith(("http://", "https://"))


def fetch_text(url: str, timeout: float | None = None) -> str:
    """Fetch a remote CSV as text."""
    try:
        response = requests.get(url, timeout=timeout or SOURCE_TIMEOUT)
        response.raise_for_status()
    except requests.RequestException as exc:
        logger.error(json.dumps({
            "event": "source_fetch_failed",
            "url": url,
            "error_type": type(exc).__name__,
        }))
        raise DataSourceError(url, f"Failed to fetch CSV from {url}: {exc}") from exc
    return response.text


def read_text(path: str | Path) -> str:
    """Read a local CSV file as UTF-8 text."""
    path = Path(path)
    try:
        with open(path, encoding="utf-8") as fh:
            return fh.read()
    except (OSError, UnicodeDecodeError) as exc:
        logger.error(json.dumps({
            "event": "source_read_failed",
            "path": str(path),
            "error_type": type(exc).__name__,
        }))
        raise DataSourceError(str(path), f"Failed to read CSV from {path}: {exc}") from exc


def load_text(source: str | Path, timeout: float | None = None) -> str:
    """Load CSV text from a URL or a filesystem path."""
    if is_url(source):
        return fetch_text(str(source), timeout)
    return read_text(source)
