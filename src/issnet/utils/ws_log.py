"""Audit trail of SOAP exchanges with ISSNet.

One JSON object per line in ``<data dir>/ws_log.jsonl``. Request and response
XML are masked before they reach the disk.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from filelock import FileLock

from issnet import config as _config
from issnet.utils.masking import mask_sensitive_data

logger = logging.getLogger(__name__)


def _log_path() -> Path:
    return _config.get_data_dir() / "ws_log.jsonl"


@contextmanager
def _locked() -> Iterator[None]:
    """Hold an exclusive file lock while appending or reading the log."""
    lp = _log_path()
    lp.parent.mkdir(parents=True, exist_ok=True)
    lock = FileLock(lp.with_suffix(".lock"))
    with lock:
        yield


def record_exchange(
    operation: str,
    request_xml: str,
    response_xml: str | None,
    http_status: int | None = None,
    invoice_ref: str | None = None,
    env: str | None = None,
    error: str | None = None,
) -> dict[str, Any]:
    """Append one masked exchange to the log and return the stored entry."""
    entry = {
        "logged_at": datetime.now(UTC).isoformat(),
        "operation": operation,
        "invoice_ref": invoice_ref,
        "env": env,
        "http_status": http_status,
        "request_xml": mask_sensitive_data(request_xml),
        "response_xml": mask_sensitive_data(response_xml) if response_xml else None,
        "error": error,
    }
    with _locked():
        with _log_path().open("a", encoding="utf-8") as fh:
            fh.write(json.dumps(entry, ensure_ascii=False) + "\n")
    return entry


def read_exchanges(operation: str | None = None) -> list[dict[str, Any]]:
    """Return logged exchanges, oldest first, optionally filtered by operation."""
    lp = _log_path()
    with _locked():
        if not lp.exists():
            return []
        lines = lp.read_text(encoding="utf-8").splitlines()

    entries = []
    for n, line in enumerate(lines, start=1):
        if not line.strip():
            continue
        try:
            entry = json.loads(line)
        except json.JSONDecodeError:
            logger.warning("Linha corrompida ignorada em %s:%d", lp, n)
            continue
        if operation is None or entry.get("operation") == operation:
            entries.append(entry)
    return entries
