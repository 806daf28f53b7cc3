"""Atomic file store — the durable write primitive under every store.

``write`` goes temp file → fsync → read back → byte compare → rename,
so a reader of ``path`` only ever sees the old complete content or the
new complete content.  The temp file lives next to the target so the
rename never crosses a filesystem boundary.
"""

from __future__ import annotations

import contextlib
import json
import logging
import os
from pathlib import Path
from typing import Any

from pydantic import BaseModel

from tacklepub.errors import NotFound, WriteVerificationFailed

logger = logging.getLogger(__name__)

TEMP_SUFFIX = ".tmp"


def temp_path_for(path: Path) -> Path:
    return path.with_name(path.name + TEMP_SUFFIX)


def _fsync_dir(directory: Path) -> None:
    """Flush the directory entry after a rename (POSIX only)."""
    if os.name != "posix":
        return
    fd = os.open(directory, os.O_RDONLY)
    try:
        os.fsync(fd)
    except OSError:
        logger.debug("Directory fsync not supported for %s", directory)
    finally:
        os.close(fd)


class AtomicFileStore:
    """Write/read raw bytes with an all-or-nothing visibility guarantee."""

    def write(self, path: Path, data: bytes) -> None:
        """Atomically replace ``path`` with ``data``.

        Raises:
            WriteVerificationFailed: the temp file did not read back
                byte-identical. The temp file is removed and ``path`` is
                left untouched.
            OSError: the write or rename failed. The temp file is removed.
        """
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = temp_path_for(path)

        try:
            with open(tmp, "wb") as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())

            if tmp.read_bytes() != data:
                raise WriteVerificationFailed(path)

            os.replace(tmp, path)
        except BaseException:
            with contextlib.suppress(FileNotFoundError):
                tmp.unlink()
            raise

        _fsync_dir(path.parent)
        logger.debug("Atomically wrote %d bytes to %s", len(data), path)

    def read(self, path: Path) -> bytes:
        """Return the raw bytes at ``path``.

        Raises:
            NotFound: if nothing exists at ``path``.
        """
        try:
            return path.read_bytes()
        except FileNotFoundError:
            raise NotFound(path) from None

    def exists(self, path: Path) -> bool:
        return path.is_file()

    def delete(self, path: Path) -> bool:
        """Remove ``path``; return False if it was already gone."""
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        return True

    # ── JSON helpers ─────────────────────────────────────────────

    def write_json(self, path: Path, payload: BaseModel | Any) -> None:
        """Serialize ``payload`` (a model or plain JSON data) and write it."""
        self.write(path, dump_json(payload))

    def read_json(self, path: Path) -> Any:
        """Read and parse JSON. Raises NotFound or ``json.JSONDecodeError``."""
        return json.loads(self.read(path).decode("utf-8"))


def dump_json(payload: BaseModel | Any) -> bytes:
    """Serialize to the on-disk JSON form (camelCase aliases, 2-space indent)."""
    if isinstance(payload, BaseModel):
        text = payload.model_dump_json(indent=2, by_alias=True, exclude_none=True)
    elif isinstance(payload, list) and payload and isinstance(payload[0], BaseModel):
        items = [p.model_dump(mode="json", by_alias=True, exclude_none=True) for p in payload]
        text = json.dumps(items, indent=2, ensure_ascii=False)
    else:
        text = json.dumps(payload, indent=2, ensure_ascii=False)
    return text.encode("utf-8")
