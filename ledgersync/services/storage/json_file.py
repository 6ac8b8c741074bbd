"""
JSON File Category Override Store

DESIGN DECISION: Category overrides are the only state LedgerSync
persists, and they are a flat string-to-string mapping. A single JSON
file is enough:
1. Human-readable, easy to inspect or hand-edit
2. No database setup required
3. Whole-file rewrite per change is cheap at this size

TRADEOFFS:
- Not safe for concurrent writers from several processes
- Every write rewrites the whole file (written to a temp file, then
  renamed over the original so readers never see half a file)
"""

import contextlib
import json
import os
import tempfile
from pathlib import Path
from typing import Optional

from ledgersync.services.storage.interface import (
    CategoryOverrideStore,
    StorageError,
)


class JsonFileCategoryOverrideStore(CategoryOverrideStore):
    """
    Override store backed by a JSON object on disk.

    The file is read once, lazily, and kept in memory; every mutation
    is written through immediately.
    """

    def __init__(self, path: str | Path):
        self._path = Path(path)
        self._overrides: Optional[dict[str, str]] = None

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> dict[str, str]:
        if self._overrides is not None:
            return self._overrides

        if not self._path.exists():
            self._overrides = {}
            return self._overrides

        try:
            raw = json.loads(self._path.read_text(encoding="utf-8") or "{}")
        except (OSError, json.JSONDecodeError) as e:
            raise StorageError(f"Failed to read category overrides from {self._path}: {e}")

        if not isinstance(raw, dict):
            raise StorageError(
                f"Category override file {self._path} must hold a JSON object"
            )

        self._overrides = {str(k): str(v) for k, v in raw.items()}
        return self._overrides

    def _write(self, overrides: dict[str, str]) -> None:
        """Write `overrides` to disk, then adopt it as the in-memory state."""
        tmp_path = None
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(
                prefix=f".{self._path.name}.",
                dir=self._path.parent,
            )
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(overrides, fh, indent=2, sort_keys=True, ensure_ascii=False)
            os.replace(tmp_path, self._path)
            tmp_path = None
        except (OSError, TypeError, ValueError) as e:
            raise StorageError(f"Failed to write category overrides to {self._path}: {e}")
        finally:
            if tmp_path is not None:
                with contextlib.suppress(OSError):
                    os.unlink(tmp_path)
        self._overrides = overrides

    def get(self, transaction_id: str) -> Optional[str]:
        return self._load().get(transaction_id)

    def set(self, transaction_id: str, category: str) -> None:
        self._write({**self._load(), transaction_id: category})

    def remove(self, transaction_id: str) -> bool:
        overrides = dict(self._load())
        if overrides.pop(transaction_id, None) is None:
            return False
        self._write(overrides)
        return True

    def all(self) -> dict[str, str]:
        return dict(self._load())
