from __future__ import annotations

import json
import os
import threading
from collections.abc import Callable
from pathlib import Path
from typing import Any

Row = dict[str, Any]


class JsonlStore:
    """Append-friendly JSON-lines table.

    Whole-file rewrites (upsert, replace, delete) go through a temp file and an
    atomic rename, serialized by a per-store lock so concurrent publishers never
    interleave writes.
    """

    def __init__(self, file_path: Path):
        self.file_path = file_path
        self.file_path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.RLock()

    def read_all(self) -> list[Row]:
        with self._lock:
            return self._read_unlocked()

    def append(self, row: Row) -> None:
        with self._lock:
            with self.file_path.open("a", encoding="utf-8") as fh:
                fh.write(json.dumps(row, ensure_ascii=True, sort_keys=True) + "\n")

    def find_one(self, key: str, value: Any) -> Row | None:
        for row in self.read_all():
            if row.get(key) == value:
                return row
        return None

    def filter(self, predicate: Callable[[Row], bool]) -> list[Row]:
        return [row for row in self.read_all() if predicate(row)]

    def upsert(self, key: str, value: Any, row: Row) -> None:
        with self._lock:
            rows = self._read_unlocked()
            replaced = False
            for idx, existing in enumerate(rows):
                if existing.get(key) == value:
                    rows[idx] = row
                    replaced = True
                    break
            if not replaced:
                rows.append(row)
            self._write_unlocked(rows)

    def replace_where(self, predicate: Callable[[Row], bool], row: Row) -> int:
        """Drop every row matching predicate and append row. Returns rows dropped."""
        with self._lock:
            rows = self._read_unlocked()
            kept = [r for r in rows if not predicate(r)]
            kept.append(row)
            self._write_unlocked(kept)
            return len(rows) - (len(kept) - 1)

    def delete_where(self, predicate: Callable[[Row], bool]) -> int:
        with self._lock:
            rows = self._read_unlocked()
            kept = [r for r in rows if not predicate(r)]
            self._write_unlocked(kept)
            return len(rows) - len(kept)

    def compact(self) -> int:
        """Rewrite the file without blank or corrupt lines. Returns lines dropped."""
        with self._lock:
            if not self.file_path.exists():
                return 0
            lines = self.file_path.read_text(encoding="utf-8").splitlines()
            rows = self._read_unlocked()
            self._write_unlocked(rows)
            return len(lines) - len(rows)

    def _read_unlocked(self) -> list[Row]:
        if not self.file_path.exists():
            return []
        rows: list[Row] = []
        with self.file_path.open("r", encoding="utf-8") as fh:
            for line in fh:
                line = line.strip()
                if not line:
                    continue
                try:
                    parsed = json.loads(line)
                except json.JSONDecodeError:
                    continue
                if isinstance(parsed, dict):
                    rows.append(parsed)
        return rows

    def _write_unlocked(self, rows: list[Row]) -> None:
        tmp = self.file_path.with_suffix(self.file_path.suffix + ".tmp")
        with tmp.open("w", encoding="utf-8") as fh:
            for row in rows:
                fh.write(json.dumps(row, ensure_ascii=True, sort_keys=True) + "\n")
        os.replace(tmp, self.file_path)
