"""JSON document storage for beadshop.

Each collection is a directory holding one JSON file per document. Writes are
atomic (temp file + os.replace) and read-modify-write sequences hold an
exclusive flock on the collection's lock file.
"""

import fcntl
import json
import os
import tempfile
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator
from urllib.parse import quote, unquote


class DocumentStore:
    """Manages one collection of JSON documents."""

    def __init__(self, collection: str, data_dir: Path):
        """
        Initialize DocumentStore.

        Args:
            collection: Collection name, used as the directory name.
            data_dir: Root data directory shared by all collections.
        """
        self.collection = collection
        self.collection_dir = Path(data_dir) / collection
        self._local = threading.local()

    def _ensure_dir(self) -> None:
        """Ensure collection directory exists."""
        self.collection_dir.mkdir(parents=True, exist_ok=True)

    def _path(self, doc_id: str) -> Path:
        return self.collection_dir / f"{quote(doc_id, safe='')}.json"

    @contextmanager
    def lock(self) -> Iterator[None]:
        """
        Acquire exclusive lock on the collection for read-modify-write operations.

        Re-entrant within a thread, so store methods that lock can be called
        from a block that already holds the lock.
        """
        depth = getattr(self._local, "depth", 0)
        if depth:
            self._local.depth = depth + 1
            try:
                yield
            finally:
                self._local.depth -= 1
            return

        self._ensure_dir()
        lock_path = self.collection_dir / ".lock"
        with open(lock_path, "w") as lock_file:
            fcntl.flock(lock_file.fileno(), fcntl.LOCK_EX)
            self._local.depth = 1
            try:
                yield
            finally:
                self._local.depth = 0
                fcntl.flock(lock_file.fileno(), fcntl.LOCK_UN)

    def get(self, doc_id: str) -> dict[str, Any] | None:
        """Load a document, or None if it doesn't exist."""
        path = self._path(doc_id)
        if not path.exists():
            return None
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)

    def exists(self, doc_id: str) -> bool:
        return self._path(doc_id).exists()

    def list_all(self) -> list[dict[str, Any]]:
        """Load every document in the collection."""
        if not self.collection_dir.exists():
            return []
        docs = []
        for path in sorted(self.collection_dir.glob("*.json")):
            try:
                with open(path, "r", encoding="utf-8") as f:
                    docs.append(json.load(f))
            except FileNotFoundError:
                # Deleted between glob and open
                continue
        return docs

    def ids(self) -> list[str]:
        if not self.collection_dir.exists():
            return []
        return [unquote(p.stem) for p in self.collection_dir.glob("*.json")]

    def count(self) -> int:
        if not self.collection_dir.exists():
            return 0
        return sum(1 for _ in self.collection_dir.glob("*.json"))

    def write(self, doc_id: str, data: dict[str, Any]) -> None:
        """Write a document to disk atomically."""
        self._ensure_dir()

        fd, temp_path = tempfile.mkstemp(
            dir=self.collection_dir, prefix=".doc_", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
                f.write("\n")
            os.replace(temp_path, self._path(doc_id))
        except Exception:
            try:
                os.unlink(temp_path)
            except OSError:
                pass
            raise

    def delete(self, doc_id: str) -> bool:
        """Delete a document. Returns True if it existed."""
        try:
            self._path(doc_id).unlink()
            return True
        except FileNotFoundError:
            return False
