"""Content-addressed cache of generated images.

Each output directory carries a single ``cache.json`` that maps a
fingerprint of (prompt, model) to the file holding the generated image.
The store is loaded once per command, mutated in memory and written back
with an atomic replace.
"""
from __future__ import annotations

import hashlib
import logging
import os
import tempfile
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional, Union

import orjson
from pydantic import ValidationError

from .errors import CacheCorrupt, CacheSaveFailed
from .schema import CacheEntry, CacheFile

logger = logging.getLogger(__name__)

CACHE_FILE_NAME = "cache.json"
FINGERPRINT_LENGTH = 16
IMAGE_EXTENSION = "webp"


def fingerprint(prompt: str, model: str) -> str:
    """Return a 16 hex character identity for a (prompt, model) pair.

    The pair is encoded as a JSON array before hashing so that no two
    different pairs share a hash input, e.g. ("ab", "c") vs ("a", "bc").
    """
    payload = orjson.dumps([prompt, model])
    return hashlib.sha256(payload).hexdigest()[:FINGERPRINT_LENGTH]


def output_file_name(hash_: str) -> str:
    return f"{hash_}.{IMAGE_EXTENSION}"


class CacheStore:
    """In-memory view of ``cache.json`` bound to one output directory.

    Every read and write goes through ``self._lock`` so worker threads can
    share one store. At most one entry exists per fingerprint.
    """

    def __init__(self, directory: Union[str, Path], entries: Optional[List[CacheEntry]] = None):
        self.directory = Path(directory)
        self.path = self.directory / CACHE_FILE_NAME
        self._lock = threading.RLock()
        self._entries: List[CacheEntry] = []
        self._index: Dict[str, int] = {}
        for entry in entries or []:
            self._put(entry)

    @classmethod
    def load(cls, directory: Union[str, Path]) -> "CacheStore":
        """Load the store for ``directory``; a missing cache file yields an empty store."""
        path = Path(directory) / CACHE_FILE_NAME
        try:
            raw = path.read_bytes()
        except FileNotFoundError:
            logger.debug("No cache file at %s, starting empty", path)
            return cls(directory)
        except OSError as e:
            raise CacheCorrupt(f"failed to read cache {path}: {e}") from e
        try:
            parsed = CacheFile.model_validate(orjson.loads(raw))
        except (orjson.JSONDecodeError, ValidationError) as e:
            raise CacheCorrupt(f"failed to parse cache {path}: {e}") from e
        store = cls(directory, parsed.entries)
        if len(store) != len(parsed.entries):
            logger.warning(
                "Cache %s had %d duplicate entries; kept the latest of each",
                path,
                len(parsed.entries) - len(store),
            )
        logger.debug("Loaded %d cache entries from %s", len(store), path)
        return store

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    @property
    def entries(self) -> List[CacheEntry]:
        with self._lock:
            return list(self._entries)

    def _put(self, entry: CacheEntry) -> None:
        pos = self._index.get(entry.hash)
        if pos is None:
            self._index[entry.hash] = len(self._entries)
            self._entries.append(entry)
        else:
            self._entries[pos] = entry

    def lookup(self, hash_: str) -> Optional[CacheEntry]:
        with self._lock:
            pos = self._index.get(hash_)
            return self._entries[pos] if pos is not None else None

    def hit(self, hash_: str) -> Optional[Path]:
        """Return the output path if ``hash_`` is cached and its file still exists."""
        entry = self.lookup(hash_)
        if entry is None:
            return None
        output_path = self.directory / entry.output_file
        if not output_path.is_file():
            logger.info("Cache entry %s points at missing file %s; treating as miss", hash_, output_path)
            return None
        return output_path

    def upsert(self, prompt: str, model: str, output_file: str) -> CacheEntry:
        """Insert or replace the entry for (prompt, model).

        On replace the ``created_at`` timestamp is refreshed, since the
        output file was regenerated.
        """
        entry = CacheEntry(
            hash=fingerprint(prompt, model),
            prompt=prompt,
            model=model,
            output_file=output_file,
            created_at=datetime.now(timezone.utc),
        )
        with self._lock:
            self._put(entry)
        return entry

    def save(self) -> None:
        """Write all entries to ``cache.json`` via a temp file and rename."""
        with self._lock:
            payload = orjson.dumps(
                CacheFile(entries=self._entries).model_dump(mode="json"),
                option=orjson.OPT_INDENT_2,
            )
            tmp = None
            try:
                self.directory.mkdir(parents=True, exist_ok=True)
                fd, tmp = tempfile.mkstemp(dir=self.directory, prefix=".cache-", suffix=".tmp")
                with os.fdopen(fd, "wb") as f:
                    f.write(payload)
                os.replace(tmp, self.path)
            except OSError as e:
                if tmp is not None and os.path.exists(tmp):
                    os.remove(tmp)
                raise CacheSaveFailed(f"failed to save cache {self.path}: {e}") from e
            logger.debug("Saved %d cache entries to %s", len(self._entries), self.path)


__all__ = [
    "CACHE_FILE_NAME",
    "IMAGE_EXTENSION",
    "CacheStore",
    "fingerprint",
    "output_file_name",
]
