"""
Concurrency-safe, write-through store of labeled landmark samples.

Every mutation rewrites the whole collection to a JSON file (temp file +
atomic rename). This is fine for the expected volume of a recording session
(hundreds of samples); it would need an incremental format for millions.

The in-memory collection is authoritative. A failed write raises
PersistenceError after the mutation has been applied in memory; the next
mutation (or flush()) writes the full collection again.

File layout::

    [
      {"label": "fist", "landmarks": [{"x": 0.51, "y": 0.62, "z": -0.01}, ...]},
      ...
    ]
"""

import os
import json
import logging
import tempfile
import threading
from collections import Counter

from core.errors import PersistenceError
from core.types import LandmarkSample

logger = logging.getLogger(__name__)


class SampleStore:
    """Thread-safe sample collection persisted on every mutation.

    Two locks: ``_lock`` guards the in-memory list (held briefly, so
    readers never wait on disk I/O); ``_io_lock`` serializes file access.
    Each mutation bumps a version number and a write is skipped when a
    newer version has already reached disk.
    """

    def __init__(self, path: str, autoload: bool = True):
        self._path = path
        self._lock = threading.Lock()
        self._io_lock = threading.Lock()
        self._samples = []
        self._version = 0
        self._written_version = 0

        if autoload:
            try:
                samples = self.reload()
                logger.info("Loaded %d samples from %s", len(samples), path)
            except PersistenceError as e:
                logger.warning("Starting with empty sample store: %s", e)

    @property
    def path(self) -> str:
        return self._path

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def all(self) -> tuple:
        """Snapshot of all samples in insertion order."""
        with self._lock:
            return tuple(self._samples)

    def __len__(self):
        with self._lock:
            return len(self._samples)

    def last(self, label: str = None):
        """Most recent sample, optionally restricted to one label."""
        with self._lock:
            for sample in reversed(self._samples):
                if label is None or sample.label == label:
                    return sample
        return None

    def count_by_label(self) -> dict:
        with self._lock:
            return dict(Counter(s.label for s in self._samples))

    def saved_file(self):
        """Path of the persistence file if it exists, else None."""
        return self._path if os.path.isfile(self._path) else None

    # ------------------------------------------------------------------
    # Mutations (write-through)
    # ------------------------------------------------------------------

    def append(self, sample: LandmarkSample):
        with self._lock:
            self._samples.append(sample)
            snapshot, version = self._bump()
        self._persist(snapshot, version)

    def remove(self, predicate) -> int:
        """Remove every sample whose label satisfies ``predicate(label)``.

        Returns:
            Number of samples removed
        """
        with self._lock:
            before = len(self._samples)
            self._samples = [s for s in self._samples if not predicate(s.label)]
            removed = before - len(self._samples)
            snapshot, version = self._bump()
        self._persist(snapshot, version)
        return removed

    def remove_label(self, label: str) -> int:
        return self.remove(lambda lbl: lbl == label)

    def clear(self):
        """Empty the collection and persist the empty state."""
        with self._lock:
            self._samples = []
            snapshot, version = self._bump()
        self._persist(snapshot, version)

    def clear_saved(self):
        """Delete the persistence file and empty the in-memory collection.

        The in-memory clear and the delete share one I/O critical section,
        so an append made after the clear is always written after the delete.
        """
        with self._io_lock:
            with self._lock:
                self._samples = []
                _, version = self._bump()
            self._delete()
            self._written_version = max(self._written_version, version)
        logger.info("Sample file deleted: %s", self._path)

    def flush(self):
        """Write the current collection again (retry after a failed write)."""
        with self._lock:
            snapshot, version = tuple(self._samples), self._version
        self._persist(snapshot, version, force=True)

    def reload(self) -> tuple:
        """Replace in-memory state with the file contents.

        A missing file yields an empty collection. Mutations not yet on disk
        are written first, so a reload never drops an accepted append.

        Raises:
            PersistenceError: pending write failed, or file unreadable or
                malformed (memory unchanged)
        """
        with self._io_lock:
            while True:
                with self._lock:
                    snapshot, version = tuple(self._samples), self._version
                if version > self._written_version:
                    self._write(snapshot)
                    self._written_version = version
                samples = self._read()
                with self._lock:
                    # A mutation landed while reading; write it and read again
                    if self._version != version:
                        continue
                    self._samples = list(samples)
                    self._version += 1
                    self._written_version = self._version
                return tuple(samples)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _bump(self):
        """Caller holds _lock."""
        self._version += 1
        return tuple(self._samples), self._version

    def _persist(self, snapshot, version, force=False):
        with self._io_lock:
            if not force and version <= self._written_version:
                return
            self._write(snapshot)
            self._written_version = max(self._written_version, version)

    def _delete(self):
        try:
            os.remove(self._path)
        except FileNotFoundError:
            pass
        except OSError as e:
            raise PersistenceError("Cannot delete %s: %s" % (self._path, e)) from e

    def _write(self, samples):
        directory = os.path.dirname(os.path.abspath(self._path))
        tmp_path = None
        try:
            os.makedirs(directory, exist_ok=True)
            with tempfile.NamedTemporaryFile("w", dir=directory, suffix=".tmp",
                                             delete=False) as f:
                tmp_path = f.name
                json.dump([s.to_dict() for s in samples], f)
            os.replace(tmp_path, self._path)
        except (OSError, TypeError, ValueError) as e:
            if tmp_path and os.path.exists(tmp_path):
                os.remove(tmp_path)
            logger.error("Saving samples to %s failed: %s", self._path, e)
            raise PersistenceError("Cannot write %s: %s" % (self._path, e)) from e
        logger.debug("Saved %d samples to %s", len(samples), self._path)

    def _read(self):
        try:
            with open(self._path, "r") as f:
                data = json.load(f)
        except FileNotFoundError:
            return []
        except (OSError, ValueError) as e:
            raise PersistenceError("Cannot read %s: %s" % (self._path, e)) from e

        if not isinstance(data, list):
            raise PersistenceError("%s does not contain a sample list" % self._path)
        try:
            return [LandmarkSample.from_dict(item) for item in data]
        except (KeyError, TypeError, ValueError) as e:
            raise PersistenceError("Malformed sample in %s: %s" % (self._path, e)) from e
