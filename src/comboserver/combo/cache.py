"""
=============================================================================
CONTENT CACHE
=============================================================================

Maps a fingerprint to the payload built for it, building each payload at
most once no matter how many requests ask for it at the same time.

=============================================================================
SINGLE-FLIGHT
=============================================================================

    Thread A ── get_or_build(fp) ──┐
    Thread B ── get_or_build(fp) ──┼──► one Future per fingerprint
    Thread C ── get_or_build(fp) ──┘         │
                                             │
          A finds no entry, registers the Future under the lock,
          releases the lock, runs builder() in its own thread
                                             │
          B and C find A's Future and block on future.result()
                                             │
          builder() returns  → every caller gets the same CachedPayload
          builder() raises   → every waiter sees the same exception and
                               the Future is dropped, so the next call
                               retries from scratch

The lock only guards the dict (check-then-insert is atomic); builds run
outside it, so different fingerprints build in parallel.

A build belongs to the cache, not to the request that started it: if that
client disconnects, the build still finishes and the result is stored for
everyone else.

=============================================================================
DISK PERSISTENCE (optional)
=============================================================================

With a cache directory configured, each payload is also written as

    <cache_dir>/<namespace>/<fingerprint>.<ext>      combined body
    <cache_dir>/<namespace>/<fingerprint>.<ext>.gz   gzip of the body

and a memory miss first tries those files before building. The fingerprint
covers every input mtime and the namespace (ComboConfig.build_digest)
covers the minify and gzip settings, so a file found on disk is never stale.

=============================================================================
"""

from concurrent.futures import Future
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, Optional, Tuple
import logging
import os
import tempfile
import threading

from .errors import DirectoryError


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CachedPayload:
    """
    A built combo response body.

    Attributes:
        body:          combined, possibly minified bytes
        gzipped:       gzip encoding of body; None when compression is off
        last_modified: newest mtime of the inputs
        fingerprint:   cache key that produced it
    """

    body: bytes
    gzipped: Optional[bytes]
    last_modified: float
    fingerprint: str

    @property
    def size(self) -> int:
        return len(self.body) + len(self.gzipped or b"")


@dataclass
class CacheStats:
    entries: int = 0
    bytes: int = 0
    hits: int = 0
    misses: int = 0
    builds: int = 0
    disk_hits: int = 0
    failures: int = 0

    def to_dict(self) -> dict:
        return {
            "entries": self.entries,
            "bytes": self.bytes,
            "hits": self.hits,
            "misses": self.misses,
            "builds": self.builds,
            "disk_hits": self.disk_hits,
            "failures": self.failures,
        }


Builder = Callable[[], CachedPayload]


class ContentCache:
    """
    Single-flight, memoizing payload cache.

    Example:
        cache = ContentCache()
        payload = cache.get_or_build(fp, lambda: build_payload(...))
    """

    def __init__(
        self,
        cache_dir: Optional[str] = None,
        extension: str = "",
        namespace: str = "",
    ):
        """
        Args:
            cache_dir: Directory to persist payloads in, or None for
                memory only.
            extension: Default file suffix for persisted payloads; callers
                normally pass one per call.
            namespace: Subdirectory of cache_dir for this set of build
                settings, normally ComboConfig.build_digest.
        """
        self._entries: Dict[str, Future] = {}
        self._lock = threading.Lock()
        self._stats = CacheStats()
        self._extension = extension
        self._cache_dir: Optional[Path] = None

        if cache_dir:
            self._cache_dir = Path(cache_dir) / namespace if namespace else Path(cache_dir)

            try:
                self._cache_dir.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise DirectoryError(self._cache_dir, e.strerror or str(e))
            if not os.access(self._cache_dir, os.W_OK):
                raise DirectoryError(self._cache_dir, "not writable")

    # =========================================================================
    # LOOKUP
    # =========================================================================

    def get_or_build(
        self,
        fingerprint: str,
        builder: Builder,
        extension: Optional[str] = None,
    ) -> CachedPayload:
        """
        Return the payload for fingerprint, building it if needed.

        Args:
            fingerprint: Cache key.
            builder: Zero-argument callable producing the payload; called
                at most once per fingerprint at a time.
            extension: Suffix for the persisted file ("css" / "js").

        Raises:
            Whatever builder raised, for the caller that ran it and for
            every caller that waited on it.
        """
        with self._lock:
            future = self._entries.get(fingerprint)
            if future is None:
                future = Future()
                self._entries[fingerprint] = future
                owner = True
                self._stats.misses += 1
            else:
                owner = False
                self._stats.hits += 1

        if not owner:
            return future.result()

        extension = extension or self._extension
        try:
            payload = self._load(fingerprint, extension)
            if payload is None:
                logger.debug(f"Building payload {fingerprint[:12]}")
                payload = builder()
                with self._lock:
                    self._stats.builds += 1
                self._store(payload, extension)
        except BaseException as e:
            with self._lock:
                self._entries.pop(fingerprint, None)
                self._stats.failures += 1
            future.set_exception(e)
            raise

        with self._lock:
            self._stats.entries += 1
            self._stats.bytes += payload.size
        future.set_result(payload)
        return payload

    def get(self, fingerprint: str) -> Optional[CachedPayload]:
        """Completed payload for fingerprint, without building or waiting."""
        with self._lock:
            future = self._entries.get(fingerprint)
        if future is None or not future.done() or future.exception() is not None:
            return None
        return future.result()

    def __contains__(self, fingerprint: str) -> bool:
        return self.get(fingerprint) is not None

    def __len__(self) -> int:
        return self.stats.entries

    # =========================================================================
    # ADMINISTRATION
    # =========================================================================

    def purge(self) -> int:
        """
        Drop every completed entry; in-flight builds are left to finish.

        Returns:
            Number of entries removed.
        """
        with self._lock:
            done = [fp for fp, f in self._entries.items() if f.done()]
            for fp in done:
                del self._entries[fp]
            self._stats.entries = 0
            self._stats.bytes = 0
        logger.info(f"Content cache purged ({len(done)} entries)")
        return len(done)

    @property
    def stats(self) -> CacheStats:
        with self._lock:
            return CacheStats(**self._stats.to_dict())

    # =========================================================================
    # DISK PERSISTENCE
    # =========================================================================

    def _paths(self, fingerprint: str, extension: str) -> Tuple[Path, Path]:
        name = f"{fingerprint}.{extension}" if extension else fingerprint
        return self._cache_dir / name, self._cache_dir / f"{name}.gz"

    def _load(self, fingerprint: str, extension: str) -> Optional[CachedPayload]:
        if self._cache_dir is None:
            return None

        body_path, gzip_path = self._paths(fingerprint, extension)
        try:
            body = body_path.read_bytes()
            last_modified = body_path.stat().st_mtime
        except FileNotFoundError:
            return None
        except OSError as e:
            logger.warning(f"Ignoring unreadable cache file {body_path}: {e}")
            return None

        try:
            gzipped = gzip_path.read_bytes()
        except OSError:
            gzipped = None

        with self._lock:
            self._stats.disk_hits += 1
        logger.debug(f"Loaded payload {fingerprint[:12]} from {body_path}")
        return CachedPayload(
            body=body,
            gzipped=gzipped,
            last_modified=last_modified,
            fingerprint=fingerprint,
        )

    def _store(self, payload: CachedPayload, extension: str) -> None:
        if self._cache_dir is None:
            return

        body_path, gzip_path = self._paths(payload.fingerprint, extension)
        self._write_atomic(body_path, payload.body)
        if payload.gzipped is not None:
            self._write_atomic(gzip_path, payload.gzipped)
        # the file mtime carries last_modified across restarts
        try:
            os.utime(body_path, (payload.last_modified, payload.last_modified))
        except OSError as e:
            logger.warning(f"Could not set mtime on {body_path}: {e}")

    def _write_atomic(self, path: Path, data: bytes) -> None:
        try:
            fd, tmp = tempfile.mkstemp(dir=self._cache_dir, prefix=".tmp-")
            try:
                with os.fdopen(fd, "wb") as f:
                    f.write(data)
                os.replace(tmp, path)
            except BaseException:
                os.unlink(tmp)
                raise
        except OSError as e:
            raise DirectoryError(self._cache_dir, e.strerror or str(e))
