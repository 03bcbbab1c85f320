"""Configuration cache with modification-time polling.

Parsed configuration is cached per resolved file path. A background
daemon thread polls the modification time of every cached file and marks
entries invalid when it changes, so the next load re-reads and re-parses.

The cache is an explicit object owned by the orchestrating caller, which
controls its lifecycle through start() and shutdown(). shutdown() is also
registered with atexit; the poller is a daemon thread joined with a
bounded timeout, so it never holds up interpreter exit.
"""

import atexit
import threading
from pathlib import Path
from typing import Callable, Dict, List, Optional, Set, TypeVar, Union

import structlog

from src.devspace.cache.models import CacheEntry
from src.devspace.errors import ConfigParseError


logger = structlog.get_logger()

T = TypeVar("T")

Parser = Callable[[str, Path], T]

DEFAULT_POLL_INTERVAL_SECONDS = 2.0

# Upper bound on how long shutdown() waits for the poller thread
SHUTDOWN_JOIN_TIMEOUT_SECONDS = 1.0


class ConfigCache:
    """Caches parsed configuration files keyed by resolved path.

    Attributes:
        poll_interval: Seconds between modification-time polling passes.
        enabled: When False, every load reads and parses the file.
    """

    def __init__(
        self,
        poll_interval: float = DEFAULT_POLL_INTERVAL_SECONDS,
        enabled: bool = True,
    ):
        self.poll_interval = poll_interval
        self.enabled = enabled
        self._entries: Dict[Path, CacheEntry] = {}
        self._unwatchable: Set[Path] = set()
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._atexit_registered = False

    @classmethod
    def from_settings(cls, settings) -> "ConfigCache":
        """Build a cache from DevspaceSettings."""
        return cls(
            poll_interval=settings.config_poll_interval_seconds,
            enabled=not settings.disable_config_cache,
        )

    # -------------------------------------------------------------------------
    # Loading
    # -------------------------------------------------------------------------

    def load(self, path: Union[str, Path], parser: Parser) -> T:
        """Return the parsed configuration at path.

        Args:
            path: Path to the configuration file.
            parser: Callable receiving (text, resolved_path) and returning the
                    parsed value. Errors it raises propagate and nothing is
                    cached.

        Returns:
            The cached value when a valid entry exists, otherwise the
            freshly parsed value.

        Raises:
            OSError: If the file cannot be read.
            ConfigParseError: If the file is not valid UTF-8 text.
        """
        resolved = Path(path).expanduser().resolve()

        if not self.enabled or resolved in self._unwatchable:
            return self._read(resolved, parser)

        with self._lock:
            entry = self._entries.get(resolved)
            if entry is not None and entry.valid:
                return entry.value

        # mtime is taken before reading so a write racing the read is
        # detected on the next poll
        try:
            mtime_ns: Optional[int] = resolved.stat().st_mtime_ns
        except OSError:
            mtime_ns = None

        value = self._read(resolved, parser)

        if mtime_ns is None:
            self._disable_for(resolved, "stat failed")
            return value

        try:
            self._ensure_watcher()
        except RuntimeError as e:
            self._disable_for(resolved, str(e))
            return value

        with self._lock:
            self._entries[resolved] = CacheEntry(
                source_path=resolved,
                value=value,
                mtime_ns=mtime_ns,
            )

        logger.debug("Configuration cached", path=str(resolved))
        return value

    def invalidate(self, path: Optional[Union[str, Path]] = None) -> None:
        """Drop the entry for path, or every entry when path is None."""
        with self._lock:
            if path is None:
                self._entries.clear()
                return
            self._entries.pop(Path(path).expanduser().resolve(), None)

    def is_cached(self, path: Union[str, Path]) -> bool:
        """Return True if a valid entry exists for path."""
        resolved = Path(path).expanduser().resolve()
        with self._lock:
            entry = self._entries.get(resolved)
            return entry is not None and entry.valid

    def check_for_changes(self) -> List[Path]:
        """Run one polling pass over all valid entries.

        Entries whose file modification time changed, or whose file can no
        longer be stat'ed, are marked invalid.

        Returns:
            The paths invalidated by this pass.
        """
        with self._lock:
            watched = [e for e in self._entries.values() if e.valid]

        changed = []
        for entry in watched:
            try:
                current = entry.source_path.stat().st_mtime_ns
            except OSError:
                current = None
            if current != entry.mtime_ns:
                changed.append(entry.source_path)

        if changed:
            with self._lock:
                for changed_path in changed:
                    entry = self._entries.get(changed_path)
                    if entry is not None:
                        entry.valid = False
            for changed_path in changed:
                logger.debug("Configuration changed", path=str(changed_path))

        return changed

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def start(self) -> None:
        """Start the polling thread if caching is enabled."""
        if not self.enabled:
            return
        try:
            self._ensure_watcher()
        except RuntimeError as e:
            # Every path becomes uncached, loads still work
            logger.warning("Configuration watcher unavailable", error=str(e))
            self.enabled = False

    def shutdown(self) -> None:
        """Stop polling and release all entries."""
        self._stop.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=SHUTDOWN_JOIN_TIMEOUT_SECONDS)
        self._thread = None

        with self._lock:
            self._entries.clear()

        if self._atexit_registered:
            atexit.unregister(self.shutdown)
            self._atexit_registered = False

    @property
    def watching(self) -> bool:
        """True while the polling thread is alive."""
        return self._thread is not None and self._thread.is_alive()

    def _ensure_watcher(self) -> None:
        if self.watching:
            return
        self._stop = threading.Event()
        thread = threading.Thread(
            target=self._poll,
            args=(self._stop,),
            name="devspace-config-watch",
            daemon=True,
        )
        thread.start()
        self._thread = thread
        if not self._atexit_registered:
            atexit.register(self.shutdown)
            self._atexit_registered = True

    def _poll(self, stop: threading.Event) -> None:
        while not stop.wait(self.poll_interval):
            try:
                self.check_for_changes()
            except Exception as e:
                logger.warning("Configuration poll failed", error=str(e))

    def _disable_for(self, path: Path, reason: str) -> None:
        self._unwatchable.add(path)
        logger.warning(
            "Configuration watch unavailable, caching disabled for path",
            path=str(path),
            reason=reason,
        )

    @staticmethod
    def _read(path: Path, parser: Parser) -> T:
        try:
            text = path.read_text(encoding="utf-8")
        except UnicodeDecodeError as e:
            raise ConfigParseError(path, f"not valid UTF-8 text: {e}") from e
        return parser(text, path)
