"""
Persistence Coordinator - turns change notifications into file writes.
======================================================================

A coordinator owns one destination (path, format, encoding) and writes the
whole current document there, either:

- blocking (save_now): snapshot, encode and write in the calling thread;
  every error propagates to the caller
- non-blocking (save): snapshot in the calling thread, then encode and write
  on the shared writer thread; errors go to the error listeners

Ordering:
    All background writes run on one single-worker ThreadPoolExecutor, so
    they complete in the order they were issued. Every write also holds the
    per-path lock from storage, and save_now first drains this coordinator's
    pending writes, so an older snapshot can never overwrite a newer one.

Shutdown:
    The writer thread is drained at interpreter exit. A save issued after the
    executor has shut down is written inline instead of being dropped.
"""

import atexit
import concurrent.futures
import logging
import threading
from typing import Any, Callable, List, Optional

from .codecs import CodecRegistry, get_registry
from .errors import ConfigError, EncodeError
from .observer import to_plain
from .storage import write_text

logger = logging.getLogger(__name__)

ErrorListener = Callable[[BaseException], None]

_executor: Optional[concurrent.futures.ThreadPoolExecutor] = None
_executor_lock = threading.Lock()
_atexit_registered = False


def get_executor() -> concurrent.futures.ThreadPoolExecutor:
    """Get or create the shared single-worker writer executor."""
    global _executor, _atexit_registered
    with _executor_lock:
        if _executor is None:
            _executor = concurrent.futures.ThreadPoolExecutor(
                max_workers=1, thread_name_prefix="reactive-file-writer"
            )
            if not _atexit_registered:
                atexit.register(shutdown_executor)
                _atexit_registered = True
        return _executor


def shutdown_executor(wait: bool = True) -> None:
    """Drain and stop the writer executor; the next save starts a new one."""
    global _executor
    with _executor_lock:
        executor, _executor = _executor, None
    if executor is not None:
        executor.shutdown(wait=wait)


class PersistenceCoordinator:
    """
    Writes snapshots of one document to one file.

    Args:
        path: Destination file, or None for a memory-only document
        format: Codec name used to encode snapshots
        encoding: Text encoding of the file
        get_root: Returns the current root of the document
        lock: Document lock, held while taking snapshots
        registry: Codec registry; the process-wide one if None
    """

    def __init__(
        self,
        path: Optional[str],
        format: str,
        encoding: str,
        get_root: Callable[[], Any],
        lock: Optional[threading.RLock] = None,
        registry: Optional[CodecRegistry] = None,
    ):
        self.path = path
        self.format = format
        self.encoding = encoding
        self._get_root = get_root
        self._lock = lock if lock is not None else threading.RLock()
        self._registry = registry

        self._pending = 0
        self._idle = threading.Condition()
        self._error_listeners: List[ErrorListener] = []

    @property
    def registry(self) -> CodecRegistry:
        return self._registry if self._registry is not None else get_registry()

    @property
    def pending(self) -> int:
        """Number of background writes issued but not finished."""
        with self._idle:
            return self._pending

    # ========================================================================
    # ERROR CHANNEL
    # ========================================================================

    def add_error_listener(self, listener: ErrorListener) -> None:
        self._error_listeners.append(listener)

    def remove_error_listener(self, listener: ErrorListener) -> None:
        self._error_listeners.remove(listener)

    def _report(self, error: BaseException) -> None:
        listeners = list(self._error_listeners)
        if not listeners:
            logger.error(
                "Background save of %s failed: %s",
                self.path,
                error,
                exc_info=(type(error), error, error.__traceback__),
            )
            return
        for listener in listeners:
            try:
                listener(error)
            except Exception:
                logger.exception("Error listener %r failed", listener)

    # ========================================================================
    # SNAPSHOT / WRITE
    # ========================================================================

    def _require_path(self) -> str:
        if self.path is None:
            raise ConfigError("Document has no destination path to save to")
        return self.path

    def snapshot(self) -> Any:
        """Plain deep copy of the current root, taken under the document lock."""
        with self._lock:
            try:
                return to_plain(self._get_root())
            except ValueError as e:
                raise EncodeError(self.format, e) from e

    def render(self, snapshot: Any, format: Optional[str] = None) -> str:
        return self.registry.encode(format or self.format, snapshot)

    def _write(self, snapshot: Any, format: Optional[str] = None) -> None:
        path = self._require_path()
        # Encode fully before touching the file
        text = self.render(snapshot, format)
        write_text(path, text, self.encoding)
        logger.debug("Saved %s (%s)", path, format or self.format)

    def _run(self, snapshot: Any, format: str) -> None:
        # Runs on the writer thread. Reporting and the pending count both
        # settle before the future resolves, so flush() is a real barrier.
        try:
            self._write(snapshot, format)
        except Exception as e:
            self._report(e)
            raise
        finally:
            with self._idle:
                self._pending -= 1
                self._idle.notify_all()

    # ========================================================================
    # SAVE MODES
    # ========================================================================

    def flush(self, timeout: Optional[float] = None) -> None:
        """
        Wait for every pending background write.

        Failures of those writes were already reported to the error channel
        and are not raised here.

        Raises:
            TimeoutError: If writes are still pending after timeout seconds
        """
        with self._idle:
            if not self._idle.wait_for(lambda: self._pending == 0, timeout):
                raise TimeoutError(
                    f"{self._pending} write(s) to {self.path} still pending after {timeout}s"
                )

    def save_now(self, timeout: Optional[float] = None) -> None:
        """Blocking save; the file holds the current state when this returns."""
        self._require_path()
        self.flush(timeout)
        self._write(self.snapshot())

    def save(self) -> concurrent.futures.Future:
        """
        Non-blocking save of the current state.

        Returns:
            A Future resolved once the write finished. A failed write also
            reaches the error listeners.
        """
        self._require_path()

        try:
            snapshot = self.snapshot()
        except EncodeError as e:
            return self._failed(e)

        with self._idle:
            self._pending += 1
        try:
            return get_executor().submit(self._run, snapshot, self.format)
        except RuntimeError:
            with self._idle:
                self._pending -= 1
                self._idle.notify_all()
        # Executor already shut down (interpreter exit): write inline
        logger.debug("Writer executor unavailable, saving %s inline", self.path)
        return self._write_inline(snapshot)

    def _write_inline(self, snapshot: Any) -> concurrent.futures.Future:
        try:
            self._write(snapshot)
        except Exception as e:
            return self._failed(e)
        future: concurrent.futures.Future = concurrent.futures.Future()
        future.set_result(None)
        return future

    def _failed(self, error: BaseException) -> concurrent.futures.Future:
        self._report(error)
        future: concurrent.futures.Future = concurrent.futures.Future()
        future.set_exception(error)
        return future
