"""
ReactiveFile - a file bound to a live, self-saving object tree.
===============================================================

    from reactive_file import ReactiveFile

    doc = ReactiveFile.load_sync("settings.json")
    doc["count"] += 1                 # saved automatically
    doc.value["window"] = {"w": 800}  # nested dicts are observed too
    doc["window"]["w"] = 1024         # saved again

    doc = await ReactiveFile.load("settings.yml", async_save=False)
    doc = ReactiveFile.adopt({"theme": "dark"}, save_to="out/prefs.toml")

Loading decodes the file with the codec registered for its extension (or the
`format` option), wraps the result with the change observer and wires every
notification to the persistence coordinator. The document always writes the
whole tree, never a patch.
"""

import asyncio
import concurrent.futures
import dataclasses
import logging
import os
import threading
from typing import Any, Iterator, Optional, Tuple

from .codecs import get_registry
from .coordinator import ErrorListener, PersistenceCoordinator
from .errors import ConfigError, DecodeError
from .observer import ChangeEvent, is_observed, rebind
from .options import LoadOptions
from .storage import read_text

logger = logging.getLogger(__name__)


class ReactiveFile:
    """
    An object tree bound to a file.

    Attributes:
        path: Destination file (None for a memory-only document)
        format: Codec name used to encode the tree
        options: The LoadOptions this document was created with

    Every mutation of `value` (or of anything nested in it, when deep) saves
    the whole tree, in the background when async_save is True, before the
    mutating statement returns otherwise.
    """

    def __init__(
        self,
        value: Any,
        options: Optional[LoadOptions] = None,
        path: Optional[str] = None,
    ):
        if not isinstance(value, (dict, list)):
            raise TypeError(
                f"A ReactiveFile root must be a dict or list, got {type(value).__name__}"
            )

        self.options = options if options is not None else LoadOptions()
        self.path = self.options.save_to or path
        if self.path is not None:
            self.format = self.options.resolve_format(self.path)
            # Fail now rather than on the first save
            get_registry().get(self.format)
        else:
            self.format = self.options.format

        self._lock = threading.RLock()
        self._value = value
        self._coordinator = PersistenceCoordinator(
            self.path,
            self.format,
            self.options.encoding,
            get_root=lambda: self._value,
            lock=self._lock,
        )
        if self.options.on_error is not None:
            self._coordinator.add_error_listener(self.options.on_error)

        self.react()

    # ========================================================================
    # CONSTRUCTION
    # ========================================================================

    @staticmethod
    def _prepare(path: Any, kwargs: dict) -> Tuple[str, LoadOptions, str]:
        if isinstance(path, os.PathLike):
            path = os.fspath(path)
        if not isinstance(path, str) or not path:
            raise ConfigError(f"path must be a non-empty string, got {path!r}")
        options = LoadOptions.from_kwargs(**kwargs)
        # Decode and save with the format of the loaded file, even with save_to
        format = options.resolve_format(path)
        # Unknown formats fail before the file is touched
        get_registry().get(format)
        return path, dataclasses.replace(options, format=format), format

    @classmethod
    def _from_text(
        cls, text: str, path: str, format: str, options: LoadOptions
    ) -> "ReactiveFile":
        value = get_registry().decode(format, text)
        if not isinstance(value, (dict, list)):
            raise DecodeError(
                format,
                TypeError(f"document root must be a mapping or list, got {type(value).__name__}"),
            )
        logger.debug("Loaded %s as %s", path, format)
        return cls(value, options, path)

    @classmethod
    async def load(cls, path: str, **options: Any) -> "ReactiveFile":
        """
        Read and decode path without blocking the event loop.

        Raises:
            UnknownFormat: No codec for the format
            StorageError: The file could not be read
            DecodeError: The content is not valid text in the given encoding,
                or the codec rejected it
            ConfigError: Invalid options
        """
        path, opts, format = cls._prepare(path, options)
        loop = asyncio.get_running_loop()
        try:
            text = await loop.run_in_executor(None, read_text, path, opts.encoding)
        except UnicodeDecodeError as e:
            raise DecodeError(format, e) from e
        return cls._from_text(text, path, format, opts)

    @classmethod
    def load_sync(cls, path: str, **options: Any) -> "ReactiveFile":
        """Blocking version of load()."""
        path, opts, format = cls._prepare(path, options)
        try:
            text = read_text(path, opts.encoding)
        except UnicodeDecodeError as e:
            raise DecodeError(format, e) from e
        return cls._from_text(text, path, format, opts)

    @classmethod
    def adopt(cls, value: Any, **options: Any) -> "ReactiveFile":
        """
        Bind an existing dict or list to the file given by save_to.

        The tree is copied into observed containers: keep using doc.value,
        not the original object. The file is written once right away.

        Raises:
            ConfigError: save_to is missing or options are invalid
        """
        opts = LoadOptions.from_kwargs(**options)
        if not opts.save_to:
            raise ConfigError("adopt() requires a save_to path")
        doc = cls(value, opts)
        doc._persist()
        return doc

    # ========================================================================
    # OBSERVATION
    # ========================================================================

    def react(self) -> Any:
        """
        (Re)attach observation to the current tree.

        Use after changing the tree through a path the observer cannot see
        (for example dict.__setitem__ on a node). Calling it again replaces
        the previous observation, so each mutation still saves once. A tree
        still observed by another document is copied, never taken over. Does
        nothing when reactive=False.
        """
        if self.options.reactive:
            self._value = rebind(
                self._value,
                self.options.deep,
                self._on_change,
                self._lock,
                owner=self,
            )
        return self._value

    def _on_change(self, event: ChangeEvent) -> None:
        if self.path is None:
            return
        self._persist()

    def _persist(self) -> None:
        if self.options.async_save:
            self._coordinator.save()
        else:
            self._coordinator.save_now()

    @property
    def value(self) -> Any:
        """The live root object."""
        return self._value

    @value.setter
    def value(self, new_value: Any) -> None:
        if not isinstance(new_value, (dict, list)):
            raise TypeError(
                f"A ReactiveFile root must be a dict or list, got {type(new_value).__name__}"
            )
        with self._lock:
            previous = self._value
            if is_observed(previous) and previous._binding is not None:
                if previous._binding.owner is self:
                    previous._binding.deactivate()
            self._value = new_value
            self.react()
        if self.options.reactive and self.path is not None:
            self._persist()

    # ========================================================================
    # SAVING
    # ========================================================================

    def save(self) -> concurrent.futures.Future:
        """Save in the background; failures go to the error listeners."""
        return self._coordinator.save()

    def save_now(self, timeout: Optional[float] = None) -> None:
        """Save before returning, after pending background saves finished."""
        self._coordinator.save_now(timeout)

    def flush(self, timeout: Optional[float] = None) -> None:
        """Wait for pending background saves."""
        self._coordinator.flush(timeout)

    @property
    def pending(self) -> int:
        return self._coordinator.pending

    def add_error_listener(self, listener: ErrorListener) -> None:
        """Receive exceptions raised by background saves."""
        self._coordinator.add_error_listener(listener)

    def remove_error_listener(self, listener: ErrorListener) -> None:
        self._coordinator.remove_error_listener(listener)

    # ========================================================================
    # CONTAINER PROTOCOL
    # ========================================================================

    def __getitem__(self, key: Any) -> Any:
        return self._value[key]

    def __setitem__(self, key: Any, value: Any) -> None:
        self._value[key] = value

    def __delitem__(self, key: Any) -> None:
        del self._value[key]

    def __contains__(self, key: Any) -> bool:
        return key in self._value

    def __iter__(self) -> Iterator[Any]:
        return iter(self._value)

    def __len__(self) -> int:
        return len(self._value)

    def get(self, key: Any, default: Any = None) -> Any:
        return self._value.get(key, default)

    def __enter__(self) -> "ReactiveFile":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.flush()

    def __repr__(self) -> str:
        return f"ReactiveFile({self.path!r}, format={self.format!r}, value={self._value!r})"
