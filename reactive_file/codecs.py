"""
Codec Registry - format name to (decode, encode) pairs.

A codec turns file text into plain Python data and back. Registering a new
format is a single call:

    register("ini", parse_ini, dump_ini)

Implementation:
    - CodecRegistry: lock-guarded mapping of normalized format -> Codec
    - get_registry(): lazy process-wide singleton holding the built-in formats
    - register/alias/decode/encode: module functions bound to that singleton

Thread Safety:
    Registration and lookup share one RLock, so a format registered from one
    thread is visible to a document saving from another.
"""

import threading
from typing import Any, Callable, Dict, Iterable, List, NamedTuple

from .errors import DecodeError, EncodeError, UnknownFormat

DecodeFunction = Callable[[str], Any]
EncodeFunction = Callable[[Any], str]


class Codec(NamedTuple):
    """A decode/encode function pair for one file format."""

    decode: DecodeFunction
    encode: EncodeFunction


def normalize_format(format: str) -> str:
    """Lower-case a format name and strip a leading dot (".YML" -> "yml")."""
    return format.strip().lstrip(".").lower()


class CodecRegistry:
    """
    Mapping from format identifier to Codec.

    Overwriting an existing format is allowed; the last registration wins.
    Codec failures are re-raised as DecodeError / EncodeError chained to the
    original exception.
    """

    def __init__(self):
        self._codecs: Dict[str, Codec] = {}
        self._lock = threading.RLock()

    def register(
        self, format: str, decode: DecodeFunction, encode: EncodeFunction
    ) -> None:
        """Insert or overwrite the codec for format."""
        with self._lock:
            self._codecs[normalize_format(format)] = Codec(decode, encode)

    def register_many(
        self, formats: Iterable[str], decode: DecodeFunction, encode: EncodeFunction
    ) -> None:
        """Register the same codec under several names (e.g. ["yml", "yaml"])."""
        with self._lock:
            for format in formats:
                self.register(format, decode, encode)

    def alias(self, format: str, existing: str) -> None:
        """Copy the codec registered for existing under a new name."""
        with self._lock:
            self._codecs[normalize_format(format)] = self.get(existing)

    def alias_many(self, formats: Iterable[str], existing: str) -> None:
        with self._lock:
            for format in formats:
                self.alias(format, existing)

    def get(self, format: str) -> Codec:
        """Return the codec for format, raising UnknownFormat if missing."""
        key = normalize_format(format)
        with self._lock:
            codec = self._codecs.get(key)
        if codec is None:
            raise UnknownFormat(key)
        return codec

    def decode(self, format: str, text: str) -> Any:
        codec = self.get(format)
        try:
            return codec.decode(text)
        except Exception as e:
            raise DecodeError(normalize_format(format), e) from e

    def encode(self, format: str, value: Any) -> str:
        codec = self.get(format)
        try:
            return codec.encode(value)
        except Exception as e:
            raise EncodeError(normalize_format(format), e) from e

    def formats(self) -> List[str]:
        """Return the registered format names, sorted."""
        with self._lock:
            return sorted(self._codecs)

    def __contains__(self, format: str) -> bool:
        with self._lock:
            return normalize_format(format) in self._codecs

    def __len__(self) -> int:
        with self._lock:
            return len(self._codecs)

    def __repr__(self) -> str:
        return f"CodecRegistry({', '.join(self.formats())})"


_registry = None
_registry_lock = threading.Lock()


def get_registry() -> CodecRegistry:
    """
    Get or create the process-wide registry.

    Lazy singleton: the first call creates it and installs the built-in
    formats, later calls reuse it. Tests can reset it via _reset_registry().
    """
    global _registry
    with _registry_lock:
        if _registry is None:
            from .formats import install_builtin_codecs

            registry = CodecRegistry()
            install_builtin_codecs(registry)
            _registry = registry
        return _registry


def _reset_registry() -> None:
    """Discard the process-wide registry. Not for production use."""
    global _registry
    with _registry_lock:
        _registry = None


def register(format: str, decode: DecodeFunction, encode: EncodeFunction) -> None:
    get_registry().register(format, decode, encode)


def register_many(
    formats: Iterable[str], decode: DecodeFunction, encode: EncodeFunction
) -> None:
    get_registry().register_many(formats, decode, encode)


def alias(format: str, existing: str) -> None:
    get_registry().alias(format, existing)


def alias_many(formats: Iterable[str], existing: str) -> None:
    get_registry().alias_many(formats, existing)


def decode(format: str, text: str) -> Any:
    return get_registry().decode(format, text)


def encode(format: str, value: Any) -> str:
    return get_registry().encode(format, value)
