"""
reactive_file - files that save themselves
==========================================

Load a JSON, YAML, TOML or XML file into plain dicts and lists, then just
mutate them: every change is written back to disk.

    from reactive_file import ReactiveFile

    doc = ReactiveFile.load_sync("settings.json")
    doc["count"] += 1
"""

from .codecs import (
    Codec,
    CodecRegistry,
    alias,
    alias_many,
    get_registry,
    register,
    register_many,
)
from .coordinator import PersistenceCoordinator
from .document import ReactiveFile
from .errors import (
    ConfigError,
    DecodeError,
    EncodeError,
    ReactiveFileError,
    StorageError,
    UnknownFormat,
)
from .observer import (
    ChangeEvent,
    ChangeType,
    ObservedDict,
    ObservedList,
    is_observed,
    observe,
    rebind,
    to_plain,
)
from .options import LoadOptions

# Module-level shortcuts
load = ReactiveFile.load
load_sync = ReactiveFile.load_sync
adopt = ReactiveFile.adopt

__all__ = [
    # Binding facade
    "ReactiveFile",
    "LoadOptions",
    "load",
    "load_sync",
    "adopt",
    # Codec registry
    "Codec",
    "CodecRegistry",
    "get_registry",
    "register",
    "register_many",
    "alias",
    "alias_many",
    # Observation
    "observe",
    "rebind",
    "to_plain",
    "is_observed",
    "ObservedDict",
    "ObservedList",
    "ChangeEvent",
    "ChangeType",
    # Persistence
    "PersistenceCoordinator",
    # Exceptions
    "ReactiveFileError",
    "UnknownFormat",
    "DecodeError",
    "EncodeError",
    "StorageError",
    "ConfigError",
]
