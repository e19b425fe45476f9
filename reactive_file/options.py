"""
Load options for ReactiveFile.

    doc = ReactiveFile.load_sync("settings.yml", async_save=False, deep=False)

Every keyword accepted by load / load_sync / adopt is a LoadOptions field.
Unknown names and invalid values raise ConfigError before any file is read.
"""

import codecs
import os
from dataclasses import dataclass, fields
from typing import Any, Callable, Dict, Optional

from .errors import ConfigError

ErrorCallback = Callable[[BaseException], None]


def infer_format(path: str) -> str:
    """Text after the last '.' of the file name, lower-cased ("a/b.JSON" -> "json")."""
    _, extension = os.path.splitext(os.path.basename(path))
    return extension[1:].lower()


@dataclass
class LoadOptions:
    """
    Options shared by load, load_sync and adopt.

    Attributes:
        encoding: Text encoding used to read and write the file
        async_save: Save in the background (True) or before the mutating
            call returns (False)
        save_to: Destination path; defaults to the loaded path
        deep: Observe nested containers, including ones attached later
        reactive: Save automatically on mutation; if False only explicit
            save() / save_now() write
        format: Codec name; inferred from the destination extension if None
        on_error: Receives errors raised by background saves
    """

    encoding: str = "utf-8"
    async_save: bool = True
    save_to: Optional[str] = None
    deep: bool = True
    reactive: bool = True
    format: Optional[str] = None
    on_error: Optional[ErrorCallback] = None

    def __post_init__(self):
        if not isinstance(self.encoding, str) or not self.encoding:
            raise ConfigError(f"encoding must be a non-empty string, got {self.encoding!r}")
        try:
            codecs.lookup(self.encoding)
        except LookupError as e:
            raise ConfigError(f"Unknown text encoding {self.encoding!r}") from e

        if self.save_to is not None:
            if isinstance(self.save_to, os.PathLike):
                self.save_to = os.fspath(self.save_to)
            if not isinstance(self.save_to, str) or not self.save_to:
                raise ConfigError(f"save_to must be a path, got {self.save_to!r}")

        if self.format is not None and not isinstance(self.format, str):
            raise ConfigError(f"format must be a string, got {self.format!r}")

        if self.on_error is not None and not callable(self.on_error):
            raise ConfigError("on_error must be callable")

    @classmethod
    def from_kwargs(cls, **kwargs: Any) -> "LoadOptions":
        """Build options from keyword arguments, rejecting unknown names."""
        known = {field.name for field in fields(cls)}
        unknown = sorted(set(kwargs) - known)
        if unknown:
            raise ConfigError(f"Unknown option(s): {', '.join(unknown)}")
        return cls(**kwargs)

    def resolve_format(self, path: str) -> str:
        return self.format if self.format else infer_format(path)

    def to_dict(self) -> Dict[str, Any]:
        return {field.name: getattr(self, field.name) for field in fields(self)}
