"""
Reactive File Errors
====================

Every failure raised by reactive_file derives from ReactiveFileError so callers
can catch the whole family, or branch on the concrete kind:

- UnknownFormat: no codec registered for a format
- DecodeError: a codec rejected the text it was given
- EncodeError: a codec could not represent the in-memory value
- StorageError: the filesystem refused a read, mkdir or write
- ConfigError: invalid load options
"""

from typing import Optional


class ReactiveFileError(Exception):
    """Base class for all reactive_file errors."""

    pass


class UnknownFormat(ReactiveFileError):
    """Raised when a format has no registered codec."""

    def __init__(self, format: str):
        self.format = format
        super().__init__(f"No codec registered for format {format!r}")


class DecodeError(ReactiveFileError):
    """Raised when a codec fails to parse text."""

    def __init__(self, format: str, cause: BaseException):
        self.format = format
        self.cause = cause
        super().__init__(f"Could not decode {format} text: {cause}")


class EncodeError(ReactiveFileError):
    """Raised when a codec fails to serialize a value."""

    def __init__(self, format: str, cause: BaseException):
        self.format = format
        self.cause = cause
        super().__init__(f"Could not encode value as {format}: {cause}")


class StorageError(ReactiveFileError):
    """Raised when reading, creating directories or writing fails."""

    def __init__(self, path: str, cause: Optional[BaseException] = None):
        self.path = path
        self.cause = cause
        message = f"Storage operation failed for {path!r}"
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)


class ConfigError(ReactiveFileError):
    """Raised for invalid or missing options."""

    pass
