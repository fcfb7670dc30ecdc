"""
db/errors.py
------------
Error kinds surfaced by the storage layer and the services built on it.
Callers match on ``err.kind`` instead of comparing error messages.
"""

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    NOT_FOUND = "not-found"
    ALREADY_EXISTS = "already-exists"
    VALIDATION = "validation-error"
    STORAGE_FAULT = "storage-fault"
    CANCELLED = "cancelled"


class AppError(Exception):
    """
    An error with a kind and the path of the operation that raised it.

    Attributes:
        kind: One of ErrorKind.
        message: Human-readable description (not meant for end users).
        path: Operation path, e.g. ``UserRepository.find_by_id``.
    """

    def __init__(self, kind: ErrorKind, message: str, path: str = ""):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.path = path

    def __str__(self) -> str:
        if self.path:
            return f"[{self.kind.value}] {self.path}: {self.message}"
        return f"[{self.kind.value}] {self.message}"

    @classmethod
    def not_found(cls, path: str, message: str = "not found") -> "AppError":
        return cls(ErrorKind.NOT_FOUND, message, path)

    @classmethod
    def already_exists(cls, path: str, message: str = "already exists") -> "AppError":
        return cls(ErrorKind.ALREADY_EXISTS, message, path)

    @classmethod
    def validation(cls, path: str, message: str) -> "AppError":
        return cls(ErrorKind.VALIDATION, message, path)

    @classmethod
    def storage_fault(cls, path: str, cause: Optional[BaseException] = None) -> "AppError":
        message = str(cause).strip() if cause is not None else ""
        return cls(ErrorKind.STORAGE_FAULT, message or "storage failure", path)

    @classmethod
    def cancelled(cls, path: str, message: str = "context cancelled") -> "AppError":
        return cls(ErrorKind.CANCELLED, message, path)


class MappingError(TypeError):
    """A record type or filter does not match its table mapping (programmer error)."""
