from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from .host import Lexicon


class BucketFSError(Exception):
    """Base fault raised or recorded by the virtual filesystem layer.

    ``message_key`` names the lexicon entry shown to the user; ``path`` is
    the offending key and ``detail`` the underlying store message, if any.
    """

    message_key = "error_generic"

    def __init__(self, path: str = "", detail: str = "") -> None:
        self.path = path
        self.detail = detail
        text = f"{self.message_key}: {path}" if path else self.message_key
        if detail:
            text = f"{text} ({detail})"
        super().__init__(text)

    def params(self) -> dict[str, object]:
        return {"path": self.path}


class NotFoundError(BucketFSError):
    message_key = "error_not_found"


class ExistsError(BucketFSError):
    message_key = "error_exists"


class DirectoryExistsError(ExistsError):
    message_key = "error_directory_exists"


class ValidationError(BucketFSError):
    message_key = "error_invalid"


class ExtensionNotAllowedError(ValidationError):
    message_key = "error_extension_not_allowed"

    def __init__(self, path: str, ext: str) -> None:
        self.ext = ext
        super().__init__(path, detail=ext)

    def params(self) -> dict[str, object]:
        return {"path": self.path, "ext": self.ext}


class FileTooLargeError(ValidationError):
    message_key = "error_file_too_large"

    def __init__(self, path: str, size: int, allowed: int) -> None:
        self.size = size
        self.allowed = allowed
        super().__init__(path, detail=f"{size} > {allowed}")

    def params(self) -> dict[str, object]:
        return {"path": self.path, "size": self.size, "allowed": self.allowed}


class DirectoryMoveError(ValidationError):
    message_key = "error_directory_move"


class StoreError(BucketFSError):
    message_key = "error_store"


class DirectoryCreateError(StoreError):
    message_key = "error_directory_create"


class DeleteError(StoreError):
    message_key = "error_delete"


class RenameError(StoreError):
    message_key = "error_rename"


class UploadError(StoreError):
    message_key = "error_upload"


class InconsistentStateError(BucketFSError):
    """Copy succeeded but deleting the source failed; both keys now exist."""

    message_key = "error_inconsistent_move"

    def __init__(self, source: str, destination: str, detail: str = "") -> None:
        self.source = source
        self.destination = destination
        super().__init__(source, detail=detail)

    def params(self) -> dict[str, object]:
        return {"path": self.source, "destination": self.destination}


@dataclass(frozen=True)
class Fault:
    field: str
    error: BucketFSError

    @property
    def path(self) -> str:
        return self.error.path

    def message(self, lexicon: Optional["Lexicon"] = None) -> str:
        params = self.error.params()
        if lexicon is None:
            text = self.error.message_key
        else:
            text = lexicon.translate(self.error.message_key, params)
        if self.error.path and self.error.path not in text:
            text = f"{text}: /{self.error.path}"
        return text
