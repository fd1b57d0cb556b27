from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Iterable, Optional, Protocol

logger = logging.getLogger(__name__)
audit_logger = logging.getLogger("bucketfs.audit")

PERMISSION_FILE_UPDATE = "file_update"
PERMISSION_FILE_VIEW = "file_view"
PERMISSION_FILE_REMOVE = "file_remove"
PERMISSION_FILE_UPLOAD = "file_upload"
PERMISSION_DIRECTORY_CREATE = "directory_create"
PERMISSION_DIRECTORY_REMOVE = "directory_remove"
ALL_PERMISSIONS = frozenset(
    {
        PERMISSION_FILE_UPDATE,
        PERMISSION_FILE_VIEW,
        PERMISSION_FILE_REMOVE,
        PERMISSION_FILE_UPLOAD,
        PERMISSION_DIRECTORY_CREATE,
        PERMISSION_DIRECTORY_REMOVE,
    }
)

EVENT_UPLOAD = "OnFileManagerUpload"

DEFAULT_MESSAGES = {
    "source_type": "Bucket Storage",
    "source_type_desc": (
        "Browse, upload, rename and delete files stored in an S3-compatible "
        "bucket as if it were a directory tree."
    ),
    "rename": "Rename",
    "file_download": "Download",
    "file_remove": "Remove File",
    "file_folder_create_here": "Create Directory Here",
    "directory_refresh": "Refresh Directory",
    "upload_files": "Upload Files",
    "file_folder_remove": "Remove Directory",
    "error_generic": "An error occurred",
    "error_not_found": "Object not found: /{path}",
    "error_exists": "An object already exists at /{path}",
    "error_directory_exists": "Directory already exists: /{path}",
    "error_invalid": "Invalid request for /{path}",
    "error_extension_not_allowed": "Files with the extension '{ext}' are not allowed",
    "error_file_too_large": "File is too large ({size} bytes, {allowed} allowed)",
    "error_directory_move": "Directories cannot be moved: /{path}",
    "error_store": "Storage request failed for /{path}",
    "error_directory_create": "Could not create directory /{path}",
    "error_delete": "Could not delete /{path}",
    "error_rename": "Could not rename /{path}",
    "error_upload": "Upload failed for {path}",
    "error_inconsistent_move": (
        "/{path} was copied to /{destination} but the original could not be "
        "removed"
    ),
}


class PermissionOracle(Protocol):
    def has_permission(self, action: str) -> bool: ...


class Lexicon(Protocol):
    def translate(self, key: str, params: Optional[dict] = None) -> str: ...


class AuditLog(Protocol):
    def log_action(self, action: str, original: str, new: str) -> None: ...


class EventDispatcher(Protocol):
    def emit(self, event: str, payload: dict) -> None: ...


class StaticPermissions:
    def __init__(self, granted: Optional[Iterable[str]] = None) -> None:
        self.granted = ALL_PERMISSIONS if granted is None else frozenset(granted)

    def has_permission(self, action: str) -> bool:
        return action in self.granted


class DefaultLexicon:
    def __init__(self, messages: Optional[dict[str, str]] = None) -> None:
        self.messages = dict(DEFAULT_MESSAGES)
        if messages:
            self.messages.update(messages)

    def translate(self, key: str, params: Optional[dict] = None) -> str:
        template = self.messages.get(key)
        if template is None:
            return key
        if not params:
            return template
        try:
            return template.format(**params)
        except (KeyError, IndexError, ValueError):
            return template


class LoggingAuditLog:
    def log_action(self, action: str, original: str, new: str) -> None:
        audit_logger.info("%s original=%r new=%r", action, original, new)


class HookDispatcher:
    def __init__(self) -> None:
        self._hooks: dict[str, list[Callable[[dict], None]]] = {}

    def on(self, event: str, callback: Callable[[dict], None]) -> None:
        self._hooks.setdefault(event, []).append(callback)

    def emit(self, event: str, payload: dict) -> None:
        for callback in list(self._hooks.get(event, [])):
            try:
                callback(payload)
            except Exception:
                logger.exception("[bucketfs] %s hook failed", event)


@dataclass
class Host:
    permissions: PermissionOracle = field(default_factory=StaticPermissions)
    lexicon: Lexicon = field(default_factory=DefaultLexicon)
    audit: AuditLog = field(default_factory=LoggingAuditLog)
    events: EventDispatcher = field(default_factory=HookDispatcher)
    user_token: str = ""
    context_key: str = "mgr"
