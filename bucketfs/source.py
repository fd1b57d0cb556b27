from __future__ import annotations

import logging
import re
from dataclasses import replace
from typing import Iterable, Optional

from .config import PropertyStore, SourceConfig
from .errors import (
    BucketFSError,
    DeleteError,
    DirectoryCreateError,
    DirectoryExistsError,
    DirectoryMoveError,
    Fault,
    InconsistentStateError,
    NotFoundError,
    RenameError,
    StoreError,
    UploadError,
    ValidationError,
)
from .host import EVENT_UPLOAD, PERMISSION_FILE_REMOVE, Host
from .paths import (
    SEPARATOR,
    basename,
    directory_prefix,
    dirname,
    extension,
    is_directory_key,
    normalize_path,
    sanitize_name,
)
from .store import DIRECTORY_CONTENT_TYPE, ObjectContainer, S3Connection, StoreConnection
from .thumbnails import HttpImageProbe, ImageProbe, ThumbnailBuilder
from .tree import Entry, build_tree
from .uploads import UPLOAD_ACCEPTED, UPLOAD_SKIPPED, UploadItem, validate_upload

logger = logging.getLogger(__name__)

_SCHEME = re.compile(r"^https?://", re.IGNORECASE)


class BucketMediaSource:
    """Presents a flat bucket as a browsable directory tree.

    Listing calls degrade to empty results and mutating calls return a
    success flag; in both cases the reason for a failure is appended to
    ``errors`` as a :class:`Fault`.
    """

    def __init__(
        self,
        config: SourceConfig,
        host: Optional[Host] = None,
        connection: Optional[StoreConnection] = None,
        probe: Optional[ImageProbe] = None,
        property_store: Optional[PropertyStore] = None,
        name: str = "default",
        source_id: str = "1",
    ) -> None:
        self.config = config
        self.host = host or Host()
        self.probe = probe or HttpImageProbe()
        self.property_store = property_store
        self.name = name
        self.source_id = str(source_id)
        self.container: Optional[ObjectContainer] = None
        self.errors: list[Fault] = []
        self.needs_reconfiguration = False
        self._driver = connection

    @classmethod
    def from_store(
        cls, property_store: PropertyStore, name: str = "default", **kwargs
    ) -> "BucketMediaSource":
        config = property_store.load_config(name)
        return cls(config, property_store=property_store, name=name, **kwargs)

    def initialize(self) -> bool:
        self.get_driver()
        self.validate_options()
        if self.needs_reconfiguration:
            return False
        self.set_container(self.config.container)
        return self.container is not None

    def get_type_name(self) -> str:
        return self.host.lexicon.translate("source_type")

    def get_type_description(self) -> str:
        return self.host.lexicon.translate("source_type_desc")

    def get_driver(self) -> StoreConnection:
        if self._driver is None:
            self._driver = S3Connection(self.config)
        return self._driver

    def validate_options(self) -> None:
        """Check the container is reachable and fill in its public URL."""
        driver = self.get_driver()
        name = self.config.container
        containers: list[str] = []
        try:
            containers = driver.list_public_containers()
        except BucketFSError as exc:
            logger.error(
                "[bucketfs] Could not retrieve list of containers, check credentials: %s",
                exc,
            )
        if not name or name not in containers:
            logger.error("[bucketfs] Container is not publicly readable: %r", name)
            self._reset_container()
            return

        self.needs_reconfiguration = False
        if _SCHEME.sub("", self.config.url.strip()):
            return
        try:
            base_url = driver.get_container(name).public_base_url
        except BucketFSError as exc:
            logger.error("[bucketfs] Could not derive public url of %s: %s", name, exc)
            return
        url = f"{base_url.rstrip('/')}/"
        logger.debug("[bucketfs] writing new url: %s", url)
        self.config = replace(self.config, url=url)
        self._persist({"url": url})

    def _reset_container(self) -> None:
        self.needs_reconfiguration = True
        self.container = None
        self.config = replace(self.config, container="")
        self._persist({"container": ""})

    def _persist(self, values: dict[str, object]) -> None:
        if self.property_store is None:
            return
        if not self.property_store.set_properties(self.name, values):
            logger.error("[bucketfs] Could not save properties for %s", self.name)

    def set_container(self, name: str) -> None:
        try:
            self.container = self.get_driver().get_container(name)
        except BucketFSError as exc:
            self.container = None
            logger.error("[bucketfs] Could not get container: %s", exc)

    def _require_container(self, path: str = "") -> ObjectContainer:
        if self.container is None:
            raise StoreError(path, detail="no container configured")
        return self.container

    def add_error(self, field: str, error: BucketFSError) -> None:
        level = logging.ERROR if isinstance(error, StoreError) else logging.WARNING
        logger.log(level, "[bucketfs] %s: %s", field, error)
        self.errors.append(Fault(field, error))

    def has_errors(self) -> bool:
        return bool(self.errors)

    def clear_errors(self) -> None:
        self.errors = []

    def error_messages(self) -> list[str]:
        return [fault.message(self.host.lexicon) for fault in self.errors]

    # Listing

    def list_keys(self, path: Optional[str]) -> list[str]:
        prefix = directory_prefix(path) or None
        try:
            return self._require_container(prefix or "").list_by_prefix(prefix)
        except BucketFSError as exc:
            self.add_error("path", exc)
            return []

    def list_entries(self, path: Optional[str]) -> list[Entry]:
        prefix = directory_prefix(path)
        return build_tree(
            prefix,
            self.list_keys(prefix),
            self.host.permissions,
            self.host.lexicon,
            base_url=self.get_base_url(),
            skip_files=self._skip_files(),
        )

    def _skip_files(self) -> set[str]:
        skipped = set(self.config.skip_files)
        skipped.update({".", ".."})
        return skipped

    def get_container_list(self, path: Optional[str]) -> list[dict[str, object]]:
        return [entry.to_node() for entry in self.list_entries(path)]

    def get_objects_in_container(self, path: Optional[str]) -> list[dict[str, object]]:
        allowed = set(self.config.allowed_file_types)
        remove_label = None
        if self.host.permissions.has_permission(PERMISSION_FILE_REMOVE):
            remove_label = self.host.lexicon.translate("file_remove")
        builder = ThumbnailBuilder(
            self.config,
            self.probe,
            self.get_base_url(),
            auth_token=self.host.user_token,
            context_key=self.host.context_key,
            source_id=self.source_id,
        )
        files: list[dict[str, object]] = []
        for entry in self.list_entries(path):
            if entry.is_dir:
                continue
            if allowed and entry.extension not in allowed:
                continue
            files.append(builder.describe(entry, remove_label))
        return files

    # Directories

    def create_container(self, name: str, parent_container: Optional[str]) -> bool:
        folder = sanitize_name(name).strip("/")
        new_path = normalize_path(f"{directory_prefix(parent_container)}{folder}/")
        if not folder:
            self.add_error("name", DirectoryCreateError(new_path, detail="empty name"))
            return False
        try:
            container = self._require_container(new_path)
            exists = container.exists(new_path)
        except BucketFSError as exc:
            self.add_error("name", DirectoryCreateError(new_path, detail=exc.detail))
            return False
        if exists:
            self.add_error("file", DirectoryExistsError(new_path))
            return False

        try:
            container.write_object(new_path, b"", DIRECTORY_CONTENT_TYPE)
        except BucketFSError as exc:
            self.add_error("name", DirectoryCreateError(new_path, detail=exc.detail))
            return False

        self.host.audit.log_action("directory_create", "", f"/{new_path}")
        return True

    def remove_container(self, path: str) -> bool:
        # Children are left in place; only the marker object is deleted.
        key = directory_prefix(path)
        if not key:
            self.add_error("file", ValidationError(key, detail="cannot remove root"))
            return False
        if not self._delete(key):
            return False
        self.host.audit.log_action("directory_remove", "", key)
        return True

    # Files

    def remove_object(self, object_path: str) -> bool:
        key = normalize_path(object_path)
        if not key:
            self.add_error("file", NotFoundError(key))
            return False
        if not self._delete(key):
            return False
        self.host.audit.log_action("file_remove", "", key)
        return True

    def _delete(self, key: str) -> bool:
        try:
            container = self._require_container(key)
            exists = container.exists(key)
        except BucketFSError as exc:
            self.add_error("file", exc)
            return False
        if not exists:
            self.add_error("file", NotFoundError(key))
            return False
        try:
            container.delete_object(key)
        except NotFoundError as exc:
            self.add_error("file", exc)
            return False
        except BucketFSError as exc:
            self.add_error("file", DeleteError(key, detail=exc.detail))
            return False
        return True

    def rename_object(self, old_path: str, new_name: str) -> bool:
        old_key = normalize_path(old_path)
        if is_directory_key(old_key):
            self.add_error("file", DirectoryMoveError(old_key))
            return False
        new_name = sanitize_name(new_name or "")
        if not new_name or SEPARATOR in new_name:
            self.add_error("name", ValidationError(old_key, detail="invalid file name"))
            return False
        new_key = f"{dirname(old_key)}{new_name}"
        if not self._relocate(old_key, new_key):
            return False
        self.host.audit.log_action("file_rename", f"/{old_key}", f"/{new_key}")
        return True

    def move_object(self, from_path: str, to_path: str) -> bool:
        from_key = normalize_path(from_path)
        if is_directory_key(from_key):
            self.add_error("file", DirectoryMoveError(from_key))
            return False
        target = normalize_path(to_path).rstrip("/")
        if target:
            to_key = f"{target}/{basename(from_key)}"
        else:
            to_key = basename(from_key)
        if not self._relocate(from_key, to_key):
            return False
        self.host.audit.log_action("file_move", f"/{from_key}", f"/{to_key}")
        return True

    def _relocate(self, from_key: str, to_key: str) -> bool:
        if not from_key or not basename(to_key):
            self.add_error("file", RenameError(from_key, detail="invalid path"))
            return False
        try:
            container = self._require_container(from_key)
            exists = container.exists(from_key)
        except BucketFSError as exc:
            self.add_error("file", exc)
            return False
        if not exists:
            self.add_error("file", NotFoundError(from_key))
            return False
        if from_key == to_key:
            return True
        try:
            container.move_object(from_key, to_key)
        except InconsistentStateError as exc:
            logger.warning(
                "[bucketfs] %s copied to %s but the original was not removed",
                from_key,
                to_key,
            )
            self.add_error("file", exc)
            return False
        except BucketFSError as exc:
            self.add_error("file", RenameError(from_key, detail=exc.detail))
            return False
        return True

    # Uploads

    def upload_objects_to_container(
        self, container_path: Optional[str], objects: Iterable[UploadItem]
    ) -> bool:
        directory = directory_prefix(container_path)
        items = list(objects)
        allowed = self.config.upload_extensions()
        max_size = self.config.upload_maxsize

        for item in items:
            if item.error != 0 or not item.name:
                item.status = UPLOAD_SKIPPED
                continue
            problem = validate_upload(item, allowed, max_size)
            if problem is not None:
                item.reject(problem)
                self.add_error("path", problem)
                continue
            key = f"{directory}{sanitize_name(item.name)}"
            item.key = key
            try:
                container = self._require_container(key)
                container.write_object(key, item.read(), item.content_type)
            except (BucketFSError, OSError) as exc:
                failure = UploadError(item.name, detail=str(exc))
                item.fail(failure)
                self.add_error("path", failure)
                continue
            item.status = UPLOAD_ACCEPTED

        self.host.events.emit(
            EVENT_UPLOAD,
            {"files": items, "directory": directory, "source": self},
        )
        self.host.audit.log_action("file_upload", "", directory)
        return True

    # URLs and contents

    def get_base_url(self, obj: str = "") -> str:
        return self.config.url

    def get_object_url(self, obj: str = "") -> str:
        return f"{self.config.url}{obj}"

    def prepare_src_for_thumb(self, src: str) -> str:
        url = self.config.url
        if url and url in src:
            return src
        return f"{url}{src.lstrip('/')}"

    def get_object_contents(self, object_path: str) -> dict[str, object]:
        key = normalize_path(object_path)
        try:
            content = self._require_container(key).read_object(key)
        except BucketFSError as exc:
            self.add_error("file", exc)
            content = b""
        return {
            "name": key,
            "basename": basename(key),
            "path": key,
            "size": len(content),
            "last_accessed": "",
            "last_modified": "",
            "content": content,
            "image": extension(key) in self.config.image_extensions,
            "is_writable": False,
            "is_readable": False,
        }
