from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Optional, Union

from .host import (
    PERMISSION_DIRECTORY_CREATE,
    PERMISSION_DIRECTORY_REMOVE,
    PERMISSION_FILE_REMOVE,
    PERMISSION_FILE_UPDATE,
    PERMISSION_FILE_UPLOAD,
    PERMISSION_FILE_VIEW,
    Lexicon,
    PermissionOracle,
)
from .paths import (
    basename,
    extension,
    is_directory_key,
    relative_key,
    separator_depth,
)

MENU_SEPARATOR = "-"


class EntryKind(str, Enum):
    FILE = "file"
    DIRECTORY = "dir"


@dataclass(frozen=True)
class MenuItem:
    text: str
    handler: str

    def to_dict(self) -> dict[str, str]:
        return {"text": self.text, "handler": self.handler}


MenuEntry = Union[MenuItem, str]


@dataclass(frozen=True)
class Entry:
    key: str
    kind: EntryKind
    name: str
    parent_path: str
    depth: int
    extension: str
    url: Optional[str] = None
    menu: tuple[MenuEntry, ...] = field(default_factory=tuple)

    @property
    def is_dir(self) -> bool:
        return self.kind is EntryKind.DIRECTORY

    @property
    def icon_class(self) -> str:
        return f"icon-{self.extension}"

    def to_node(self) -> dict[str, object]:
        node: dict[str, object] = {
            "id": self.key,
            "text": self.name,
            "cls": self.icon_class,
            "type": self.kind.value,
            "leaf": not self.is_dir,
            "path": self.key,
            "pathRelative": self.key,
            "menu": {"items": [_menu_value(item) for item in self.menu]},
        }
        if self.is_dir:
            node["perms"] = ""
        else:
            node["directory"] = self.key
            node["file"] = self.key
            node["url"] = self.url
        return node


def _menu_value(item: MenuEntry) -> object:
    if isinstance(item, MenuItem):
        return item.to_dict()
    return item


def context_menu(
    is_dir: bool, permissions: PermissionOracle, lexicon: Lexicon
) -> tuple[MenuEntry, ...]:
    menu: list[MenuEntry] = []
    if not is_dir:
        if permissions.has_permission(PERMISSION_FILE_UPDATE):
            menu.append(MenuItem(lexicon.translate("rename"), "this.renameFile"))
        if permissions.has_permission(PERMISSION_FILE_VIEW):
            menu.append(MenuItem(lexicon.translate("file_download"), "this.downloadFile"))
        if permissions.has_permission(PERMISSION_FILE_REMOVE):
            if menu:
                menu.append(MENU_SEPARATOR)
            menu.append(MenuItem(lexicon.translate("file_remove"), "this.removeFile"))
        return tuple(menu)

    if permissions.has_permission(PERMISSION_DIRECTORY_CREATE):
        menu.append(
            MenuItem(lexicon.translate("file_folder_create_here"), "this.createDirectory")
        )
    menu.append(MenuItem(lexicon.translate("directory_refresh"), "this.refreshActiveNode"))
    if permissions.has_permission(PERMISSION_FILE_UPLOAD):
        menu.append(MENU_SEPARATOR)
        menu.append(MenuItem(lexicon.translate("upload_files"), "this.uploadFiles"))
    if permissions.has_permission(PERMISSION_DIRECTORY_REMOVE):
        menu.append(MENU_SEPARATOR)
        menu.append(MenuItem(lexicon.translate("file_folder_remove"), "this.removeDirectory"))
    return tuple(menu)


def is_immediate_child(relative: str, is_dir: bool) -> bool:
    depth = separator_depth(relative)
    if is_dir:
        return depth <= 1
    return depth == 0


def object_url(base_url: str, key: str) -> str:
    return f"{base_url.rstrip('/')}/{key}"


def build_tree(
    path: str,
    keys: Iterable[str],
    permissions: PermissionOracle,
    lexicon: Lexicon,
    base_url: str = "",
    skip_files: Iterable[str] = (),
) -> list[Entry]:
    """Classify a flat key listing into the immediate children of ``path``.

    Directories come first, then files; each group is sorted by full key.
    The directory's own marker key and anything deeper than one level are
    dropped.
    """
    skipped = set(skip_files)
    directories: dict[str, Entry] = {}
    files: dict[str, Entry] = {}
    for key in keys:
        if not key or key == path:
            continue
        is_dir = is_directory_key(key)
        relative = relative_key(key, path)
        if not is_immediate_child(relative, is_dir):
            continue
        name = basename(key)
        if name in skipped or key in skipped:
            continue
        menu = context_menu(is_dir, permissions, lexicon)
        if is_dir:
            directories[key] = Entry(
                key=key,
                kind=EntryKind.DIRECTORY,
                name=name,
                parent_path=path,
                depth=separator_depth(relative),
                extension="",
                menu=menu,
            )
        else:
            files[key] = Entry(
                key=key,
                kind=EntryKind.FILE,
                name=name,
                parent_path=path,
                depth=0,
                extension=extension(name),
                url=object_url(base_url, key),
                menu=menu,
            )

    ordered = [directories[key] for key in sorted(directories)]
    ordered.extend(files[key] for key in sorted(files))
    return ordered
