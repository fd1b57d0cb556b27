from __future__ import annotations

import argparse
import asyncio
import logging
from dataclasses import replace
from pathlib import Path
from time import monotonic
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table
from rich.text import Text
from textual.app import App, ComposeResult
from textual.containers import Horizontal, Vertical
from textual.screen import ModalScreen
from textual.widgets import Button, DataTable, Footer, Header, Input, Static, Tree

from .config import PROPERTY_DEFINITIONS, PropertyStore
from .host import (
    PERMISSION_DIRECTORY_CREATE,
    PERMISSION_DIRECTORY_REMOVE,
    PERMISSION_FILE_REMOVE,
)
from .paths import basename, is_directory_key
from .source import BucketMediaSource
from .tree import Entry
from .uploads import UploadItem, summarize

console = Console()

ESC_QUIT_WINDOW_SECONDS = 1.0


def entry_icon(entry: Entry) -> str:
    if entry.is_dir:
        return "📁"
    return ""


def entry_label(entry: Entry) -> Text:
    if entry.is_dir:
        return Text(entry.name, style="bold #2f80ed")
    return Text(entry.name)


class NameDialog(ModalScreen[Optional[str]]):
    BINDINGS = [
        ("escape", "cancel", "Cancel"),
    ]
    CSS = """
    NameDialog {
        align: center middle;
    }

    #name-dialog {
        width: 60;
        max-width: 80;
        min-width: 40;
        height: auto;
        padding: 1 2;
        border: round $panel;
        background: $panel;
        color: $text;
    }

    #name-actions {
        width: 100%;
        height: auto;
        margin-top: 1;
        align: center middle;
    }

    #name-ok {
        margin-left: 2;
    }
    """

    def __init__(self, label: str, default: str = "") -> None:
        super().__init__()
        self._label = label
        self._default = default

    def compose(self) -> ComposeResult:
        with Vertical(id="name-dialog"):
            yield Static(self._label)
            yield Input(value=self._default, id="name-input")
            with Horizontal(id="name-actions"):
                yield Button("Cancel", id="name-cancel", compact=True)
                yield Button("OK", id="name-ok", compact=True)

    def on_mount(self) -> None:
        self.query_one("#name-input", Input).focus()

    def on_button_pressed(self, event: Button.Pressed) -> None:
        if event.button.id == "name-cancel":
            self.dismiss(None)
        elif event.button.id == "name-ok":
            self._submit()

    def on_input_submitted(self, event: Input.Submitted) -> None:
        if event.input.id != "name-input":
            return
        self._submit()

    def _submit(self) -> None:
        value = self.query_one("#name-input", Input).value.strip()
        if not value:
            return
        self.dismiss(value)

    def action_cancel(self) -> None:
        self.dismiss(None)


class BucketBrowser(App):
    CSS = """
    #body {
        height: 1fr;
    }

    #dir-tree {
        width: 35%;
        min-width: 24;
        border: round $panel;
    }

    #right-pane {
        width: 1fr;
    }

    #file-table {
        height: 1fr;
        border: round $panel;
    }

    #status {
        height: 1;
        padding: 0 1;
        background: $surface;
        color: $text-muted;
    }
    """

    BINDINGS = [
        ("q", "quit", "Quit"),
        ("escape", "confirm_quit", "Quit x2"),
        ("r", "refresh", "Refresh"),
        ("n", "create_directory", "New dir"),
        ("d", "delete", "Delete"),
    ]

    def __init__(self, source: BucketMediaSource) -> None:
        super().__init__()
        self.source = source
        self.loaded_nodes: set[int] = set()
        self.current_path = ""
        self._quit_escape_deadline = 0.0

    def compose(self) -> ComposeResult:
        yield Header()
        with Horizontal(id="body"):
            yield Tree("/", data="", id="dir-tree")
            with Vertical(id="right-pane"):
                yield DataTable(id="file-table")
                yield Static("", id="status")
        yield Footer()

    async def on_mount(self) -> None:
        self.title = self.source.get_type_name()
        self.sub_title = self.source.config.container or "(no container)"
        self.dir_tree = self.query_one("#dir-tree", Tree)
        self.file_table = self.query_one("#file-table", DataTable)
        self.status_bar = self.query_one("#status", Static)
        self.file_table.add_columns("", "Name", "Type", "URL")
        self.file_table.cursor_type = "row"
        await self.load_children(self.dir_tree.root)
        self.dir_tree.root.expand()
        await self.show_directory("")

    async def load_children(self, node) -> None:
        path = node.data or ""
        entries = await asyncio.to_thread(self.source.list_entries, path)
        self._report_errors()
        node.remove_children()
        for entry in entries:
            if entry.is_dir:
                node.add(entry_label(entry), data=entry.key, allow_expand=True)
            else:
                node.add_leaf(entry_label(entry), data=entry.key)
        self.loaded_nodes.add(node.id)

    async def show_directory(self, path: str) -> None:
        self.current_path = path
        entries = await asyncio.to_thread(self.source.list_entries, path)
        self._report_errors()
        self.file_table.clear()
        for entry in entries:
            self.file_table.add_row(
                entry_icon(entry),
                entry_label(entry),
                entry.kind.value if entry.is_dir else (entry.extension or "file"),
                entry.url or "",
                key=entry.key,
            )
        self.status_bar.update(f"/{path}  ({len(entries)} entries)")

    async def on_tree_node_expanded(self, event: Tree.NodeExpanded) -> None:
        node = event.node
        if node.id in self.loaded_nodes:
            return
        await self.load_children(node)

    async def on_tree_node_selected(self, event: Tree.NodeSelected) -> None:
        key = event.node.data or ""
        if key and not is_directory_key(key):
            self.status_bar.update(self.source.get_object_url(key))
            return
        await self.show_directory(key)

    def _selected_key(self) -> Optional[str]:
        if self.focused is self.file_table and self.file_table.row_count:
            row_key, _column = self.file_table.coordinate_to_cell_key(
                self.file_table.cursor_coordinate
            )
            return row_key.value
        node = self.dir_tree.cursor_node
        if node is None or not node.data:
            return None
        return node.data

    def _report_errors(self) -> None:
        messages = self.source.error_messages()
        self.source.clear_errors()
        for message in messages:
            self.notify(message, severity="error")

    async def action_refresh(self) -> None:
        self.loaded_nodes.clear()
        await self.load_children(self.dir_tree.root)
        await self.show_directory(self.current_path)

    def action_confirm_quit(self) -> None:
        now = monotonic()
        if now <= self._quit_escape_deadline:
            self._quit_escape_deadline = 0.0
            self.exit()
            return
        self._quit_escape_deadline = now + ESC_QUIT_WINDOW_SECONDS
        self.notify(
            "Press Esc again within 1 second to quit.",
            severity="warning",
        )

    def action_create_directory(self) -> None:
        if not self.source.host.permissions.has_permission(PERMISSION_DIRECTORY_CREATE):
            self.notify("Not allowed to create directories.", severity="warning")
            return

        def created(name: Optional[str]) -> None:
            if name:
                self.run_worker(self._create_directory(name))

        self.push_screen(NameDialog(f"New directory in /{self.current_path}"), created)

    async def _create_directory(self, name: str) -> None:
        ok = await asyncio.to_thread(
            self.source.create_container, name, self.current_path
        )
        self._report_errors()
        if ok:
            self.notify(f"Created {name}", severity="information")
            await self.action_refresh()

    async def action_delete(self) -> None:
        key = self._selected_key()
        if not key:
            self.notify("Select a file or directory to delete.", severity="warning")
            return
        if is_directory_key(key):
            permission = PERMISSION_DIRECTORY_REMOVE
            operation = self.source.remove_container
        else:
            permission = PERMISSION_FILE_REMOVE
            operation = self.source.remove_object
        if not self.source.host.permissions.has_permission(permission):
            self.notify("Not allowed to delete this entry.", severity="warning")
            return
        ok = await asyncio.to_thread(operation, key)
        self._report_errors()
        if ok:
            self.notify(f"Deleted {basename(key)}", severity="information")
            await self.action_refresh()


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="bucketfs",
        description="Browse an S3 bucket as a directory tree",
    )
    parser.add_argument(
        "--source",
        default="default",
        help="Named source whose properties to load (default: default)",
    )
    parser.add_argument("--container", help="Bucket to browse (overrides the source)")
    parser.add_argument("-p", "--profile", help="AWS profile for the S3 client")
    parser.add_argument("--region", help="AWS region override for S3 client")
    parser.add_argument("--endpoint-url", help="S3-compatible endpoint URL")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("browse", help="Open the interactive browser")

    ls = subparsers.add_parser("ls", help="List one level of the tree")
    ls.add_argument("path", nargs="?", default="")

    files = subparsers.add_parser("files", help="List files with thumbnail URLs")
    files.add_argument("path", nargs="?", default="")

    mkdir = subparsers.add_parser("mkdir", help="Create a directory")
    mkdir.add_argument("name")
    mkdir.add_argument("--parent", default="")

    rmdir = subparsers.add_parser("rmdir", help="Remove a directory marker")
    rmdir.add_argument("path")

    rm = subparsers.add_parser("rm", help="Remove a file")
    rm.add_argument("path")

    rename = subparsers.add_parser("rename", help="Rename a file in place")
    rename.add_argument("path")
    rename.add_argument("name")

    mv = subparsers.add_parser("mv", help="Move a file into another directory")
    mv.add_argument("source_path", metavar="from")
    mv.add_argument("target_path", metavar="to")

    upload = subparsers.add_parser("upload", help="Upload local files")
    upload.add_argument("files", nargs="+")
    upload.add_argument("--to", default="", dest="directory")

    config = subparsers.add_parser("config", help="Show or edit source properties")
    config.add_argument("action", choices=["show", "get", "set"])
    config.add_argument("name", nargs="?")
    config.add_argument("value", nargs="?")
    return parser


def _open_source(args: argparse.Namespace) -> BucketMediaSource:
    store = PropertyStore()
    config = store.load_config(args.source)
    overrides = {}
    for field_name in ("container", "profile", "region", "endpoint_url"):
        value = getattr(args, field_name, None)
        if value:
            overrides[field_name] = value
    if overrides:
        config = replace(config, **overrides)
    source = BucketMediaSource(config, property_store=store, name=args.source)
    if not source.initialize():
        console.print(
            f"[yellow]Source {args.source!r} needs reconfiguration "
            "(container missing or not publicly readable).[/yellow]"
        )
    return source


def _report(source: BucketMediaSource, ok: bool, message: str) -> int:
    for text in source.error_messages():
        console.print(f"[red]{text}[/red]")
    if not ok:
        return 1
    console.print(message)
    return 0


def _run_browser_command(source: BucketMediaSource) -> int:
    app = BucketBrowser(source)
    app.run()
    return 0


def _run_list_command(source: BucketMediaSource, path: str) -> int:
    entries = source.list_entries(path)
    table = Table(title=f"/{path}")
    table.add_column("")
    table.add_column("Name")
    table.add_column("Path")
    table.add_column("URL")
    for entry in entries:
        table.add_row(entry_icon(entry), entry_label(entry), entry.key, entry.url or "")
    console.print(table)
    return _report(source, not source.has_errors(), f"{len(entries)} entries")


def _run_files_command(source: BucketMediaSource, path: str) -> int:
    records = source.get_objects_in_container(path)
    table = Table(title=f"/{path}")
    table.add_column("Name")
    table.add_column("Ext")
    table.add_column("Thumb")
    for record in records:
        table.add_row(str(record["name"]), str(record["ext"]), str(record["thumb"]))
    console.print(table)
    return _report(source, not source.has_errors(), f"{len(records)} files")


def _run_upload_command(
    source: BucketMediaSource, files: list[str], directory: str
) -> int:
    items: list[UploadItem] = []
    for name in files:
        path = Path(name)
        item = UploadItem.from_path(path)
        if not path.is_file():
            console.print(f"[yellow]Skipping {name}: not a file[/yellow]")
            item.error = 1
        items.append(item)
    source.upload_objects_to_container(directory, items)
    table = Table(title="Upload")
    table.add_column("File")
    table.add_column("Key")
    table.add_column("Status")
    for item in items:
        table.add_row(item.name, item.key or "", item.status)
    console.print(table)
    counts = ", ".join(f"{count} {status}" for status, count in sorted(summarize(items).items()))
    return _report(source, not source.has_errors(), counts)


def _run_config_command(args: argparse.Namespace) -> int:
    store = PropertyStore()
    if args.action == "show":
        values = store.load_config(args.source).to_properties()
        table = Table(title=f"Source {args.source}")
        known = store.sources()
        if known:
            table.caption = f"Configured sources: {', '.join(known)}"
        table.add_column("Property")
        table.add_column("Value")
        for definition in PROPERTY_DEFINITIONS:
            value = values.get(definition.name, "")
            if value is None:
                value = ""
            if definition.type == "password" and value:
                value = "********"
            table.add_row(definition.name, str(value))
        console.print(table)
        return 0
    if not args.name:
        console.print("[red]A property name is required.[/red]")
        return 2
    if args.action == "get":
        console.print(str(store.get(args.source, args.name, "")))
        return 0
    if args.value is None:
        console.print("[red]A value is required.[/red]")
        return 2
    if not store.set(args.source, args.name, args.value):
        console.print(f"[red]Could not write {store.path}[/red]")
        return 1
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    _configure_logging(args.verbose)

    if args.command == "config":
        return _run_config_command(args)

    source = _open_source(args)
    command = args.command or "browse"
    if command == "browse":
        return _run_browser_command(source)
    if command == "ls":
        return _run_list_command(source, args.path)
    if command == "files":
        return _run_files_command(source, args.path)
    if command == "mkdir":
        ok = source.create_container(args.name, args.parent)
        return _report(source, ok, f"Created {args.name}")
    if command == "rmdir":
        ok = source.remove_container(args.path)
        return _report(source, ok, f"Removed {args.path}")
    if command == "rm":
        ok = source.remove_object(args.path)
        return _report(source, ok, f"Removed {args.path}")
    if command == "rename":
        ok = source.rename_object(args.path, args.name)
        return _report(source, ok, f"Renamed {args.path}")
    if command == "mv":
        ok = source.move_object(args.source_path, args.target_path)
        return _report(source, ok, f"Moved {args.source_path}")
    if command == "upload":
        return _run_upload_command(source, args.files, args.directory)
    parser.error(f"unknown command {command!r}")
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
