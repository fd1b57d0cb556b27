import unittest

from bucketfs.host import (
    PERMISSION_FILE_VIEW,
    DefaultLexicon,
    StaticPermissions,
)
from bucketfs.tree import MENU_SEPARATOR, EntryKind, MenuItem, build_tree, context_menu


def _handlers(menu) -> list[str]:
    return [item.handler if isinstance(item, MenuItem) else item for item in menu]


class TestBuildTree(unittest.TestCase):
    def setUp(self) -> None:
        self.permissions = StaticPermissions()
        self.lexicon = DefaultLexicon()

    def _build(self, path, keys, **kwargs):
        return build_tree(path, keys, self.permissions, self.lexicon, **kwargs)

    def test_immediate_children_only(self) -> None:
        entries = self._build("a/", ["a/", "a/b.jpg", "a/c/", "a/c/d.jpg"])
        self.assertEqual(
            [(entry.key, entry.kind) for entry in entries],
            [("a/c/", EntryKind.DIRECTORY), ("a/b.jpg", EntryKind.FILE)],
        )

    def test_root_listing_excludes_nested_keys(self) -> None:
        keys = ["z.txt", "a/", "a/b.jpg", "a/c/", "b/", "m.png"]
        entries = self._build("", keys)
        self.assertEqual(
            [entry.key for entry in entries], ["a/", "b/", "m.png", "z.txt"]
        )

    def test_directories_precede_files_regardless_of_input_order(self) -> None:
        keys = ["p/zz.txt", "p/aa.txt", "p/zz/", "p/aa/", "p/mm.txt", "p/mm/"]
        entries = self._build("p/", reversed(keys))
        kinds = [entry.kind for entry in entries]
        self.assertEqual(kinds, [EntryKind.DIRECTORY] * 3 + [EntryKind.FILE] * 3)
        self.assertEqual(
            [entry.key for entry in entries],
            ["p/aa/", "p/mm/", "p/zz/", "p/aa.txt", "p/mm.txt", "p/zz.txt"],
        )

    def test_depth_never_exceeds_one_level(self) -> None:
        keys = ["x/", "x/1/", "x/1/2/", "x/1/2/f.txt", "x/1/f.txt", "x/f.txt"]
        for entry in self._build("x/", keys):
            relative = entry.key[len("x/") :]
            if entry.kind is EntryKind.DIRECTORY:
                self.assertLessEqual(relative.count("/"), 1)
            else:
                self.assertEqual(relative.count("/"), 0)

    def test_duplicate_keys_collapse(self) -> None:
        entries = self._build("", ["a.txt", "a.txt", "d/", "d/"])
        self.assertEqual([entry.key for entry in entries], ["d/", "a.txt"])

    def test_skip_files(self) -> None:
        entries = self._build("", [".DS_Store", "a.txt"], skip_files=[".DS_Store"])
        self.assertEqual([entry.key for entry in entries], ["a.txt"])

    def test_node_schema(self) -> None:
        entries = self._build(
            "a/", ["a/c/", "a/B.JPG"], base_url="https://cdn.example.com/media/"
        )
        directory, image = (entry.to_node() for entry in entries)
        self.assertEqual(directory["type"], "dir")
        self.assertFalse(directory["leaf"])
        self.assertEqual(directory["text"], "c")
        self.assertEqual(directory["cls"], "icon-")
        self.assertEqual(image["type"], "file")
        self.assertTrue(image["leaf"])
        self.assertEqual(image["cls"], "icon-jpg")
        self.assertEqual(image["url"], "https://cdn.example.com/media/a/B.JPG")
        self.assertEqual(image["pathRelative"], "a/B.JPG")
        self.assertIn("items", image["menu"])


class TestContextMenu(unittest.TestCase):
    def setUp(self) -> None:
        self.lexicon = DefaultLexicon()

    def test_file_menu_with_all_permissions(self) -> None:
        menu = context_menu(False, StaticPermissions(), self.lexicon)
        self.assertEqual(
            _handlers(menu),
            ["this.renameFile", "this.downloadFile", MENU_SEPARATOR, "this.removeFile"],
        )

    def test_file_menu_view_only_has_download(self) -> None:
        menu = context_menu(False, StaticPermissions([PERMISSION_FILE_VIEW]), self.lexicon)
        self.assertEqual(len(menu), 1)
        self.assertEqual(menu[0].handler, "this.downloadFile")
        self.assertEqual(menu[0].text, "Download")

    def test_file_menu_remove_only_has_no_separator(self) -> None:
        menu = context_menu(False, StaticPermissions(["file_remove"]), self.lexicon)
        self.assertEqual(_handlers(menu), ["this.removeFile"])

    def test_directory_menu_with_all_permissions(self) -> None:
        menu = context_menu(True, StaticPermissions(), self.lexicon)
        self.assertEqual(
            _handlers(menu),
            [
                "this.createDirectory",
                "this.refreshActiveNode",
                MENU_SEPARATOR,
                "this.uploadFiles",
                MENU_SEPARATOR,
                "this.removeDirectory",
            ],
        )

    def test_directory_menu_without_permissions_keeps_refresh(self) -> None:
        menu = context_menu(True, StaticPermissions([]), self.lexicon)
        self.assertEqual(_handlers(menu), ["this.refreshActiveNode"])


if __name__ == "__main__":
    unittest.main()
