import os
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from bucketfs.config import (
    DEFAULT_SKIP_FILES,
    PropertyStore,
    SourceConfig,
    default_properties,
)


class TestSourceConfig(unittest.TestCase):
    def test_lists_are_split_and_lower_cased(self) -> None:
        config = SourceConfig.from_properties(
            {"image_extensions": "JPG, png,,gif", "skip_files": ".DS_Store, Thumbs.db"}
        )
        self.assertEqual(config.image_extensions, ("jpg", "png", "gif"))
        self.assertEqual(config.skip_files, (".DS_Store", "Thumbs.db"))

    def test_integers_fall_back_to_defaults(self) -> None:
        config = SourceConfig.from_properties(
            {"thumbnail_quality": "75", "upload_maxsize": "lots"}
        )
        self.assertEqual(config.thumbnail_quality, 75)
        self.assertEqual(config.upload_maxsize, 1048576)

    def test_blank_optional_values_become_none(self) -> None:
        config = SourceConfig.from_properties({"profile": "  ", "region": "us-west-2"})
        self.assertIsNone(config.profile)
        self.assertEqual(config.region, "us-west-2")

    def test_unknown_thumbnail_type_uses_png(self) -> None:
        with self.assertLogs("bucketfs.config", level="WARNING"):
            config = SourceConfig.from_properties({"thumbnail_type": "bmp"})
        self.assertEqual(config.thumbnail_type, "png")

    def test_upload_extensions_merge_categories(self) -> None:
        config = SourceConfig(
            upload_images=("JPG",),
            upload_media=("mp3",),
            upload_flash=(),
            upload_files=("pdf",),
        )
        self.assertEqual(config.upload_extensions(), frozenset({"jpg", "mp3", "pdf"}))

    def test_to_properties_round_trips(self) -> None:
        config = SourceConfig(container="media", image_extensions=("jpg", "png"))
        properties = config.to_properties()
        self.assertEqual(properties["image_extensions"], "jpg,png")
        self.assertEqual(SourceConfig.from_properties(properties), config)


class TestPropertyStore(unittest.TestCase):
    def test_round_trip(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            store = PropertyStore(Path(temp_dir) / "nested" / "sources.json")
            self.assertEqual(store.sources(), [])
            self.assertTrue(store.set("media", "container", "assets"))
            self.assertTrue(store.set_properties("media", {"region": "eu-west-1"}))
            self.assertEqual(store.sources(), ["media"])
            self.assertEqual(
                store.properties("media"),
                {"container": "assets", "region": "eu-west-1"},
            )
            self.assertEqual(store.get("media", "missing", "x"), "x")
            self.assertFalse(store.path.with_suffix(".tmp").exists())

    def test_corrupt_file_reads_as_empty(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            path = Path(temp_dir) / "sources.json"
            path.write_text("{not json")
            store = PropertyStore(path)
            self.assertEqual(store.properties("default"), {})

    def test_load_config_merges_defaults(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            store = PropertyStore(Path(temp_dir) / "sources.json")
            store.set("default", "container", "media")
            config = store.load_config("default")
        self.assertEqual(config.container, "media")
        self.assertEqual(config.url, "")
        self.assertEqual(config.skip_files, DEFAULT_SKIP_FILES)

    def test_default_path_uses_xdg_config_home(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            with patch.dict(os.environ, {"XDG_CONFIG_HOME": temp_dir}):
                store = PropertyStore()
            self.assertEqual(store.path, Path(temp_dir) / "bucketfs" / "sources.json")

    def test_default_properties_list_every_definition(self) -> None:
        properties = default_properties()
        self.assertEqual(properties["url"], "http://")
        self.assertEqual(properties["thumbnail_type"], "png")
        self.assertIn("secret_access_key", properties)


if __name__ == "__main__":
    unittest.main()
