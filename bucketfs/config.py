from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Mapping, Optional

logger = logging.getLogger(__name__)

THUMBNAIL_TYPES = ("png", "jpg", "gif")
DEFAULT_IMAGE_EXTENSIONS = ("jpg", "jpeg", "png", "gif")
DEFAULT_SKIP_FILES = (".svn", ".git", "_notes", "nbproject", ".idea", ".DS_Store")
DEFAULT_UPLOAD_MAXSIZE = 1048576


def _split_list(value: object) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        parts = value.split(",")
    elif isinstance(value, (list, tuple, set, frozenset)):
        parts = [str(part) for part in value]
    else:
        return ()
    cleaned: list[str] = []
    for part in parts:
        item = part.strip()
        if item and item not in cleaned:
            cleaned.append(item)
    return tuple(cleaned)


def _to_int(value: object, default: int) -> int:
    if isinstance(value, bool):
        return default
    try:
        return int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return default


def _to_optional_str(value: object) -> Optional[str]:
    if not isinstance(value, str):
        return None
    stripped = value.strip()
    return stripped or None


@dataclass(frozen=True)
class SourceConfig:
    container: str = ""
    url: str = ""
    profile: Optional[str] = None
    access_key_id: Optional[str] = None
    secret_access_key: Optional[str] = None
    region: Optional[str] = None
    endpoint_url: Optional[str] = None
    image_extensions: tuple[str, ...] = DEFAULT_IMAGE_EXTENSIONS
    skip_files: tuple[str, ...] = DEFAULT_SKIP_FILES
    allowed_file_types: tuple[str, ...] = ()
    thumbnail_type: str = "png"
    thumbnail_quality: int = 90
    upload_files: tuple[str, ...] = ("txt", "html", "htm", "xml", "js", "css", "zip", "pdf", "doc", "docx")
    upload_images: tuple[str, ...] = ("jpg", "jpeg", "png", "gif", "svg", "webp")
    upload_media: tuple[str, ...] = ("mp3", "mp4", "wav", "ogg", "webm")
    upload_flash: tuple[str, ...] = ("swf", "fla")
    upload_maxsize: int = DEFAULT_UPLOAD_MAXSIZE
    image_width: int = 400
    image_height: int = 300
    thumb_width: int = 80
    thumb_height: int = 60
    connectors_url: str = "/connectors/"
    manager_url: str = "/manager/"

    @classmethod
    def from_properties(cls, properties: Mapping[str, Any]) -> "SourceConfig":
        defaults = cls()
        values: dict[str, Any] = {}
        for spec in fields(cls):
            if spec.name not in properties:
                continue
            raw = properties[spec.name]
            current = getattr(defaults, spec.name)
            if isinstance(current, tuple):
                values[spec.name] = tuple(
                    part.lower() if spec.name != "skip_files" else part
                    for part in _split_list(raw)
                )
            elif isinstance(current, int):
                values[spec.name] = _to_int(raw, current)
            elif current is None:
                values[spec.name] = _to_optional_str(raw)
            else:
                values[spec.name] = "" if raw is None else str(raw).strip()
        config = cls(**values)
        if config.thumbnail_type not in THUMBNAIL_TYPES:
            logger.warning(
                "[bucketfs] Unknown thumbnail type %r, using png", config.thumbnail_type
            )
            config = replace(config, thumbnail_type="png")
        return config

    def to_properties(self) -> dict[str, Any]:
        payload = asdict(self)
        for key, value in payload.items():
            if isinstance(value, tuple):
                payload[key] = ",".join(value)
        return payload

    def upload_extensions(self) -> frozenset[str]:
        merged: set[str] = set()
        for group in (
            self.upload_images,
            self.upload_media,
            self.upload_flash,
            self.upload_files,
        ):
            merged.update(ext.lower() for ext in group)
        return frozenset(merged)


@dataclass(frozen=True)
class PropertyDefinition:
    name: str
    desc: str
    type: str = "textfield"
    options: tuple[tuple[str, str], ...] = field(default_factory=tuple)
    value: Any = ""


PROPERTY_DEFINITIONS = (
    PropertyDefinition("profile", "prop_bucket.profile_desc"),
    PropertyDefinition("access_key_id", "prop_bucket.access_key_id_desc"),
    PropertyDefinition("secret_access_key", "prop_bucket.secret_access_key_desc", type="password"),
    PropertyDefinition("region", "prop_bucket.region_desc"),
    PropertyDefinition("endpoint_url", "prop_bucket.endpoint_url_desc"),
    PropertyDefinition("container", "prop_bucket.container_desc"),
    PropertyDefinition("url", "prop_bucket.url_desc", value="http://"),
    PropertyDefinition(
        "image_extensions",
        "prop_bucket.image_extensions_desc",
        value=",".join(DEFAULT_IMAGE_EXTENSIONS),
    ),
    PropertyDefinition(
        "thumbnail_type",
        "prop_bucket.thumbnail_type_desc",
        type="list",
        options=(("PNG", "png"), ("JPG", "jpg"), ("GIF", "gif")),
        value="png",
    ),
    PropertyDefinition("thumbnail_quality", "prop_bucket.thumbnail_quality_desc", value=90),
    PropertyDefinition(
        "skip_files",
        "prop_bucket.skip_files_desc",
        value=",".join(DEFAULT_SKIP_FILES),
    ),
)


def default_properties() -> dict[str, Any]:
    return {definition.name: definition.value for definition in PROPERTY_DEFINITIONS}


class PropertyStore:
    """JSON backed property sheets, one section per named source."""

    def __init__(self, path: Optional[Path] = None) -> None:
        self._path = path or self._default_path()

    @property
    def path(self) -> Path:
        return self._path

    def _config_base_dir(self) -> Path:
        config_home = os.environ.get("XDG_CONFIG_HOME")
        if config_home:
            base = Path(config_home).expanduser()
        else:
            base = Path.home() / ".config"
        return base / "bucketfs"

    def _default_path(self) -> Path:
        return self._config_base_dir() / "sources.json"

    def _read(self) -> dict[str, object]:
        try:
            payload = json.loads(self._path.read_text())
        except Exception:
            return {}
        if not isinstance(payload, dict):
            return {}
        return payload

    def _write(self, payload: dict[str, object]) -> bool:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            temp_path = self._path.with_suffix(".tmp")
            temp_path.write_text(json.dumps(payload, indent=2, sort_keys=True))
            temp_path.replace(self._path)
        except Exception as exc:
            logger.error("[bucketfs] Could not write %s: %s", self._path, exc)
            return False
        return True

    def sources(self) -> list[str]:
        section = self._read().get("sources")
        if not isinstance(section, dict):
            return []
        return sorted(name for name in section if isinstance(name, str))

    def properties(self, source: str) -> dict[str, Any]:
        section = self._read().get("sources")
        if not isinstance(section, dict):
            return {}
        values = section.get(source)
        if not isinstance(values, dict):
            return {}
        return dict(values)

    def get(self, source: str, name: str, default: Any = None) -> Any:
        return self.properties(source).get(name, default)

    def set(self, source: str, name: str, value: Any) -> bool:
        return self.set_properties(source, {name: value})

    def set_properties(self, source: str, values: Mapping[str, Any]) -> bool:
        payload = self._read()
        section = payload.get("sources")
        if not isinstance(section, dict):
            section = {}
        current = section.get(source)
        if not isinstance(current, dict):
            current = {}
        current.update(values)
        section[source] = current
        payload["sources"] = section
        return self._write(payload)

    def load_config(self, source: str) -> SourceConfig:
        merged = default_properties()
        merged.update(self.properties(source))
        if merged.get("url") == "http://":
            merged["url"] = ""
        return SourceConfig.from_properties(merged)
