from __future__ import annotations

import io
import logging
from dataclasses import dataclass
from typing import Optional, Protocol
from urllib.parse import urlencode

import httpx
from PIL import Image, UnidentifiedImageError

from .config import SourceConfig
from .tree import Entry, object_url

logger = logging.getLogger(__name__)

MAX_IMAGE_WIDTH = 800
MAX_IMAGE_HEIGHT = 600
RENDER_SCRIPT = "system/thumbnail"
PLACEHOLDER_IMAGE = "images/nopreview.jpg"


class ImageProbe(Protocol):
    def probe(self, url: str) -> Optional[tuple[int, int]]: ...


class HttpImageProbe:
    """Measures remote images by downloading them and reading the header."""

    def __init__(self, timeout: float = 10.0) -> None:
        self.timeout = timeout

    def probe(self, url: str) -> Optional[tuple[int, int]]:
        try:
            response = httpx.get(url, timeout=self.timeout, follow_redirects=True)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.debug("[bucketfs] Could not fetch %s for sizing: %s", url, exc)
            return None
        try:
            with Image.open(io.BytesIO(response.content)) as image:
                return image.size
        except (UnidentifiedImageError, OSError) as exc:
            logger.debug("[bucketfs] Could not read image size of %s: %s", url, exc)
            return None


@dataclass(frozen=True)
class Geometry:
    image_width: int
    image_height: int
    thumb_width: int
    thumb_height: int


def thumbnail_geometry(
    config: SourceConfig, probed: Optional[tuple[int, int]]
) -> Geometry:
    image_width = config.image_width
    image_height = config.image_height
    if probed is not None:
        image_width = min(probed[0], MAX_IMAGE_WIDTH)
        image_height = min(probed[1], MAX_IMAGE_HEIGHT)
    return Geometry(
        image_width=image_width,
        image_height=image_height,
        thumb_width=min(config.thumb_width, image_width),
        thumb_height=min(config.thumb_height, image_height),
    )


def build_render_url(
    connectors_url: str,
    src: str,
    width: int,
    height: int,
    output_format: str,
    quality: int,
    auth_token: str,
    context_key: str,
    source_id: str,
) -> str:
    query = urlencode(
        {
            "src": src,
            "w": width,
            "h": height,
            "f": output_format,
            "q": quality,
            "auth": auth_token,
            "wctx": context_key,
            "source": source_id,
        }
    )
    return f"{connectors_url.rstrip('/')}/{RENDER_SCRIPT}?{query}"


class ThumbnailBuilder:
    """Builds flat file-view records, probing each image at most once."""

    def __init__(
        self,
        config: SourceConfig,
        probe: ImageProbe,
        base_url: str,
        auth_token: str = "",
        context_key: str = "",
        source_id: str = "",
    ) -> None:
        self.config = config
        self.probe = probe
        self.base_url = base_url
        self.auth_token = auth_token
        self.context_key = context_key
        self.source_id = source_id
        self._sizes: dict[str, Optional[tuple[int, int]]] = {}

    def _probe(self, url: str) -> Optional[tuple[int, int]]:
        if url not in self._sizes:
            self._sizes[url] = self.probe.probe(url)
        return self._sizes[url]

    def _render_url(self, key: str, width: int, height: int) -> str:
        return build_render_url(
            self.config.connectors_url,
            key,
            width,
            height,
            self.config.thumbnail_type,
            self.config.thumbnail_quality,
            self.auth_token,
            self.context_key,
            self.source_id,
        )

    def describe(self, entry: Entry, remove_label: Optional[str] = None) -> dict[str, object]:
        url = object_url(self.base_url, entry.key.strip("/"))
        record: dict[str, object] = {
            "id": entry.key,
            "name": entry.name,
            "url": url,
            "relativeUrl": url,
            "fullRelativeUrl": url,
            "pathname": url,
            "size": 0,
            "leaf": True,
            "menu": [],
            "ext": entry.extension,
            "cls": entry.icon_class,
        }
        if remove_label:
            record["menu"] = [{"text": remove_label, "handler": "this.removeFile"}]

        if entry.extension in self.config.image_extensions:
            geometry = thumbnail_geometry(self.config, self._probe(url))
            record["thumb"] = self._render_url(
                entry.key, geometry.thumb_width, geometry.thumb_height
            )
            record["image"] = self._render_url(
                entry.key, geometry.image_width, geometry.image_height
            )
            record["thumbWidth"] = geometry.thumb_width
            record["thumbHeight"] = geometry.thumb_height
            record["imageWidth"] = geometry.image_width
            record["imageHeight"] = geometry.image_height
        else:
            record["thumb"] = f"{self.config.manager_url.rstrip('/')}/{PLACEHOLDER_IMAGE}"
            record["thumbWidth"] = self.config.thumb_width
            record["thumbHeight"] = self.config.thumb_height
        return record
