"""Image ingestion and ownership for source and reference images.

Uploaded and captured images become :class:`ImageHandle` objects owned by an
:class:`ImageCollection`.  Each handle gets a preview URL from a
:class:`PreviewRegistry`, the server-side counterpart of a browser object
URL: the bytes stay addressable at ``/api/previews/<token>`` until the
handle leaves its collection, at which point the preview is released exactly
once.

Collections come in two flavours:

- **multiple** (source images) — files are appended up to ``max_files`` and
  one image is tracked as *active*, the one the next restoration uses.
- **single** (reference image) — every new file replaces the previous one.
"""

from __future__ import annotations

import base64
import binascii
import io
import logging
import time
import uuid
from collections.abc import Iterable
from dataclasses import dataclass

from PIL import Image, UnidentifiedImageError

from photorestorer.core.validation import ValidationError, sanitize_filename_input

logger = logging.getLogger(__name__)

PREVIEW_URL_PREFIX = "/api/previews/"


@dataclass(frozen=True)
class ImageHandle:
    """An image owned by a collection.

    Attributes:
        id: Unique identifier within the process.
        filename: Original or generated file name.
        data: Encoded image bytes, as uploaded.
        mime_type: MIME type detected from the bytes.
        preview_url: URL serving the bytes while the handle is alive.
        is_original: False for images promoted from a restoration result.
    """

    id: str
    filename: str
    data: bytes
    mime_type: str
    preview_url: str
    is_original: bool = True


@dataclass(frozen=True)
class LoadedImage:
    """Verified image bytes ready to become a handle."""

    filename: str
    data: bytes
    mime_type: str


class PreviewRegistry:
    """Issue and release preview URLs for in-memory image bytes."""

    def __init__(self) -> None:
        self._previews: dict[str, tuple[bytes, str]] = {}

    def create(self, data: bytes, mime_type: str) -> str:
        token = uuid.uuid4().hex
        self._previews[token] = (data, mime_type)
        return f"{PREVIEW_URL_PREFIX}{token}"

    def resolve(self, url_or_token: str) -> tuple[bytes, str] | None:
        return self._previews.get(self._token(url_or_token))

    def release(self, url: str) -> bool:
        """Release a preview.

        Returns:
            True if the preview was live, False if unknown or already released
        """
        token = self._token(url)
        if self._previews.pop(token, None) is None:
            logger.warning("Preview %s was already released", url)
            return False
        return True

    def __len__(self) -> int:
        return len(self._previews)

    @staticmethod
    def _token(url_or_token: str) -> str:
        if url_or_token.startswith(PREVIEW_URL_PREFIX):
            return url_or_token[len(PREVIEW_URL_PREFIX) :]
        return url_or_token


def load_image(filename: str, data: bytes) -> LoadedImage:
    """Verify that *data* is a readable image and detect its MIME type.

    Raises:
        ValidationError: If the bytes are empty or not a supported image
    """
    name = sanitize_filename_input(filename or "image")
    if not data:
        raise ValidationError(f"Empty image file: {name}")

    try:
        with Image.open(io.BytesIO(data)) as image:
            image_format = image.format
            image.verify()
    except (UnidentifiedImageError, OSError, SyntaxError, ValueError) as e:
        logger.info("Rejected upload %s: %s", name, e)
        raise ValidationError(f"Unsupported image file: {name}") from e

    mime_type = Image.MIME.get(image_format or "", "")
    if not mime_type.startswith("image/"):
        raise ValidationError(f"Unsupported image file: {name}")
    return LoadedImage(filename=name, data=data, mime_type=mime_type)


def decode_data_url(data_url: str) -> tuple[bytes, str]:
    """Split a ``data:<mime>;base64,<payload>`` URL into bytes and MIME type.

    Raises:
        ValidationError: If the URL is not a base64 data URL
    """
    header, sep, payload = data_url.partition(",")
    if not sep or not header.startswith("data:") or not header.endswith(";base64"):
        raise ValidationError("Result image is not a base64 data URL")
    mime_type = header[len("data:") : -len(";base64")] or "image/png"
    try:
        return base64.b64decode(payload, validate=True), mime_type
    except (binascii.Error, ValueError) as e:
        raise ValidationError("Result image data is corrupt") from e


def encode_data_url(data: bytes, mime_type: str) -> str:
    """Encode bytes as a base64 data URL."""
    return f"data:{mime_type};base64,{base64.b64encode(data).decode('ascii')}"


class ImageCollection:
    """Ordered set of image handles with preview ownership.

    Args:
        previews: Registry issuing preview URLs.
        multiple: Append new files (True) or replace the current one (False).
        max_files: Capacity of a multiple collection.
    """

    def __init__(self, previews: PreviewRegistry, multiple: bool, max_files: int = 10) -> None:
        self.previews = previews
        self.multiple = multiple
        self.max_files = max_files if multiple else 1
        self._items: list[ImageHandle] = []
        self.active_id: str | None = None

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self):
        return iter(list(self._items))

    @property
    def items(self) -> list[ImageHandle]:
        return list(self._items)

    def get(self, image_id: str) -> ImageHandle | None:
        return next((item for item in self._items if item.id == image_id), None)

    @property
    def active(self) -> ImageHandle | None:
        """The image the next restoration uses.

        Single collections always treat their only image as active.
        """
        if not self.multiple:
            return self._items[0] if self._items else None
        return self.get(self.active_id) if self.active_id else None

    def add_files(self, files: Iterable[tuple[str, bytes]]) -> list[ImageHandle]:
        """Verify and add uploaded files.

        A multiple collection keeps only as many new files as fit; a single
        collection keeps the first file and replaces its current image.

        Raises:
            ValidationError: If any file is not a readable image; nothing is
                added in that case
        """
        capacity = self.max_files - len(self._items) if self.multiple else 1
        loaded = [load_image(name, data) for name, data in list(files)[: max(capacity, 0)]]
        return self._add(loaded, is_original=True)

    def add_capture(self, filename: str, data: bytes) -> ImageHandle | None:
        """Add a camera capture.

        Returns:
            The new handle, or None if a multiple collection is full
        """
        added = self._add([load_image(filename, data)], is_original=True)
        return added[0] if added else None

    def promote(self, data_url: str, filename: str = "") -> ImageHandle | None:
        """Add a restored image as a non-original source image."""
        data, _ = decode_data_url(data_url)
        loaded = load_image(filename or f"restored-{int(time.time() * 1000)}.png", data)
        added = self._add([loaded], is_original=False)
        return added[0] if added else None

    def remove(self, image_id: str) -> bool:
        """Remove an image and release its preview.

        Returns:
            True if the image was in the collection
        """
        handle = self.get(image_id)
        if handle is None:
            return False

        self._items.remove(handle)
        self.previews.release(handle.preview_url)

        if self.active_id == image_id:
            self.active_id = self._fallback_active_id()
        return True

    def clear(self) -> None:
        for handle in self._items:
            self.previews.release(handle.preview_url)
        self._items.clear()
        self.active_id = None

    def set_active(self, image_id: str) -> None:
        """Select the image the next restoration uses.

        Raises:
            KeyError: If the image is not in the collection
        """
        if self.get(image_id) is None:
            raise KeyError(image_id)
        self.active_id = image_id

    def _add(self, loaded: list[LoadedImage], is_original: bool) -> list[ImageHandle]:
        if self.multiple:
            loaded = loaded[: max(self.max_files - len(self._items), 0)]
        else:
            loaded = loaded[:1]
            if loaded:
                self.clear()

        handles = [
            ImageHandle(
                id=f"{image.filename}-{uuid.uuid4().hex[:12]}",
                filename=image.filename,
                data=image.data,
                mime_type=image.mime_type,
                preview_url=self.previews.create(image.data, image.mime_type),
                is_original=is_original,
            )
            for image in loaded
        ]
        self._items.extend(handles)

        if self.multiple and handles and self.get(self.active_id or "") is None:
            self.active_id = self._fallback_active_id()
        elif not self.multiple and handles:
            self.active_id = handles[0].id

        if handles:
            logger.info("Added %d image(s); collection now holds %d", len(handles), len(self._items))
        return handles

    def _fallback_active_id(self) -> str | None:
        original = next((item for item in self._items if item.is_original), None)
        if original is not None:
            return original.id
        return self._items[0].id if self._items else None
