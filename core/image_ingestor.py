"""Validation and preview decoding of uploaded retinal images."""

import asyncio
import base64
import io
import logging
from typing import Optional, Tuple

from PIL import Image, UnidentifiedImageError

from core.utils import (
    MAX_UPLOAD_BYTES,
    IncomingFile,
    IngestError,
    IngestErrorKind,
    UploadedImage,
    format_file_size,
)

logger = logging.getLogger(__name__)


class ImageIngestor:
    """Turns an incoming file into an UploadedImage, or rejects it."""

    def __init__(self, max_size_bytes: int = MAX_UPLOAD_BYTES):
        self._max_size_bytes = max_size_bytes

    @property
    def max_size_bytes(self) -> int:
        return self._max_size_bytes

    def check(self, file: IncomingFile):
        """Raise IngestError if the file is not an acceptable image."""
        from i18n import t

        if not file.mime_type.startswith("image/"):
            raise IngestError(
                IngestErrorKind.INVALID_TYPE,
                t("errors.invalid_type", mime_type=file.mime_type or "unknown"),
            )
        if file.size_bytes > self._max_size_bytes:
            raise IngestError(
                IngestErrorKind.TOO_LARGE,
                t(
                    "errors.too_large",
                    size=format_file_size(file.size_bytes),
                    limit=format_file_size(self._max_size_bytes),
                ),
            )

    async def validate(self, file: IncomingFile) -> UploadedImage:
        """Validate a file and decode its preview off the event loop."""
        try:
            self.check(file)
        except IngestError as e:
            logger.warning("Rejected %s (%s, %d bytes): %s", file.name, file.mime_type, file.size_bytes, e.kind.value)
            raise

        preview_uri, dimensions = await asyncio.to_thread(self._decode, file)
        width, height = dimensions if dimensions else (None, None)

        logger.info("Accepted %s (%s, %s)", file.name, file.mime_type, format_file_size(file.size_bytes))
        return UploadedImage(
            name=file.name,
            mime_type=file.mime_type,
            size_bytes=file.size_bytes,
            data=file.data,
            preview_uri=preview_uri,
            width=width,
            height=height,
        )

    @staticmethod
    def _decode(file: IncomingFile) -> Tuple[str, Optional[Tuple[int, int]]]:
        """Build a data URI preview and read the pixel dimensions if possible."""
        payload = base64.b64encode(file.data).decode("ascii")
        preview_uri = f"data:{file.mime_type};base64,{payload}"

        try:
            with Image.open(io.BytesIO(file.data)) as img:
                dimensions = img.size
        except (UnidentifiedImageError, OSError):
            # Browsers preview formats Pillow cannot read; keep the upload
            logger.warning("Could not read dimensions of %s", file.name)
            dimensions = None

        return preview_uri, dimensions
