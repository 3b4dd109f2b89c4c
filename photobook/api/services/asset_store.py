"""
Durable storage for generated illustrations.

The image model returns its output either inline or on a short-lived URL, so
every generated image is re-stored under a deterministic key. Writes go to a
temp file first and are renamed into place, so a re-run overwrites a page's
image without ever exposing a half-written file.

The same HTTP client fetches the user's source photos, which are sent to the
image model as reference images.
"""

import asyncio
import io
import logging
import shutil
import tempfile
from pathlib import Path
from typing import Optional

import httpx
from PIL import Image, UnidentifiedImageError
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from photobook.core.errors import ImageGenerationError
from photobook.core.types import GeneratedImage, ReferenceImage

from ..config import ASSET_BASE_URL, ASSETS_DIR

logger = logging.getLogger(__name__)

DOWNLOAD_TIMEOUT = 60.0


def generated_image_key(book_id: str, page_number: int) -> str:
    """Storage key for a page's illustration. Stable across re-runs."""
    return f"books/{book_id}/generated/page_{page_number:02d}.png"


class FileSystemAssetStore:
    """Stores images under a local directory served at ``base_url``."""

    def __init__(
        self,
        root_dir: Path = ASSETS_DIR,
        base_url: str = ASSET_BASE_URL,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.root_dir = Path(root_dir)
        self.base_url = base_url.rstrip("/")
        self.http_client = http_client or httpx.AsyncClient(timeout=DOWNLOAD_TIMEOUT)

    async def store_image(self, image: GeneratedImage, key: str) -> str:
        """
        Store a generated image under ``key``.

        Inline bytes are stored as they are; otherwise the image is downloaded
        from its hosted URL first.

        Returns:
            Public URL of the stored image

        Raises:
            ImageGenerationError: If the image has no data or does not decode
            httpx.HTTPError: If the download keeps failing after retries
        """
        if image.data is not None:
            data = image.data
        elif image.url:
            data = await self._download(image.url)
        else:
            raise ImageGenerationError("Generated image has neither data nor a URL")

        _inspect_image(data)
        await asyncio.to_thread(self._write_atomically, key, data)
        return self.public_url(key)

    async def fetch_reference(self, url: str, name: str) -> ReferenceImage:
        """
        Download a source photo for use as a reference image.

        The upload's content type and file extension come from the decoded
        image, not from the server's headers.

        Raises:
            ImageGenerationError: If the download does not decode as an image
            httpx.HTTPError: If the download keeps failing after retries
        """
        data = await self._download(url)
        image_format = _inspect_image(data)
        return ReferenceImage(
            data=data,
            filename=f"{name}.{image_format.lower()}",
            content_type=Image.MIME.get(image_format, "image/png"),
        )

    def public_url(self, key: str) -> str:
        return f"{self.base_url}/{key}"

    def path_for(self, key: str) -> Path:
        path = (self.root_dir / key).resolve()
        if not path.is_relative_to(self.root_dir.resolve()):
            raise ValueError(f"Asset key escapes the store: {key}")
        return path

    async def aclose(self) -> None:
        await self.http_client.aclose()

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        retry=retry_if_exception_type(httpx.TransportError),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    async def _download(self, url: str) -> bytes:
        response = await self.http_client.get(url)
        response.raise_for_status()
        return response.content

    def _write_atomically(self, key: str, data: bytes) -> None:
        final_path = self.path_for(key)
        final_path.parent.mkdir(parents=True, exist_ok=True)

        temp_path = None
        try:
            with tempfile.NamedTemporaryFile(
                dir=final_path.parent,
                suffix=final_path.suffix,
                delete=False,
            ) as tmp:
                temp_path = Path(tmp.name)
                tmp.write(data)
                tmp.flush()

            # Same directory, so the rename is atomic on POSIX
            shutil.move(str(temp_path), str(final_path))
        except Exception:
            if temp_path is not None:
                temp_path.unlink(missing_ok=True)
            raise
        logger.debug(f"Stored {len(data)} bytes at {final_path}")


def _inspect_image(data: bytes) -> str:
    """Verify that ``data`` decodes as an image and return its format name."""
    try:
        with Image.open(io.BytesIO(data)) as img:
            img.verify()
            return img.format or "PNG"
    except (UnidentifiedImageError, OSError, SyntaxError) as e:
        raise ImageGenerationError(f"Downloaded image is not valid: {e}") from e
