"""Media store backed by Cloudinary's REST upload API."""

import hashlib
import time
from pathlib import Path
from typing import Any, Dict

import httpx
import structlog

from account_api.config import Settings
from account_api.models.media import UploadedAsset

logger = structlog.get_logger(__name__)


class MediaStoreError(Exception):
    """Upload or deletion on the media host failed."""


def sign_params(params: Dict[str, Any], api_secret: str) -> str:
    """Compute a Cloudinary request signature.

    Parameters are sorted by name, joined as ``key=value`` pairs with ``&``,
    suffixed with the API secret and SHA-1 hashed.
    """
    to_sign = "&".join(
        f"{key}={params[key]}" for key in sorted(params) if params[key] not in (None, "")
    )
    return hashlib.sha1(f"{to_sign}{api_secret}".encode("utf-8")).hexdigest()


class MediaStore:
    """Uploads local files to the media host and deletes them by public id."""

    def __init__(self, settings: Settings):
        self.cloud_name = settings.cloudinary_cloud_name
        self.api_key = settings.cloudinary_api_key
        self.api_secret = settings.cloudinary_api_secret
        self.base_url = settings.cloudinary_base_url.rstrip("/")
        self.timeout = settings.media_upload_timeout
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=httpx.Timeout(self.timeout))
        return self._client

    async def close(self):
        """Close HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    def _ensure_configured(self) -> None:
        if not (self.cloud_name and self.api_key and self.api_secret):
            logger.error("media_store_not_configured")
            raise MediaStoreError("Media host credentials are not configured")

    def _signed(self, params: Dict[str, Any]) -> Dict[str, Any]:
        signed = dict(params, timestamp=int(time.time()))
        signed["signature"] = sign_params(signed, self.api_secret)
        signed["api_key"] = self.api_key
        return signed

    async def upload(self, local_path: Path) -> UploadedAsset:
        """Upload a local file and remove it from disk.

        The local file is removed whether or not the upload succeeds.

        Args:
            local_path: Path of the staged file

        Returns:
            The stored asset's URL and deletion handle

        Raises:
            MediaStoreError: If the file is missing, the host rejects the
                upload, or the response carries no URL
        """
        local_path = Path(local_path)
        try:
            self._ensure_configured()
            if not local_path.is_file():
                raise MediaStoreError(f"Local file not found: {local_path.name}")

            url = f"{self.base_url}/{self.cloud_name}/auto/upload"
            client = await self._get_client()
            try:
                response = await client.post(
                    url,
                    data=self._signed({}),
                    files={"file": (local_path.name, local_path.read_bytes())},
                )
            except httpx.HTTPError as e:
                logger.error("media_upload_http_error", error=str(e), error_type=type(e).__name__)
                raise MediaStoreError(f"Upload request failed: {e}") from e

            if response.status_code >= 400:
                logger.error(
                    "media_upload_rejected",
                    status_code=response.status_code,
                    file=local_path.name,
                )
                raise MediaStoreError(f"Upload rejected with status {response.status_code}")

            try:
                body = response.json()
            except ValueError as e:
                logger.error("media_upload_bad_response", file=local_path.name)
                raise MediaStoreError("Upload response was not JSON") from e

            asset_url = body.get("secure_url") or body.get("url")
            public_id = body.get("public_id")
            if not asset_url or not public_id:
                raise MediaStoreError("Upload response carried no URL")

            logger.info("media_uploaded", public_id=public_id, file=local_path.name)
            return UploadedAsset(
                url=asset_url,
                public_id=public_id,
                resource_type=body.get("resource_type", "image"),
            )
        finally:
            local_path.unlink(missing_ok=True)

    async def delete(self, public_id: str, resource_type: str = "image") -> None:
        """Delete an asset by its public id.

        Raises:
            MediaStoreError: If the host call fails or reports an error
        """
        self._ensure_configured()
        url = f"{self.base_url}/{self.cloud_name}/{resource_type}/destroy"
        client = await self._get_client()

        try:
            response = await client.post(url, data=self._signed({"public_id": public_id}))
        except httpx.HTTPError as e:
            logger.error("media_delete_http_error", public_id=public_id, error=str(e))
            raise MediaStoreError(f"Delete request failed: {e}") from e

        if response.status_code >= 400:
            raise MediaStoreError(f"Delete rejected with status {response.status_code}")

        try:
            result = response.json().get("result")
        except ValueError as e:
            raise MediaStoreError("Delete response was not JSON") from e
        if result not in ("ok", "not found"):
            raise MediaStoreError(f"Delete failed: {result}")

        logger.info("media_deleted", public_id=public_id, result=result)
