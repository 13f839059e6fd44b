"""Blob storage abstraction. Local filesystem for dev, Supabase Storage for production.

Every backend exposes the same four async operations: put, get, delete
(idempotent on a missing key) and signed_url. Failures are translated into
the document error taxonomy so callers never see backend-specific exceptions.
"""
import asyncio
import hashlib
import hmac
import json
import logging
import mimetypes
import os
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional
from urllib.parse import quote, urlencode

import aiofiles
import aiohttp

from docdog.config import Settings
from docdog.services.documents.errors import (
    AuthFailure,
    BlobNotFound,
    BlobStoreError,
    NetworkFailure,
)

logger = logging.getLogger(__name__)


class BlobStore(ABC):
    """Object store holding document bytes under opaque keys."""

    @abstractmethod
    async def put(self, key: str, data: bytes) -> None:
        """Store ``data`` under ``key``, replacing any existing object."""
        pass

    @abstractmethod
    async def get(self, key: str) -> bytes:
        pass

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Delete the object. Deleting a missing key is not an error."""
        pass

    @abstractmethod
    async def signed_url(self, key: str, ttl_seconds: int) -> str:
        """Return a URL that grants read access for ``ttl_seconds``."""
        pass

    async def close(self) -> None:
        pass


class LocalBlobStore(BlobStore):
    """Stores blobs on local disk and signs download URLs with HMAC-SHA256.

    Signed URLs point at ``/api/blobs/{key}`` on this service, which checks the
    token with verify() before serving the file.
    """

    def __init__(self, base_path: str | os.PathLike, public_base_url: str, signing_secret: str):
        if not signing_secret:
            raise ValueError("SIGNING_SECRET not set. Cannot sign local blob URLs.")
        self.base_path = Path(base_path).resolve()
        self.public_base_url = public_base_url.rstrip("/")
        self._secret = signing_secret.encode("utf-8")

    def path_for(self, key: str) -> Path:
        """Resolve ``key`` under the base directory, refusing anything that escapes it."""
        path = (self.base_path / key).resolve()
        if path == self.base_path or not path.is_relative_to(self.base_path):
            raise BlobStoreError(f"Invalid storage key: {key!r}")
        return path

    async def put(self, key: str, data: bytes) -> None:
        path = self.path_for(key)
        tmp_path = path.with_name(path.name + ".part")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(tmp_path, "wb") as f:
                await f.write(data)
            os.replace(tmp_path, path)
        except OSError as e:
            tmp_path.unlink(missing_ok=True)
            raise BlobStoreError(f"Could not write {key}: {e}") from e
        logger.info(f"Stored {len(data)} bytes at {key}")

    async def get(self, key: str) -> bytes:
        path = self.path_for(key)
        if not path.is_file():
            raise BlobNotFound(key)
        async with aiofiles.open(path, "rb") as f:
            return await f.read()

    async def delete(self, key: str) -> None:
        path = self.path_for(key)
        try:
            os.remove(path)
        except FileNotFoundError:
            return
        except OSError as e:
            raise BlobStoreError(f"Could not delete {key}: {e}") from e
        logger.info(f"Deleted blob {key}")

    async def signed_url(self, key: str, ttl_seconds: int) -> str:
        if not self.path_for(key).is_file():
            raise BlobNotFound(key)
        expires = int(time.time()) + ttl_seconds
        query = urlencode({"expires": expires, "token": self.sign(key, expires)})
        return f"{self.public_base_url}/api/blobs/{quote(key, safe='/')}?{query}"

    def sign(self, key: str, expires: int) -> str:
        message = f"{key}\n{expires}".encode("utf-8")
        return hmac.new(self._secret, message, hashlib.sha256).hexdigest()

    def verify(self, key: str, expires: int, token: str, now: Optional[float] = None) -> bool:
        """True if ``token`` was issued for ``key`` and has not lapsed."""
        if (now if now is not None else time.time()) >= expires:
            return False
        return hmac.compare_digest(self.sign(key, expires), token)


class SupabaseBlobStore(BlobStore):
    """Async client for the Supabase Storage REST API.

    Supports async context manager for connection pooling across multiple
    calls. Falls back to a per-call session if used without ``async with``
    or open().
    """

    def __init__(self, url: str, api_key: str, bucket: str = "docs", timeout: float = 30.0):
        if not url or not api_key:
            raise ValueError("SUPABASE_URL and SUPABASE_KEY must be set to use Supabase storage.")
        self.base_url = f"{url.rstrip('/')}/storage/v1"
        self.bucket = bucket
        self._api_key = api_key
        self._session: Optional[aiohttp.ClientSession] = None
        self._timeout = aiohttp.ClientTimeout(total=timeout)

    async def open(self) -> None:
        """Open a persistent session for connection pooling."""
        if not self._session:
            self._session = aiohttp.ClientSession()

    async def close(self) -> None:
        """Close the persistent session."""
        if self._session:
            await self._session.close()
            self._session = None

    async def __aenter__(self) -> "SupabaseBlobStore":
        await self.open()
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()

    def _object_url(self, *parts: str) -> str:
        return "/".join([self.base_url, *(quote(p, safe="/") for p in parts)])

    async def put(self, key: str, data: bytes) -> None:
        content_type = mimetypes.guess_type(key)[0] or "application/octet-stream"
        await self._request(
            "POST", self._object_url("object", self.bucket, key), key,
            data=data,
            headers={"Content-Type": content_type, "x-upsert": "true"},
        )
        logger.info(f"Uploaded {len(data)} bytes to {self.bucket}/{key}")

    async def get(self, key: str) -> bytes:
        return await self._request("GET", self._object_url("object", self.bucket, key), key)

    async def delete(self, key: str) -> None:
        # The bulk-remove endpoint answers 200 with an empty list for missing keys.
        await self._request(
            "DELETE", self._object_url("object", self.bucket), key,
            json={"prefixes": [key]},
        )
        logger.info(f"Deleted {self.bucket}/{key}")

    async def signed_url(self, key: str, ttl_seconds: int) -> str:
        body = await self._request(
            "POST", self._object_url("object", "sign", self.bucket, key), key,
            json={"expiresIn": ttl_seconds},
        )
        try:
            signed_path = json.loads(body)["signedURL"]
        except (ValueError, KeyError, TypeError) as e:
            raise BlobStoreError(f"Unexpected sign response for {key}: {body[:200]!r}") from e
        return f"{self.base_url}/{signed_path.lstrip('/')}"

    async def _request(self, method: str, url: str, key: str, headers: Optional[dict] = None, **kwargs) -> bytes:
        all_headers = {"Authorization": f"Bearer {self._api_key}", "apikey": self._api_key}
        all_headers.update(headers or {})
        try:
            # Use persistent session if available, otherwise create one-off
            if self._session:
                return await self._send(self._session, method, url, key, all_headers, **kwargs)
            async with aiohttp.ClientSession() as session:
                return await self._send(session, method, url, key, all_headers, **kwargs)
        except asyncio.TimeoutError as e:
            raise NetworkFailure(f"Supabase storage timed out on {method} {key}") from e
        except aiohttp.ClientError as e:
            raise NetworkFailure(f"Supabase storage unreachable: {str(e) or type(e).__name__}") from e

    async def _send(self, session: aiohttp.ClientSession, method: str, url: str, key: str, headers: dict, **kwargs) -> bytes:
        async with session.request(method, url, headers=headers, timeout=self._timeout, **kwargs) as resp:
            body = await resp.read()
            if resp.status >= 400:
                raise _translate_error(resp.status, body, key)
            return body


def _translate_error(status: int, body: bytes, key: str) -> Exception:
    """Map a Supabase storage error response onto the error taxonomy.

    Storage often answers 400 with the real status in the JSON ``statusCode``.
    """
    code = status
    message = body[:500].decode("utf-8", errors="replace") or "No response body"
    try:
        payload = json.loads(body)
        if isinstance(payload, dict):
            code = int(payload.get("statusCode", status))
            message = payload.get("message") or payload.get("error") or message
    except (ValueError, TypeError):
        pass

    if code == 404:
        return BlobNotFound(key)
    if code in (401, 403):
        return AuthFailure(f"Supabase storage rejected credentials: {message}")
    if code == 429 or code >= 500:
        return NetworkFailure(f"Supabase storage unavailable (HTTP {code}): {message}")
    return BlobStoreError(f"Supabase storage error (HTTP {code}): {message}", status=code)


def create_blob_store(settings: Settings) -> BlobStore:
    """Build the blob store selected by BLOB_STORE_TYPE."""
    if settings.BLOB_STORE_TYPE == "local":
        return LocalBlobStore(
            settings.FILE_STORAGE_PATH,
            public_base_url=settings.PUBLIC_BASE_URL,
            signing_secret=settings.SIGNING_SECRET,
        )
    if settings.BLOB_STORE_TYPE == "supabase":
        return SupabaseBlobStore(
            settings.SUPABASE_URL,
            settings.SUPABASE_KEY,
            bucket=settings.SUPABASE_BUCKET,
            timeout=settings.BLOB_STORE_TIMEOUT_SECONDS,
        )
    raise ValueError(f"Unknown storage type: {settings.BLOB_STORE_TYPE}")
