"""
HTTP backend: annotation rows over a PostgREST-style API and sticker images
over an object storage API, both on the same project URL.
"""
import logging
import mimetypes
import uuid
from typing import Any, Dict, List, Optional, Sequence

import httpx

from scoremark.core.annotations.models import Annotation
from scoremark.core.errors import PersistenceError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = httpx.Timeout(30.0, connect=10.0)


class RestBackend:
    """Shared HTTP plumbing: auth headers, client lifetime and error mapping."""

    def __init__(self, base_url: str, api_key: str,
                 client: Optional[httpx.AsyncClient] = None):
        if not base_url:
            raise ValueError("A backend URL is required")
        self.base_url = base_url.rstrip('/')
        self.api_key = api_key
        self._client = client
        self._owns_client = client is None

    @property
    def headers(self) -> Dict[str, str]:
        return {
            'apikey': self.api_key,
            'Authorization': f'Bearer {self.api_key}',
        }

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=DEFAULT_TIMEOUT)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def _request(self, method: str, path: str, operation: str,
                       headers: Optional[Dict[str, str]] = None,
                       **kwargs: Any) -> httpx.Response:
        url = f"{self.base_url}{path}"
        try:
            response = await self.client.request(
                method, url, headers={**self.headers, **(headers or {})}, **kwargs)
            response.raise_for_status()
            return response
        except httpx.TimeoutException as e:
            logger.error("%s %s timed out", method, url)
            raise PersistenceError(f"Request timed out during {operation}", operation) from e
        except httpx.HTTPStatusError as e:
            detail = _error_detail(e.response)
            logger.error("%s %s failed: HTTP %d %s", method, url,
                         e.response.status_code, detail)
            raise PersistenceError(
                f"{operation} failed (HTTP {e.response.status_code}): {detail}",
                operation) from e
        except httpx.HTTPError as e:
            logger.error("%s %s failed: %s", method, url, e)
            raise PersistenceError(f"{operation} failed: {e}", operation) from e


class RestAnnotationRepository(RestBackend):
    """Annotation repository on the ``annotations`` table of a REST backend."""

    def __init__(self, base_url: str, api_key: str, table: str = "annotations",
                 client: Optional[httpx.AsyncClient] = None):
        super().__init__(base_url, api_key, client)
        self.table = table

    @property
    def table_path(self) -> str:
        return f"/rest/v1/{self.table}"

    async def select(self, document_ref: str) -> List[Annotation]:
        response = await self._request(
            'GET', self.table_path, 'select',
            params={
                'piece_id': f'eq.{document_ref}',
                'select': '*',
                'order': 'created_at.asc',
            },
        )
        return self._decode(response, 'select')

    async def insert(self, annotations: Sequence[Annotation]) -> List[Annotation]:
        if not annotations:
            return []

        response = await self._request(
            'POST', self.table_path, 'insert',
            headers={'Prefer': 'return=representation'},
            json=[ann.to_dict() for ann in annotations],
        )
        return self._decode(response, 'insert')

    async def delete(self, identity: str) -> None:
        await self._request('DELETE', self.table_path, 'delete',
                            params={'id': f'eq.{identity}'})

    def _decode(self, response: httpx.Response, operation: str) -> List[Annotation]:
        try:
            return [Annotation.from_dict(row) for row in response.json()]
        except (ValueError, TypeError) as e:
            raise PersistenceError(f"Unexpected {operation} response: {e}", operation) from e


class RestBlobStore(RestBackend):
    """Sticker images in a public storage bucket."""

    def __init__(self, base_url: str, api_key: str, bucket: str = "stickers",
                 client: Optional[httpx.AsyncClient] = None):
        super().__init__(base_url, api_key, client)
        self.bucket = bucket

    async def store(self, data: bytes, content_type: str, prefix: str = "") -> str:
        """
        Upload a blob.

        Returns:
            The storage path, which is what annotations keep
        """
        extension = mimetypes.guess_extension(content_type) or '.bin'
        name = f"{uuid.uuid4().hex}{extension}"
        reference = f"{prefix.strip('/')}/{name}" if prefix.strip('/') else name

        await self._request(
            'POST', f"/storage/v1/object/{self.bucket}/{reference}", 'upload',
            headers={'Content-Type': content_type, 'x-upsert': 'true'},
            content=data,
        )
        logger.debug("Uploaded %d bytes to %s/%s", len(data), self.bucket, reference)
        return reference

    async def fetch(self, reference: str) -> bytes:
        """Download a blob through its public URL."""
        response = await self._request(
            'GET', f"/storage/v1/object/public/{self.bucket}/{reference}", 'download')
        return response.content

    def public_url(self, reference: str) -> str:
        return f"{self.base_url}/storage/v1/object/public/{self.bucket}/{reference}"


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(body, dict):
        return str(body.get('message') or body.get('error') or body)
    return str(body)
