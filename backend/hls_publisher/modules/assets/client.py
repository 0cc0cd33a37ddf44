"""HTTP asset store client.

Talks to a REST content service exposing ``/files`` and ``/folders``
collections whose responses are wrapped in ``{"data": ...}``.
"""

import logging
from pathlib import Path
from typing import Any, Optional

import httpx

from hls_publisher.core.exceptions import NotFoundError, PersistenceError
from hls_publisher.modules.assets.interface import ArtifactMetadata, AssetStore, FileRecord

logger = logging.getLogger(__name__)


class HttpAssetStore(AssetStore):
    """AssetStore backed by the content service REST API."""

    def __init__(
        self,
        base_url: str,
        token: str = "",
        client: Optional[httpx.AsyncClient] = None,
        timeout: Optional[float] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self._client = client
        self.timeout = timeout

    def _headers(self) -> dict[str, str]:
        if not self.token:
            return {}
        return {"Authorization": f"Bearer {self.token}"}

    async def _make_request(
        self,
        method: str,
        endpoint: str,
        params: Optional[dict] = None,
        json: Optional[dict] = None,
        data: Optional[dict] = None,
        files: Optional[dict] = None,
        raise_not_found: bool = False,
    ) -> Any:
        """Make an authenticated request and unwrap ``data``.

        Raises:
            NotFoundError: On 404 when ``raise_not_found`` is set
            PersistenceError: On any other HTTP or transport failure
        """
        url = f"{self.base_url}{endpoint}"
        try:
            if self._client is not None:
                response = await self._client.request(
                    method, url, params=params, json=json, data=data, files=files,
                    headers=self._headers(),
                )
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.request(
                        method, url, params=params, json=json, data=data, files=files,
                        headers=self._headers(),
                    )
        except httpx.HTTPError as e:
            raise PersistenceError(f"{method} {endpoint} failed: {e}") from e

        if response.status_code == 404 and raise_not_found:
            raise NotFoundError(f"{method} {endpoint} returned 404")
        if response.status_code >= 400:
            raise PersistenceError(
                f"{method} {endpoint} returned {response.status_code}: {response.text[:200]}"
            )
        if not response.content:
            return None
        try:
            body = response.json()
        except ValueError as e:
            raise PersistenceError(f"{method} {endpoint} returned invalid JSON") from e
        return body.get("data") if isinstance(body, dict) else None

    async def get_file(self, file_id: str) -> FileRecord:
        data = await self._make_request("GET", f"/files/{file_id}", raise_not_found=True)
        if not isinstance(data, dict):
            raise NotFoundError(f"File {file_id} not found")
        return FileRecord.from_dict(data)

    async def find_artifact(
        self,
        filename_disk: str,
        storage: str,
        folder: Optional[str],
    ) -> Optional[str]:
        params = {
            "filter[filename_disk][_eq]": filename_disk,
            "filter[storage][_eq]": storage,
            "fields": "id",
            "limit": "1",
        }
        if folder:
            params["filter[folder][_eq]"] = folder
        else:
            params["filter[folder][_null]"] = "true"

        data = await self._make_request("GET", "/files", params=params)
        if data:
            return str(data[0]["id"])
        return None

    async def register_artifact(
        self,
        metadata: ArtifactMetadata,
        source_path: Optional[Path] = None,
    ) -> str:
        record = metadata.to_record()
        if source_path is None:
            data = await self._make_request("POST", "/files", json=record)
        else:
            # Metadata fields must precede the file part.
            form = {k: str(v) for k, v in record.items()}
            with open(source_path, "rb") as fh:
                data = await self._make_request(
                    "POST",
                    "/files",
                    data=form,
                    files={"file": (metadata.filename_disk, fh, metadata.type)},
                )
        if not isinstance(data, dict) or "id" not in data:
            raise PersistenceError(f"Store did not return an id for {metadata.filename_disk}")
        return str(data["id"])

    async def find_folder(self, name: str, parent: Optional[str]) -> Optional[str]:
        params = {"filter[name][_eq]": name, "fields": "id", "limit": "1"}
        if parent:
            params["filter[parent][_eq]"] = parent
        else:
            params["filter[parent][_null]"] = "true"

        data = await self._make_request("GET", "/folders", params=params)
        if data:
            return str(data[0]["id"])
        return None

    async def create_folder(self, name: str, parent: Optional[str]) -> str:
        data = await self._make_request("POST", "/folders", json={"name": name, "parent": parent})
        if not isinstance(data, dict) or "id" not in data:
            raise PersistenceError(f"Store did not return an id for folder {name}")
        return str(data["id"])
