"""Source acquisition.

Sources in local storage are used in place. Sources in remote storage are
downloaded once per job into a scratch directory through the public asset
endpoint.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse

import httpx

from hls_publisher.core.exceptions import NetworkError, NotFoundError
from hls_publisher.core.storage import LOCAL_DRIVER, StorageResolver
from hls_publisher.modules.transcoding.models import SourceMedia

logger = logging.getLogger(__name__)

DEFAULT_HOST = "localhost"
DEFAULT_PORT = "8055"
CHUNK_SIZE = 1024 * 1024


def build_public_base_url(
    public_url: Optional[str],
    host: Optional[str] = None,
    port: Optional[str] = None,
) -> str:
    """Base URL the asset endpoint is reachable under, without trailing slash.

    Falls back to ``http://<host>:<port>`` when no usable public URL is
    configured; a wildcard bind address is replaced by ``localhost``.
    """
    candidate = (public_url or "").strip()
    if candidate and candidate != "/":
        parsed = urlparse(candidate)
        if parsed.scheme in ("http", "https") and parsed.netloc:
            return candidate.rstrip("/")
        logger.warning(f"Ignoring PUBLIC_URL {candidate!r}: not an absolute http(s) URL")

    host = (host or DEFAULT_HOST).strip() or DEFAULT_HOST
    if host == "0.0.0.0":
        host = DEFAULT_HOST
    port = (str(port) if port else DEFAULT_PORT).strip() or DEFAULT_PORT
    return f"http://{host}:{port}"


@dataclass(frozen=True)
class AcquiredSource:
    """A readable local copy of the source video."""
    path: Path
    temporary: bool = False


class SourceAcquirer:
    """Makes the source file available on local disk."""

    def __init__(
        self,
        resolver: StorageResolver,
        working_dir: Path,
        temp_subdir: str,
        public_base_url: str,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: Optional[float] = None,
    ):
        self.resolver = resolver
        self.working_dir = Path(working_dir)
        self.temp_dir = self.working_dir / temp_subdir
        self.public_base_url = public_base_url.rstrip("/")
        self._client = http_client
        self.timeout = timeout

    def local_path(self, source: SourceMedia) -> Path:
        """Path of a source held in local storage.

        Raises:
            ConfigurationError: If the storage location has no root
        """
        root = self.resolver.require_root(source.storage)
        return self.working_dir / root / source.filename

    def temp_path(self, source: SourceMedia) -> Path:
        return self.temp_dir / f"{source.artifact_id}_{source.filename}"

    async def acquire(self, source: SourceMedia) -> AcquiredSource:
        """Get a readable path for the source.

        Raises:
            ConfigurationError: If a local source's storage root is missing
            NotFoundError: If a local source file does not exist, or a remote
                source has no identifier to download it by
            NetworkError: If the download fails
        """
        if source.driver == LOCAL_DRIVER:
            path = self.local_path(source)
            if not path.is_file():
                raise NotFoundError(f"Input file does not exist: {path}")
            logger.info(f"Using local source file: {path}")
            return AcquiredSource(path=path, temporary=False)

        if not source.artifact_id:
            raise NotFoundError(
                f"Source {source.filename} lives in remote storage <{source.storage}> "
                "but has no identifier to download it by"
            )
        path = await self.download(source)
        return AcquiredSource(path=path, temporary=True)

    async def download(self, source: SourceMedia) -> Path:
        """Stream a remote source into the scratch directory.

        Raises:
            NetworkError: On a non-200 response or transport failure
        """
        url = f"{self.public_base_url}/assets/{source.artifact_id}"
        self.temp_dir.mkdir(parents=True, exist_ok=True)
        path = self.temp_path(source)
        logger.info(f"Downloading remote source from {url}")

        try:
            if self._client is not None:
                await self._stream_to(self._client, url, path)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    await self._stream_to(client, url, path)
        except httpx.HTTPError as e:
            path.unlink(missing_ok=True)
            raise NetworkError(f"Failed to download file: {e}") from e
        except NetworkError:
            path.unlink(missing_ok=True)
            raise

        logger.info(f"File downloaded to: {path}")
        return path

    @staticmethod
    async def _stream_to(client: httpx.AsyncClient, url: str, path: Path) -> None:
        async with client.stream("GET", url) as response:
            if response.status_code != 200:
                raise NetworkError(
                    f"Failed to download file: {response.status_code} {response.reason_phrase}"
                )
            with open(path, "wb") as fh:
                async for chunk in response.aiter_bytes(CHUNK_SIZE):
                    fh.write(chunk)
