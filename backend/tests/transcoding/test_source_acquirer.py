"""Tests for source acquisition."""

from pathlib import Path

import httpx
import pytest

from hls_publisher.core.exceptions import ConfigurationError, NetworkError, NotFoundError
from hls_publisher.core.storage import StorageResolver
from hls_publisher.modules.transcoding.models import SourceMedia
from hls_publisher.modules.transcoding.source import SourceAcquirer, build_public_base_url

from conftest import STORAGE_ENV


class TestPublicBaseUrl:
    """Base URL of the public asset endpoint."""

    @pytest.mark.parametrize("public_url,expected", [
        ("https://cms.example.com", "https://cms.example.com"),
        ("  https://cms.example.com/  ", "https://cms.example.com"),
        ("http://10.0.0.5:8055/", "http://10.0.0.5:8055"),
    ])
    def test_configured_public_url(self, public_url: str, expected: str) -> None:
        assert build_public_base_url(public_url, "ignored", "1") == expected

    @pytest.mark.parametrize("public_url", [None, "", "/", "   ", "cms.example.com", "ftp://cms"])
    def test_falls_back_to_host_and_port(self, public_url) -> None:
        assert build_public_base_url(public_url, "media.internal", "9000") == "http://media.internal:9000"

    def test_wildcard_host_becomes_localhost(self) -> None:
        assert build_public_base_url(None, "0.0.0.0", "8055") == "http://localhost:8055"

    def test_defaults(self) -> None:
        assert build_public_base_url(None, None, None) == "http://localhost:8055"


def make_acquirer(tmp_path: Path, handler=None) -> SourceAcquirer:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler)) if handler else None
    return SourceAcquirer(
        StorageResolver(["local", "s3"], STORAGE_ENV),
        working_dir=tmp_path,
        temp_subdir="tmp/transcode",
        public_base_url="https://cms.example.com/",
        http_client=client,
    )


class TestLocalSource:
    """Sources on local disk are used in place."""

    @pytest.mark.asyncio
    async def test_uses_file_in_place(self, tmp_path: Path) -> None:
        source_path = tmp_path / "uploads" / "clip.mp4"
        source_path.parent.mkdir()
        source_path.write_bytes(b"video")

        acquired = await make_acquirer(tmp_path).acquire(
            SourceMedia(filename="clip.mp4", storage="local", driver="local")
        )

        assert acquired.path == source_path
        assert acquired.temporary is False

    @pytest.mark.asyncio
    async def test_missing_file_raises(self, tmp_path: Path) -> None:
        with pytest.raises(NotFoundError, match="does not exist"):
            await make_acquirer(tmp_path).acquire(
                SourceMedia(filename="clip.mp4", storage="local", driver="local")
            )

    @pytest.mark.asyncio
    async def test_missing_root_raises(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigurationError):
            await make_acquirer(tmp_path).acquire(
                SourceMedia(filename="clip.mp4", storage="nas", driver="local")
            )


class TestRemoteSource:
    """Sources in remote storage are downloaded once."""

    @pytest.mark.asyncio
    async def test_downloads_into_scratch_directory(self, tmp_path: Path) -> None:
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, content=b"remote video bytes")

        acquired = await make_acquirer(tmp_path, handler).acquire(
            SourceMedia(filename="clip.mp4", storage="s3", driver="s3", artifact_id="abc-123")
        )

        assert [str(r.url) for r in requests] == ["https://cms.example.com/assets/abc-123"]
        assert acquired.temporary is True
        assert acquired.path == tmp_path / "tmp" / "transcode" / "abc-123_clip.mp4"
        assert acquired.path.read_bytes() == b"remote video bytes"

    @pytest.mark.asyncio
    async def test_http_error_raises_and_leaves_no_file(self, tmp_path: Path) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(403, content=b"forbidden")

        acquirer = make_acquirer(tmp_path, handler)
        source = SourceMedia(filename="clip.mp4", storage="s3", driver="s3", artifact_id="abc-123")

        with pytest.raises(NetworkError, match="403"):
            await acquirer.acquire(source)
        assert not acquirer.temp_path(source).exists()

    @pytest.mark.asyncio
    async def test_transport_error_raises(self, tmp_path: Path) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(NetworkError, match="connection refused"):
            await make_acquirer(tmp_path, handler).acquire(
                SourceMedia(filename="clip.mp4", storage="s3", driver="s3", artifact_id="abc-123")
            )

    @pytest.mark.asyncio
    async def test_remote_source_without_id_raises(self, tmp_path: Path) -> None:
        with pytest.raises(NotFoundError):
            await make_acquirer(tmp_path).acquire(
                SourceMedia(filename="clip.mp4", storage="s3", driver="s3")
            )
