"""Shared fakes for the pipeline tests.

``FakeRunner`` stands in for ffmpeg/ffprobe: it answers probes with canned
JSON and writes the files a real encoder would produce. ``FakeAssetStore``
keeps records and folders in memory.
"""

import asyncio
import json
import uuid
from pathlib import Path
from typing import Optional, Sequence

import pytest

from hls_publisher.core.config import Settings
from hls_publisher.core.exceptions import NotFoundError, PersistenceError
from hls_publisher.core.storage import StorageResolver
from hls_publisher.modules.assets.interface import ArtifactMetadata, AssetStore, FileRecord
from hls_publisher.modules.transcoding.runner import CommandResult, CommandRunner


def quality_playlist(segment_names: Sequence[str]) -> str:
    lines = [
        "#EXTM3U",
        "#EXT-X-VERSION:3",
        "#EXT-X-TARGETDURATION:4",
        "#EXT-X-MEDIA-SEQUENCE:0",
        "#EXT-X-PLAYLIST-TYPE:VOD",
    ]
    for name in segment_names:
        lines.append("#EXTINF:4.000000,")
        lines.append(name)
    lines.append("#EXT-X-ENDLIST")
    return "\n".join(lines) + "\n"


class FakeRunner(CommandRunner):
    """Simulates ffprobe and ffmpeg."""

    def __init__(
        self,
        width: int = 1280,
        height: int = 720,
        duration: Optional[str] = "12.3456",
        pix_fmt: str = "yuv420p",
        segments_per_level: int = 3,
    ):
        self.width = width
        self.height = height
        self.duration = duration
        self.pix_fmt = pix_fmt
        self.segments_per_level = segments_per_level
        self.thumbnail_size = (320, 180)
        self.probe_fails = False
        self.thumbnail_fails = False
        self.fail_labels: set[str] = set()
        self.require_input = False
        self.calls: list[list[str]] = []

    @property
    def encoded_labels(self) -> list[str]:
        labels = []
        for args in self.calls:
            if "-hls_segment_filename" in args:
                labels.append(Path(args[-1]).stem.rsplit("_", 1)[-1])
        return labels

    @property
    def thumbnail_calls(self) -> int:
        return sum(1 for args in self.calls if "-vframes" in args)

    async def run(self, args, timeout=None) -> CommandResult:
        args = list(args)
        self.calls.append(args)
        await asyncio.sleep(0)

        if "-show_entries" in args:
            return self._probe(args[args.index("-show_entries") + 1])
        if self.require_input and "-i" in args:
            source = Path(args[args.index("-i") + 1])
            if not source.is_file():
                return CommandResult(exit_code=1, stdout="", stderr=f"{source}: No such file or directory")
        if "-hls_segment_filename" in args:
            return self._encode(args)
        if "-vframes" in args:
            return self._thumbnail(Path(args[-1]))
        return CommandResult(exit_code=127, stdout="", stderr="command not found")

    def _probe(self, entries: str) -> CommandResult:
        if entries == "stream=pix_fmt":
            payload = {"streams": [{"pix_fmt": self.pix_fmt}]}
        elif entries == "stream=width,height":
            width, height = self.thumbnail_size
            payload = {"streams": [{"width": width, "height": height}]}
        else:
            if self.probe_fails:
                return CommandResult(exit_code=1, stdout="", stderr="Invalid data found")
            payload = {"streams": [{"width": self.width, "height": self.height}]}
            if self.duration is not None:
                payload["format"] = {"duration": self.duration}
        return CommandResult(exit_code=0, stdout=json.dumps(payload), stderr="")

    def _encode(self, args: list[str]) -> CommandResult:
        playlist = Path(args[-1])
        label = playlist.stem.rsplit("_", 1)[-1]
        if label in self.fail_labels:
            return CommandResult(exit_code=1, stdout="", stderr=f"encoder crashed on {label}")

        pattern = args[args.index("-hls_segment_filename") + 1]
        names = []
        for i in range(self.segments_per_level):
            segment = Path(pattern.replace("%03d", f"{i:03d}"))
            segment.write_bytes(b"\x47" * 188)
            names.append(segment.name)
        playlist.write_text(quality_playlist(names), encoding="utf-8")
        return CommandResult(exit_code=0, stdout="", stderr="")

    def _thumbnail(self, output: Path) -> CommandResult:
        if self.thumbnail_fails:
            return CommandResult(exit_code=1, stdout="", stderr="could not seek")
        output.write_bytes(b"\xff\xd8\xff\xe0fake-jpeg")
        return CommandResult(exit_code=0, stdout="", stderr="")


class FakeAssetStore(AssetStore):
    """In-memory asset store."""

    def __init__(self):
        self.files: dict[str, dict] = {}
        self.folders: dict[str, dict] = {}
        self.registrations: list[ArtifactMetadata] = []
        self.uploads: list[str] = []
        self.fail_filenames: set[str] = set()

    def add_file(self, **record) -> str:
        file_id = str(uuid.uuid4())
        self.files[file_id] = record
        return file_id

    def add_folder(self, name: str, parent: Optional[str] = None) -> str:
        folder_id = str(uuid.uuid4())
        self.folders[folder_id] = {"name": name, "parent": parent}
        return folder_id

    def id_of(self, filename: str) -> Optional[str]:
        for file_id, record in self.files.items():
            if record.get("filename_disk") == filename:
                return file_id
        return None

    async def get_file(self, file_id: str) -> FileRecord:
        if file_id not in self.files:
            raise NotFoundError(f"File {file_id} not found")
        return FileRecord.from_dict({"id": file_id, **self.files[file_id]})

    async def find_artifact(self, filename_disk, storage, folder) -> Optional[str]:
        for file_id, record in self.files.items():
            if (
                record.get("filename_disk") == filename_disk
                and record.get("storage") == storage
                and record.get("folder") == folder
            ):
                return file_id
        return None

    async def register_artifact(self, metadata, source_path=None) -> str:
        if metadata.filename_disk in self.fail_filenames:
            raise PersistenceError(f"Store rejected {metadata.filename_disk}")
        if source_path is not None:
            Path(source_path).read_bytes()
            self.uploads.append(metadata.filename_disk)
        file_id = str(uuid.uuid4())
        self.files[file_id] = metadata.to_record()
        self.registrations.append(metadata)
        return file_id

    async def find_folder(self, name, parent) -> Optional[str]:
        for folder_id, folder in self.folders.items():
            if folder["name"] == name and folder["parent"] == parent:
                return folder_id
        return None

    async def create_folder(self, name, parent) -> str:
        return self.add_folder(name, parent)


STORAGE_ENV = {
    "STORAGE_LOCAL_ROOT": "uploads",
    "STORAGE_LOCAL_DRIVER": "local",
    "STORAGE_S3_ROOT": "media-bucket",
    "STORAGE_S3_DRIVER": "s3",
}


def make_settings(working_dir: Path, **overrides) -> Settings:
    values = {
        "WORKING_DIR": str(working_dir),
        "STORAGE_LOCATIONS": "local,s3",
        "PUBLIC_URL": "https://cms.example.com",
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
def fake_runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def fake_store() -> FakeAssetStore:
    return FakeAssetStore()


@pytest.fixture
def resolver() -> StorageResolver:
    return StorageResolver(["local", "s3"], STORAGE_ENV)


@pytest.fixture
def pipeline_settings(tmp_path: Path) -> Settings:
    return make_settings(tmp_path)
