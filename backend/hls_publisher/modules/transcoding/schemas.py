"""Pydantic schemas for the transcoding pipeline.

Defines the job request and the result payload. Both accept and emit
camelCase field names so they can be exchanged with the content service
as-is.
"""

from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from hls_publisher.core.exceptions import ValidationError
from hls_publisher.core.storage import StorageAdapterMode
from hls_publisher.modules.transcoding.playlist import ReferenceMode


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SourceFileRef(_CamelModel):
    """Source file record as supplied with the request."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    id: Optional[str] = None
    filename_disk: Optional[str] = Field(None, alias="filename_disk")
    storage: Optional[str] = None

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, v: Any) -> Optional[str]:
        return None if v is None else str(v)


class TranscodeRequest(_CamelModel):
    """Request schema for a transcoding job."""

    file: Optional[Union[str, SourceFileRef]] = Field(
        None, description="Source file identifier or file record"
    )
    folder_id: Optional[str] = Field(None, description="Parent folder for the published files")
    playlist_reference_type: ReferenceMode = ReferenceMode.ID
    qualities: Optional[Any] = Field(
        None, description="List of quality ids or labels, or a JSON-encoded list; all when absent"
    )
    threads: Optional[Any] = None
    nice: Optional[Any] = None
    storage_adapter: StorageAdapterMode = StorageAdapterMode.DEFAULT
    target_storage: Optional[str] = None

    @field_validator("folder_id", mode="before")
    @classmethod
    def coerce_folder_id(cls, v: Any) -> Optional[str]:
        if v is None or v == "":
            return None
        return str(v)

    @classmethod
    def parse(cls, payload: dict) -> "TranscodeRequest":
        """Validate a raw request payload.

        Raises:
            ValidationError: If the payload does not match the schema
        """
        try:
            return cls.model_validate(payload)
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid transcode request: {e}") from e


class MasterRef(_CamelModel):
    id: str
    filename: str


class Dimensions(_CamelModel):
    width: int
    height: int
    is_vertical: bool


class ResultMetadata(_CamelModel):
    available_qualities: list[int] = Field(default_factory=list)
    dimensions: Dimensions
    duration_ms: int = 0
    thumbnail: Optional[str] = None


class UploadedFile(_CamelModel):
    filename: str
    id: str


class PipelineResult(_CamelModel):
    """Result payload of a successful job."""

    master: MasterRef
    metadata: ResultMetadata
    files: list[UploadedFile] = Field(default_factory=list)
    error: Optional[str] = None

    def to_payload(self) -> dict:
        return self.model_dump(by_alias=True)


class ErrorResult(_CamelModel):
    """Result payload of a failed job."""

    error: str

    def to_payload(self) -> dict:
        return self.model_dump(by_alias=True)
