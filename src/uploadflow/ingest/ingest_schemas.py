"""Pydantic schemas for ingest requests and responses."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class TrimWatermarkRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    staging_video_path: str | None = Field(None, alias="stagingVideoPath")
    staging_wm_path: str | None = Field(None, alias="stagingWmPath")
    start_sec: float | None = Field(None, alias="startSec")
    end_sec: float | None = Field(None, alias="endSec")
    position: str | None = None
    audience: str | None = None
    title: str | None = None
    description: str | None = None
    tags: list[str] = Field(default_factory=list)


class FinalizeImageRequest(BaseModel):
    path: str
    audience: str
    title: str | None = None
    description: str | None = None
    tags: list[str] = Field(default_factory=list)
    width: int | None = None
    height: int | None = None


class FinalizeVideoRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    path: str
    audience: str
    title: str | None = None
    description: str | None = None
    tags: list[str] = Field(default_factory=list)
    duration_seconds: float | None = Field(None, alias="durationSeconds")


class CreateUploadRequest(BaseModel):
    kind: Literal["video", "image", "watermark"]
    filename: str = ""
    staging: bool = False


class SignedUploadResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    bucket: str
    path: str
    token: str
    project_ref: str = Field(alias="projectRef")
    upload_url: str = Field(alias="uploadUrl")
    resumable_url: str | None = Field(None, alias="resumableUrl")


class MediaRowSchema(BaseModel):
    id: str
    storage_path: str


class MediaRowResponse(BaseModel):
    row: MediaRowSchema


class BatchSuccessSchema(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    index: int
    record_id: str = Field(alias="recordId")
    storage_path: str = Field(alias="storagePath")


class BatchFailureSchema(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    index: int
    error_message: str = Field(alias="errorMessage")


class BatchUploadResponse(BaseModel):
    successes: list[BatchSuccessSchema]
    failures: list[BatchFailureSchema]


class IngestErrorSchema(BaseModel):
    error: str
    failure_reason: str
