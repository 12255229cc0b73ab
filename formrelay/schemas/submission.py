from __future__ import annotations

from typing import Dict, List, Literal

from pydantic import BaseModel, Field


class SubmissionResponse(BaseModel):
    success: bool
    message: str


class SlotDebugInfo(BaseModel):
    filename: str | None = None
    status: str
    size_bytes: int | None = None


class SubmissionDebugInfo(BaseModel):
    variant: str
    fields_received: List[str]
    files_received: Dict[str, SlotDebugInfo]
    errors: List[str] = Field(default_factory=list)


class DebugSubmissionResponse(SubmissionResponse):
    debug_info: SubmissionDebugInfo


class SetupCheck(BaseModel):
    name: str
    status: Literal["pass", "warning", "fail"]
    detail: str


class SetupReport(BaseModel):
    status: Literal["pass", "warning", "fail"]
    version: str
    checks: List[SetupCheck]
