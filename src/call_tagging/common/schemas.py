"""API DTO。"""
from __future__ import annotations
from datetime import datetime
from pydantic import BaseModel, Field


class PromptCreateRequest(BaseModel):
    campaign_id: str
    system_prompt: str = Field(min_length=1)
    campaign_name: str | None = None
    prompt_version: str = "V5"; notes: str | None = None

class PromptMetaUpdateRequest(BaseModel):
    campaign_name: str | None = None; notes: str | None = None
    prompt_version: str | None = None

class PromptDTO(BaseModel):
    id: int; campaign_id: str | None = None; campaign_name: str | None = None
    prompt_version: str = "V5"; is_active: bool = True; notes: str | None = None
    prompt_chars: int = 0; system_prompt: str | None = None
    created_at: datetime | None = None; updated_at: datetime | None = None

class PassSummaryDTO(BaseModel):
    rounds: int = 0; selected: int = 0; persisted: int = 0
    classify_failed: int = 0; persist_failed: int = 0; skipped_no_prompt: int = 0
    stop_reason: str = ""; elapsed_ms: int = 0

class RunStatusDTO(BaseModel):
    running: bool = False; schedule_enabled: bool = False; in_window: bool = False
    last_started_at: datetime | None = None; last_finished_at: datetime | None = None
    last_error: str | None = None; last_summary: PassSummaryDTO | None = None
    circuit: dict = Field(default_factory=dict)

class ErrorResponse(BaseModel):
    error_code: str; message: str; severity: str = "error"
