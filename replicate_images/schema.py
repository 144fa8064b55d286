from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import datetime, timezone


class CacheEntry(BaseModel):
    hash: str
    prompt: str
    model: str
    output_file: str  # relative to the output directory
    created_at: datetime

    def model_post_init(self, __context):  # type: ignore[override]
        # Entries written without an offset are treated as UTC
        if self.created_at.tzinfo is None:
            object.__setattr__(self, "created_at", self.created_at.replace(tzinfo=timezone.utc))


class CacheFile(BaseModel):
    entries: List[CacheEntry] = []


class ItemResult(BaseModel):
    status: str  # generated|cached|skipped|error
    prompt: str
    model: str
    hash: str
    output_file: Optional[str] = None
    cached: bool = False
    error: Optional[str] = None


class DryRunPrompt(BaseModel):
    prompt: str
    model: str
    hash: str
    status: str  # pending|cached|skipped
    output_file: Optional[str] = None


class DryRunResult(BaseModel):
    to_generate: int
    cached: int
    skipped: int = 0
    prompts: List[DryRunPrompt] = []


class ValidationSummary(BaseModel):
    total_prompts: int = 0
    unique_prompts: int = 0
    duplicates: int = 0
    empty_prompts: int = 0


class ValidationResult(BaseModel):
    valid: bool
    errors: List[str] = []
    warnings: List[str] = []
    summary: ValidationSummary = Field(default_factory=ValidationSummary)


class BatchCounts(BaseModel):
    """Aggregate counts for one batch run."""
    total: int = 0
    cached: int = 0
    pending: int = 0
    generated: int = 0
    errored: int = 0
    skipped: int = 0  # repeated prompt+model pairs, not dispatched


class ModelInfo(BaseModel):
    owner: str
    name: str
    description: Optional[str] = None
    run_count: int = 0

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.name}"
