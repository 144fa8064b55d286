"""Batch prompt files: YAML loading and validation.

Expected layout::

    prompts:
      - prompt: "a cat in space"
        model: black-forest-labs/flux-schnell
      - prompt: "a dog on the moon"
"""
from __future__ import annotations
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

import yaml
from pydantic import BaseModel, ValidationError

from .errors import InvalidInput
from .schema import ValidationResult, ValidationSummary


class PromptEntry(BaseModel):
    prompt: Optional[str] = None
    model: Optional[str] = None

    def resolved_model(self, default_model: str) -> str:
        return self.model or default_model


class PromptFile(BaseModel):
    prompts: List[PromptEntry] = []


def load_prompt_file(path: Union[str, Path]) -> List[PromptEntry]:
    """Parse ``path`` into prompt entries. Does not check for emptiness."""
    try:
        text = Path(path).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise InvalidInput(f"failed to read file: {e}") from e
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise InvalidInput(f"invalid YAML syntax: {e}") from e
    if data is None:
        return []
    try:
        return PromptFile.model_validate(data).prompts
    except ValidationError as e:
        raise InvalidInput(f"invalid prompt file structure: {e}") from e


def validate_prompts(entries: List[PromptEntry], default_model: str) -> ValidationResult:
    errors: List[str] = []
    warnings: List[str] = []
    seen: Dict[Tuple[str, str], int] = {}
    empty = 0

    if not entries:
        errors.append("no prompts found in file")

    for i, entry in enumerate(entries, start=1):
        if not entry.prompt or not entry.prompt.strip():
            errors.append(f"prompt {i}: empty prompt text")
            empty += 1
            continue
        key = (entry.prompt, entry.resolved_model(default_model))
        prev = seen.get(key)
        if prev is not None:
            warnings.append(f"prompt {i}: duplicate of prompt {prev} (same prompt+model)")
        else:
            seen[key] = i

    return ValidationResult(
        valid=not errors,
        errors=errors,
        warnings=warnings,
        summary=ValidationSummary(
            total_prompts=len(entries),
            unique_prompts=len(seen),
            duplicates=len(entries) - len(seen) - empty,
            empty_prompts=empty,
        ),
    )


__all__ = ["PromptEntry", "PromptFile", "load_prompt_file", "validate_prompts"]
