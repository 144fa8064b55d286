"""Run configuration and environment handling."""
from __future__ import annotations

import enum
import logging
import os
import sys
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field

from .errors import ConfigurationError
from .models import DEFAULT_MODEL

DEFAULT_OUTPUT_DIR = "./generated-images"
DEFAULT_CONCURRENCY = 3
DEFAULT_API_BASE = "https://api.replicate.com/v1"

TOKEN_ENV = "REPLICATE_API_TOKEN"
API_BASE_ENV = "REPLICATE_API_BASE"
LOG_LEVEL_ENV = "REPLICATE_IMAGES_LOG_LEVEL"


class OutputMode(str, enum.Enum):
    HUMAN = "human"
    JSON = "json"
    QUIET = "quiet"


class RunConfig(BaseModel):
    """Everything a command needs to know, passed explicitly into the core."""

    model: str = DEFAULT_MODEL
    output_dir: Path = Path(DEFAULT_OUTPUT_DIR)
    concurrency: int = Field(DEFAULT_CONCURRENCY, ge=1)
    no_cache: bool = False
    dry_run: bool = False
    output: OutputMode = OutputMode.HUMAN

    @classmethod
    def from_flags(cls, json_output: bool = False, quiet: bool = False, **kwargs) -> "RunConfig":
        # --json wins over --quiet, matching one record per outcome on stdout
        if json_output:
            mode = OutputMode.JSON
        elif quiet:
            mode = OutputMode.QUIET
        else:
            mode = OutputMode.HUMAN
        return cls(output=mode, **kwargs)


def api_token() -> str:
    token = os.getenv(TOKEN_ENV, "").strip()
    if not token:
        raise ConfigurationError(f"{TOKEN_ENV} is not set")
    return token


def api_base() -> str:
    return os.getenv(API_BASE_ENV, DEFAULT_API_BASE).rstrip("/")


def configure_logging(verbose: bool = False, level: Optional[str] = None) -> None:
    """Send log records to stderr so stdout stays clean for JSON output."""
    if verbose:
        resolved = logging.DEBUG
    else:
        name = (level or os.getenv(LOG_LEVEL_ENV, "WARNING")).upper()
        resolved = getattr(logging, name, logging.WARNING)
        if not isinstance(resolved, int):
            resolved = logging.WARNING
    logging.basicConfig(
        level=resolved,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        stream=sys.stderr,
    )
    # basicConfig is a no-op once handlers exist; the level still applies
    logging.getLogger().setLevel(resolved)
