"""Exception taxonomy and process exit codes."""
from __future__ import annotations

EXIT_SUCCESS = 0
EXIT_PARTIAL_FAILURE = 1
EXIT_TOTAL_FAILURE = 2
EXIT_INVALID_INPUT = 3
EXIT_CACHE_SAVE_FAILED = 4
EXIT_ENVIRONMENT = 5


class ReplicateImagesError(Exception):
    """Base class for every error raised by this package."""


class InvalidInput(ReplicateImagesError):
    """Batch file missing, unparsable, empty, or containing empty prompts."""


class CacheCorrupt(ReplicateImagesError):
    """The cache file exists but cannot be read back."""


class ConfigurationError(ReplicateImagesError):
    """Missing credentials or unusable settings."""


class GenerationError(ReplicateImagesError):
    """A single image generation did not produce bytes."""


class GenerationFailed(GenerationError):
    """The prediction itself failed or was canceled remotely."""


class UnrecognizedOutputShape(GenerationError):
    """The model returned an output we do not know how to turn into a URL."""


class DownloadFailed(GenerationError):
    """The image reference could not be fetched."""


class ImageConversionFailed(ReplicateImagesError):
    """The downloaded bytes are not a decodable image."""


class PersistFailed(ReplicateImagesError):
    """Writing an output file or the cache file failed."""


class CacheSaveFailed(PersistFailed):
    """The cache file could not be written; generated images are on disk but unrecorded."""


__all__ = [
    "ReplicateImagesError",
    "InvalidInput",
    "CacheCorrupt",
    "ConfigurationError",
    "GenerationError",
    "GenerationFailed",
    "UnrecognizedOutputShape",
    "DownloadFailed",
    "ImageConversionFailed",
    "PersistFailed",
    "CacheSaveFailed",
    "EXIT_SUCCESS",
    "EXIT_PARTIAL_FAILURE",
    "EXIT_TOTAL_FAILURE",
    "EXIT_INVALID_INPUT",
    "EXIT_CACHE_SAVE_FAILED",
    "EXIT_ENVIRONMENT",
]
