"""replicate_images

Generate images from text prompts with Replicate, cached by prompt+model.

Primary entrypoints:
 - cli.py (Typer CLI)
 - batch.py (single-prompt path + concurrent batch executor)
 - cache.py (fingerprints + cache.json store)
 - client.py (Replicate API calls + output normalization)
"""

__version__ = "0.1.0"

__all__ = [
    "batch",
    "cache",
    "client",
]
