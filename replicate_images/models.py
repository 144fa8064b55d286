"""Supported text-to-image models and their default inputs."""
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class Model:
    id: str  # e.g. "black-forest-labs/flux-schnell"
    name: str
    description: str
    defaults: Dict[str, Any] = field(default_factory=dict)


SUPPORTED: List[Model] = [
    Model(
        id="black-forest-labs/flux-schnell",
        name="FLUX Schnell",
        description="Fast, high-quality generations. Great default choice.",
    ),
    Model(
        id="black-forest-labs/flux-1.1-pro",
        name="FLUX 1.1 Pro",
        description="Higher quality than Schnell, slower. Best for final outputs.",
    ),
    Model(
        id="stability-ai/sdxl",
        name="Stable Diffusion XL",
        description="Classic model with wide style range and community support.",
    ),
    Model(
        id="google/nano-banana-pro",
        name="Nano Banana Pro",
        description="Excellent for text rendering, diagrams, and technical illustrations.",
        defaults={"aspect_ratio": "1:1"},
    ),
]

DEFAULT_MODEL = "black-forest-labs/flux-schnell"

_REGISTRY: Dict[str, Model] = {m.id: m for m in SUPPORTED}


def get(model_id: str) -> Optional[Model]:
    return _REGISTRY.get(model_id)


def is_supported(model_id: str) -> bool:
    return model_id in _REGISTRY


def list_ids() -> List[str]:
    return [m.id for m in SUPPORTED]


def build_input(model_id: str, prompt: str) -> Dict[str, Any]:
    """Prediction input for ``model_id``: registry defaults plus the prompt.

    The prompt always wins over a default of the same name.
    """
    model = get(model_id)
    payload: Dict[str, Any] = dict(model.defaults) if model else {}
    payload["prompt"] = prompt
    return payload


__all__ = ["Model", "SUPPORTED", "DEFAULT_MODEL", "get", "is_supported", "list_ids", "build_input"]
