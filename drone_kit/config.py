from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from .tensor import TensorLayout


@dataclass(frozen=True)
class PipelineConfig:
    input_size: int = 640
    conf_threshold: float = 0.5
    iou_threshold: float = 0.3
    # fraction of the full frame
    min_box_area: float = 0.005
    num_threads: int = 2
    # None keeps layout detection from the model's declared input shape
    input_layout: Optional[str] = None

    def __post_init__(self) -> None:
        if self.input_size <= 0:
            raise ValueError("input_size must be > 0")
        if not 0.0 <= self.conf_threshold <= 1.0:
            raise ValueError("conf_threshold must be in [0, 1]")
        if not 0.0 <= self.iou_threshold <= 1.0:
            raise ValueError("iou_threshold must be in [0, 1]")
        if not 0.0 <= self.min_box_area <= 1.0:
            raise ValueError("min_box_area must be in [0, 1]")
        if self.num_threads < 1:
            raise ValueError("num_threads must be >= 1")
        TensorLayout.parse(self.input_layout)


_DEFAULTS = PipelineConfig()


def _number(payload: Dict[str, Any], key: str, default: float) -> float:
    value = payload.get(key, default)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{key} must be a number")
    return float(value)


def _int(payload: Dict[str, Any], key: str, default: int) -> int:
    value = payload.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{key} must be an integer")
    return int(value)


def load_pipeline_config(path: Path) -> PipelineConfig:
    """
    Load a PipelineConfig from a JSON object. Omitted keys keep their defaults.
    """

    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Pipeline config not found: {path}")
    raw = path.read_text(encoding="utf-8")
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid pipeline config JSON: {path}") from exc
    if not isinstance(payload, dict):
        raise ValueError("Pipeline config must be a JSON object")

    allowed = {
        "input_size",
        "conf_threshold",
        "iou_threshold",
        "min_box_area",
        "num_threads",
        "input_layout",
    }
    unknown = sorted(set(payload.keys()) - allowed)
    if unknown:
        raise ValueError(f"Unknown pipeline config keys: {unknown}")

    input_layout = payload.get("input_layout")
    if input_layout is not None and not isinstance(input_layout, str):
        raise ValueError("input_layout must be a string if provided")

    return PipelineConfig(
        input_size=_int(payload, "input_size", _DEFAULTS.input_size),
        conf_threshold=_number(payload, "conf_threshold", _DEFAULTS.conf_threshold),
        iou_threshold=_number(payload, "iou_threshold", _DEFAULTS.iou_threshold),
        min_box_area=_number(payload, "min_box_area", _DEFAULTS.min_box_area),
        num_threads=_int(payload, "num_threads", _DEFAULTS.num_threads),
        input_layout=input_layout,
    )
