from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional

import numpy as np

from .types import BoundingBox, Detection


logger = logging.getLogger(__name__)

# rows of the raw output tensor
CX, CY, W, H, CONF = 0, 1, 2, 3, 4
MIN_ATTRIBUTES = 5


@dataclass(frozen=True)
class DecoderConfig:
    conf_threshold: float = 0.5
    # fraction of the full frame
    min_box_area: float = 0.005


class DetectionDecoder:
    """
    Decode a single-class YOLO style output tensor:

    - (A, N) with A >= 5 attribute rows [cx, cy, w, h, conf, ...] and N candidates
    - leading batch axes of size 1 are dropped, e.g. (1, 5, 8400)

    Coordinates are normalized to the square model input. A tensor that does not
    fit this shape decodes to no detections.
    """

    def __init__(self, cfg: DecoderConfig = DecoderConfig()):
        self.cfg = cfg

    def decode(self, raw: np.ndarray) -> List[Detection]:
        p = self._as_matrix(raw)
        if p is None:
            return []

        conf = p[CONF]
        keep = conf > self.cfg.conf_threshold
        if not keep.any():
            return []

        cx, cy, w, h, conf = p[CX, keep], p[CY, keep], p[W, keep], p[H, keep], conf[keep]
        left = np.clip(cx - w / 2, 0.0, 1.0)
        top = np.clip(cy - h / 2, 0.0, 1.0)
        right = np.clip(cx + w / 2, 0.0, 1.0)
        bottom = np.clip(cy + h / 2, 0.0, 1.0)

        # Clamping can collapse boxes hugging the border; drop those too.
        area = (right - left) * (bottom - top)
        big = area >= self.cfg.min_box_area

        return [
            Detection(
                box=BoundingBox(left=float(l), top=float(t), right=float(r), bottom=float(b)),
                confidence=min(1.0, float(c)),
            )
            for l, t, r, b, c in zip(left[big], top[big], right[big], bottom[big], conf[big])
        ]

    @staticmethod
    def _as_matrix(raw: np.ndarray) -> Optional[np.ndarray]:
        if raw is None:
            return None
        try:
            p = np.asarray(raw, dtype=np.float64)
        except (TypeError, ValueError):
            logger.debug("Output tensor is not numeric")
            return None

        while p.ndim > 2 and p.shape[0] == 1:
            p = p[0]
        if p.ndim != 2 or p.shape[0] < MIN_ATTRIBUTES or p.shape[1] == 0:
            logger.debug("Malformed output tensor shape %s", getattr(raw, "shape", None))
            return None
        return p


def describe_output(raw: np.ndarray, limit: int = 100) -> str:
    """
    Short flat dump of a raw output tensor: "output_len=N; sample=v0, v1, ...".
    """

    flat = np.asarray(raw, dtype=np.float64).reshape(-1)
    sample = ", ".join(f"{v:g}" for v in flat[:limit])
    return f"output_len={flat.size}; sample={sample}"
