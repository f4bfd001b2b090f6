from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Sequence

import numpy as np

from .types import BoundingBox, Detection


@dataclass
class NMSConfig:
    iou_threshold: float = 0.3
    max_detections: Optional[int] = None


def box_iou(a: BoundingBox, b: BoundingBox) -> float:
    """Intersection over union; 0 when the boxes do not overlap."""
    iw = min(a.right, b.right) - max(a.left, b.left)
    ih = min(a.bottom, b.bottom) - max(a.top, b.top)
    if iw <= 0 or ih <= 0:
        return 0.0
    inter = iw * ih
    union = a.area + b.area - inter
    if union <= 0:
        return 0.0
    return inter / union


def nms(boxes: np.ndarray, scores: np.ndarray, cfg: NMSConfig) -> np.ndarray:
    """
    Greedy NumPy NMS. Expects boxes shape (N,4) in ltrb and scores shape (N,).
    Returns indices of boxes to keep, highest score first.

    Ties keep input order. A box is suppressed only when its IoU with a kept box
    is strictly greater than the threshold.
    """

    if boxes.size == 0:
        return np.empty((0,), dtype=np.int64)

    x1 = boxes[:, 0]
    y1 = boxes[:, 1]
    x2 = boxes[:, 2]
    y2 = boxes[:, 3]
    areas = np.maximum(0.0, x2 - x1) * np.maximum(0.0, y2 - y1)

    order = np.argsort(-scores, kind="stable")
    keep = []

    while order.size > 0:
        if cfg.max_detections is not None and len(keep) >= cfg.max_detections:
            break
        i = order[0]
        keep.append(i)

        rest = order[1:]
        xx1 = np.maximum(x1[i], x1[rest])
        yy1 = np.maximum(y1[i], y1[rest])
        xx2 = np.minimum(x2[i], x2[rest])
        yy2 = np.minimum(y2[i], y2[rest])

        w = np.maximum(0.0, xx2 - xx1)
        h = np.maximum(0.0, yy2 - yy1)
        inter = w * h
        union = areas[i] + areas[rest] - inter
        iou = np.divide(inter, union, out=np.zeros_like(inter), where=union > 0)

        order = rest[iou <= cfg.iou_threshold]

    return np.array(keep, dtype=np.int64)


def filter_detections(detections: Sequence[Detection], iou_threshold: float = 0.3) -> List[Detection]:
    """
    Run NMS over decoded detections and return the survivors, highest confidence first.
    """

    if not detections:
        return []
    boxes = np.array([d.as_ltrb() for d in detections], dtype=np.float64)
    scores = np.array([d.confidence for d in detections], dtype=np.float64)
    keep = nms(boxes, scores, NMSConfig(iou_threshold=iou_threshold))
    return [detections[int(i)] for i in keep]
