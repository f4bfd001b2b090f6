from __future__ import annotations

import numpy as np

from .color import sample_grid
from .frames import RawFrame, resolve_format


def source_indices(size: int, src_dim: int) -> np.ndarray:
    """
    Nearest-neighbor source index for each of `size` destination indices:
    floor(d * src_dim / size), clamped to [0, src_dim - 1].
    """

    if size <= 0:
        raise ValueError(f"size must be > 0, got {size}")
    if src_dim <= 0:
        raise ValueError(f"src_dim must be > 0, got {src_dim}")
    d = np.arange(size, dtype=np.int64)
    return np.clip((d * src_dim) // size, 0, src_dim - 1)


class FrameResampler:
    """
    Stretch a frame of any size into a size x size RGB grid normalized to [0, 1].

    No letterboxing: aspect ratio is not preserved, the model sees the whole
    frame squeezed into the square input.
    """

    def __init__(self, size: int = 640):
        if size <= 0:
            raise ValueError(f"size must be > 0, got {size}")
        self.size = size

    def resample(self, frame: RawFrame) -> np.ndarray:
        """
        Returns:
            float32 array shaped (size, size, 3), channel-last RGB.
        """

        fmt = resolve_format(frame)
        xs = source_indices(self.size, frame.width)
        ys = source_indices(self.size, frame.height)
        rgb = sample_grid(frame, xs, ys, fmt=fmt)
        return rgb.astype(np.float32) / 255.0
