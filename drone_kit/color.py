"""
Pixel-format-aware sampling: source pixel coordinate -> RGB in [0, 255].

`convert_pixel` is the per-pixel reference; `sample_grid` is the NumPy
equivalent the resampler uses for a whole destination grid. Both read the same
offsets and must agree pixel for pixel.
"""

from __future__ import annotations

import math
from typing import Optional, Sequence, Tuple

import numpy as np

from .frames import PixelFormat, Plane, RawFrame, resolve_format


CHROMA_NEUTRAL = 128

# ITU-R BT.601 (full range) coefficients
_KR_V = 1.402
_KG_U = 0.344136
_KG_V = 0.714136
_KB_U = 1.772


def _round_clamp(value: float) -> int:
    # half away from zero; negatives clamp to 0 either way
    return int(min(255, max(0, math.floor(value + 0.5))))


def yuv_to_rgb(y: int, u: int, v: int) -> Tuple[int, int, int]:
    du = u - CHROMA_NEUTRAL
    dv = v - CHROMA_NEUTRAL
    r = _round_clamp(y + _KR_V * dv)
    g = _round_clamp(y - _KG_U * du - _KG_V * dv)
    b = _round_clamp(y + _KB_U * du)
    return r, g, b


def _byte_at(plane: Optional[Plane], index: int, default: int) -> int:
    if plane is None or index < 0 or index >= len(plane):
        return default
    return int(plane.as_array()[index])


def convert_pixel(frame: RawFrame, src_x: int, src_y: int, fmt: Optional[PixelFormat] = None) -> Tuple[int, int, int]:
    """
    RGB triple of the source pixel at (src_x, src_y).

    Packed frames whose three colour bytes fall outside the plane yield black;
    missing or short chroma planes read as neutral grey chroma.
    """

    fmt = fmt or resolve_format(frame)

    if fmt.is_packed:
        plane = frame.planes[0]
        px = plane.pixel_stride or 4
        base = plane.row_stride * src_y + px * src_x
        if base < 0 or base + 2 >= len(plane):
            return 0, 0, 0
        buf = plane.as_array()
        r_off, g_off, b_off = fmt.rgb_offsets
        return int(buf[base + r_off]), int(buf[base + g_off]), int(buf[base + b_off])

    y = _byte_at(frame.planes[0], src_y * frame.width + src_x, 0)
    u_plane = frame.planes[1] if len(frame.planes) > 1 else None
    v_plane = frame.planes[2] if len(frame.planes) > 2 else None
    cx, cy = src_x // 2, src_y // 2
    u = _byte_at(u_plane, _chroma_index(u_plane, cx, cy), CHROMA_NEUTRAL)
    v = _byte_at(v_plane, _chroma_index(v_plane, cx, cy), CHROMA_NEUTRAL)
    return yuv_to_rgb(y, u, v)


def _chroma_index(plane: Optional[Plane], cx: int, cy: int) -> int:
    if plane is None:
        return -1
    return cx * (plane.pixel_stride or 1) + cy * plane.row_stride


# ---------------------------------------------------------------------- #
# Vectorized sampling
# ---------------------------------------------------------------------- #
def _gather(buf: np.ndarray, idx: np.ndarray, default: int) -> np.ndarray:
    valid = (idx >= 0) & (idx < buf.size)
    if not valid.any():
        return np.full(idx.shape, default, dtype=np.float64)
    vals = buf[np.where(valid, idx, 0)]
    return np.where(valid, vals, default).astype(np.float64)


def _sample_packed(frame: RawFrame, fmt: PixelFormat, xs: np.ndarray, ys: np.ndarray) -> np.ndarray:
    plane = frame.planes[0]
    buf = plane.as_array()
    px = plane.pixel_stride or 4
    base = ys[:, None] * plane.row_stride + xs[None, :] * px

    out = np.zeros(base.shape + (3,), dtype=np.uint8)
    valid = (base >= 0) & (base + 2 < buf.size)
    if not valid.any():
        return out

    safe = np.where(valid, base, 0)
    for c, off in enumerate(fmt.rgb_offsets):
        out[..., c] = np.where(valid, buf[safe + off], 0)
    return out


def _sample_planar(frame: RawFrame, xs: np.ndarray, ys: np.ndarray) -> np.ndarray:
    planes = frame.planes
    y = _gather(planes[0].as_array(), ys[:, None] * frame.width + xs[None, :], 0)

    cx = (xs // 2)[None, :]
    cy = (ys // 2)[:, None]
    chroma = []
    for i in (1, 2):
        if len(planes) > i:
            p = planes[i]
            chroma.append(_gather(p.as_array(), cx * (p.pixel_stride or 1) + cy * p.row_stride, CHROMA_NEUTRAL))
        else:
            chroma.append(np.full(y.shape, CHROMA_NEUTRAL, dtype=np.float64))
    du = chroma[0] - CHROMA_NEUTRAL
    dv = chroma[1] - CHROMA_NEUTRAL

    rgb = np.stack(
        [
            y + _KR_V * dv,
            y - _KG_U * du - _KG_V * dv,
            y + _KB_U * du,
        ],
        axis=-1,
    )
    return np.clip(np.floor(rgb + 0.5), 0, 255).astype(np.uint8)


def sample_grid(
    frame: RawFrame,
    xs: Sequence[int],
    ys: Sequence[int],
    fmt: Optional[PixelFormat] = None,
) -> np.ndarray:
    """
    Sample every (xs[j], ys[i]) source pixel.

    Returns:
        uint8 array shaped (len(ys), len(xs), 3) in RGB order.
    """

    fmt = fmt or resolve_format(frame)
    xs_arr = np.asarray(xs, dtype=np.int64)
    ys_arr = np.asarray(ys, dtype=np.int64)
    if fmt.is_packed:
        return _sample_packed(frame, fmt, xs_arr, ys_arr)
    return _sample_planar(frame, xs_arr, ys_arr)
