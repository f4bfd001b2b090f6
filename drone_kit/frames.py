"""
Raw camera frame description.

A RawFrame is a thin, immutable view over the byte planes handed over by the
capture layer. The pixel layout is declared by the producer through
`PixelFormat`; the pipeline dispatches on that tag once per frame and refuses
combinations it does not understand instead of guessing from plane counts.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple, Union

import numpy as np


Buffer = Union[bytes, bytearray, memoryview, np.ndarray]


class UnsupportedFrameError(ValueError):
    """Raised when a frame's declared format and planes do not form a known variant."""


class PixelFormat(str, Enum):
    BGRA8888 = "bgra8888"
    RGBA8888 = "rgba8888"
    YUV420 = "yuv420"

    @property
    def is_packed(self) -> bool:
        return self in (PixelFormat.BGRA8888, PixelFormat.RGBA8888)

    @property
    def rgb_offsets(self) -> Tuple[int, int, int]:
        """Byte offsets of (R, G, B) inside one packed pixel."""
        if self is PixelFormat.BGRA8888:
            return 2, 1, 0
        if self is PixelFormat.RGBA8888:
            return 0, 1, 2
        raise ValueError(f"{self.value} is not a packed format")


PACKED_BYTES_PER_PIXEL = 4


@dataclass(frozen=True)
class Plane:
    data: Buffer
    row_stride: int
    pixel_stride: Optional[int] = None

    def as_array(self) -> np.ndarray:
        """Flat uint8 view of the plane bytes (no copy when possible)."""
        if isinstance(self.data, np.ndarray):
            return np.ascontiguousarray(self.data, dtype=np.uint8).reshape(-1)
        return np.frombuffer(self.data, dtype=np.uint8)

    def __len__(self) -> int:
        if isinstance(self.data, np.ndarray):
            return int(self.data.size)
        return len(self.data)


@dataclass(frozen=True)
class RawFrame:
    width: int
    height: int
    format: PixelFormat
    planes: Tuple[Plane, ...]

    @classmethod
    def from_packed_array(cls, image: np.ndarray, fmt: PixelFormat = PixelFormat.BGRA8888) -> "RawFrame":
        """
        Wrap an (H, W, 4) uint8 array, e.g. the output of
        `cv2.cvtColor(img, cv2.COLOR_BGR2BGRA)`.
        """

        if image.ndim != 3 or image.shape[2] != PACKED_BYTES_PER_PIXEL:
            raise ValueError(f"Expected image shape (H, W, 4), got {image.shape}")
        if not fmt.is_packed:
            raise ValueError(f"{fmt.value} is not a packed format")
        h, w = image.shape[:2]
        data = np.ascontiguousarray(image, dtype=np.uint8)
        plane = Plane(data=data.reshape(-1), row_stride=w * PACKED_BYTES_PER_PIXEL, pixel_stride=PACKED_BYTES_PER_PIXEL)
        return cls(width=w, height=h, format=fmt, planes=(plane,))

    @classmethod
    def from_i420(cls, buffer: np.ndarray, width: int, height: int) -> "RawFrame":
        """
        Split a contiguous I420 buffer (Y, then U, then V at half resolution), e.g.
        the (H * 3 / 2, W) output of `cv2.cvtColor(img, cv2.COLOR_BGR2YUV_I420)`.
        """

        if width % 2 or height % 2:
            raise ValueError(f"I420 needs even dimensions, got {width}x{height}")
        flat = np.ascontiguousarray(buffer, dtype=np.uint8).reshape(-1)
        y_len = width * height
        c_len = y_len // 4
        if flat.size < y_len + 2 * c_len:
            raise ValueError(f"I420 buffer too small: {flat.size} < {y_len + 2 * c_len}")
        cw = width // 2
        planes = (
            Plane(data=flat[:y_len], row_stride=width, pixel_stride=1),
            Plane(data=flat[y_len : y_len + c_len], row_stride=cw, pixel_stride=1),
            Plane(data=flat[y_len + c_len : y_len + 2 * c_len], row_stride=cw, pixel_stride=1),
        )
        return cls(width=width, height=height, format=PixelFormat.YUV420, planes=planes)


def resolve_format(frame: RawFrame) -> PixelFormat:
    """
    Validate the declared format against the frame's planes and return it.

    Raises UnsupportedFrameError for anything that is not one of:
    - packed 4-byte pixels in exactly one plane
    - planar YUV420 with a luma plane and zero to two chroma planes
    """

    fmt = frame.format
    if not isinstance(fmt, PixelFormat):
        try:
            fmt = PixelFormat(fmt)
        except ValueError as e:
            raise UnsupportedFrameError(f"Unknown pixel format: {frame.format!r}") from e

    if frame.width <= 0 or frame.height <= 0:
        raise UnsupportedFrameError(f"Invalid frame size {frame.width}x{frame.height}")
    if not frame.planes:
        raise UnsupportedFrameError("Frame has no planes")

    if fmt.is_packed:
        if len(frame.planes) != 1:
            raise UnsupportedFrameError(f"{fmt.value} expects 1 plane, got {len(frame.planes)}")
        px = frame.planes[0].pixel_stride
        if px is not None and px != PACKED_BYTES_PER_PIXEL:
            raise UnsupportedFrameError(f"{fmt.value} expects pixel stride 4, got {px}")
        return fmt

    if len(frame.planes) > 3:
        raise UnsupportedFrameError(f"{fmt.value} expects at most 3 planes, got {len(frame.planes)}")
    return fmt
