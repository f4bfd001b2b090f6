from __future__ import annotations

import logging
from enum import Enum
from typing import Optional, Sequence, Tuple, Union

import numpy as np


logger = logging.getLogger(__name__)

NUM_CHANNELS = 3


class TensorLayout(str, Enum):
    NHWC = "nhwc"
    NCHW = "nchw"

    @classmethod
    def parse(cls, value: Union[str, "TensorLayout", None]) -> Optional["TensorLayout"]:
        if value is None or isinstance(value, TensorLayout):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError as e:
            raise ValueError(f"Unknown tensor layout {value!r}; expected 'nhwc' or 'nchw'.") from e


def _int_dims(shape: Optional[Sequence[object]]) -> Optional[Tuple[int, ...]]:
    if shape is None:
        return None
    dims = []
    for s in shape:
        # dynamic axes come back as None or a symbolic name
        if isinstance(s, bool) or not isinstance(s, (int, np.integer)):
            return None
        dims.append(int(s))
    return tuple(dims)


class TensorBuilder:
    """
    Arrange a channel-last RGB buffer in the layout the inference backend declares.

    Exports of the same model family disagree on layout, so the builder reads it
    from the declared input shape unless a layout was configured explicitly.
    """

    def __init__(self, default_size: int = 640, layout: Union[str, TensorLayout, None] = None):
        self.default_size = default_size
        self.layout = TensorLayout.parse(layout)

    def resolve(self, input_shape: Optional[Sequence[object]]) -> Tuple[TensorLayout, int]:
        """
        Pick (layout, spatial size) for a declared input shape.

        - explicit layout: spatial size read from that layout's H axis
        - (1, 3, H, W): channel-first
        - (1, H, W, 3): channel-last
        - missing or unrecognized: channel-last at the configured size
        """

        dims = _int_dims(input_shape)
        if dims is None or len(dims) != 4:
            if input_shape is not None:
                logger.debug("Unrecognized input shape %s; using defaults", input_shape)
            return self.layout or TensorLayout.NHWC, self.default_size

        if self.layout is not None:
            layout = self.layout
        elif dims[1] == NUM_CHANNELS:
            if dims[3] == NUM_CHANNELS:
                logger.warning(
                    "Input shape %s is ambiguous between NCHW and NHWC; assuming NCHW. "
                    "Declare input_layout explicitly to silence this.",
                    dims,
                )
            layout = TensorLayout.NCHW
        elif dims[3] == NUM_CHANNELS:
            layout = TensorLayout.NHWC
        else:
            logger.debug("Input shape %s has no channel axis of size 3; using defaults", dims)
            return TensorLayout.NHWC, self.default_size

        h, w = (dims[2], dims[3]) if layout is TensorLayout.NCHW else (dims[1], dims[2])
        if h != w or h <= 0:
            logger.debug("Input shape %s is not square; using size %d", dims, self.default_size)
            return layout, self.default_size
        return layout, h

    def build(self, buffer: np.ndarray, layout: TensorLayout) -> np.ndarray:
        """
        Args:
            buffer: (H, W, 3) float32 channel-last RGB
            layout: target layout

        Returns:
            contiguous float32 array with a batch axis: (1, H, W, 3) or (1, 3, H, W)
        """

        buf = np.asarray(buffer, dtype=np.float32)
        if buf.ndim != 3 or buf.shape[2] != NUM_CHANNELS:
            raise ValueError(f"Expected buffer shape (H, W, 3), got {buf.shape}")
        if layout is TensorLayout.NCHW:
            buf = np.transpose(buf, (2, 0, 1))
        return np.ascontiguousarray(buf[None, ...])
