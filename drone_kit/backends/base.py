"""
Inference backend interface.

A backend wraps one loaded model: declared I/O shapes (None when the runtime
cannot tell) and a blocking `infer` call from input tensor to raw output tensor.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional, Protocol, Tuple, Union

import numpy as np


PathLike = Union[str, Path]
Shape = Tuple[int, ...]


class InferenceBackend(Protocol):
    @property
    def input_shape(self) -> Optional[Shape]:
        ...

    @property
    def output_shape(self) -> Optional[Shape]:
        ...

    def infer(self, blob: np.ndarray) -> np.ndarray:
        ...

    def close(self) -> None:
        ...


_SUFFIXES = {
    ".tflite": "tflite",
    ".onnx": "onnxruntime",
    ".torchscript": "torchscript",
    ".ts": "torchscript",
    ".pt": "torchscript",
}


def backend_for_path(model_path: PathLike) -> str:
    suffix = Path(model_path).suffix.lower()
    if suffix not in _SUFFIXES:
        raise ValueError(f"Could not infer backend from extension '{suffix}'. Pass backend=... explicitly.")
    return _SUFFIXES[suffix]


def static_shape(dims) -> Optional[Shape]:
    """Tuple of ints, or None when any axis is dynamic/unknown."""
    if dims is None:
        return None
    out = []
    for d in dims:
        if isinstance(d, bool) or not isinstance(d, (int, np.integer)) or int(d) < 0:
            return None
        out.append(int(d))
    return tuple(out)
