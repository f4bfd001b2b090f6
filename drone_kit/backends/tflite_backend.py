from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import numpy as np

from .base import PathLike, Shape, static_shape


@dataclass(frozen=True)
class TfliteBackendConfig:
    num_threads: int = 2


class TfliteBackend:
    """
    TensorFlow Lite interpreter backend (float models).

    The input blob is cast to the interpreter's declared input dtype; the first
    output tensor is returned as a NumPy copy.
    """

    def __init__(self, model_path: PathLike, cfg: TfliteBackendConfig = TfliteBackendConfig()):
        try:
            import tflite_runtime.interpreter as tflite  # type: ignore
        except Exception as e:  # pragma: no cover
            raise ImportError(
                "tflite-runtime is required for the TFLite backend. Install it with `pip install tflite-runtime`."
            ) from e

        self.model_path = Path(model_path)
        if not self.model_path.exists():
            raise FileNotFoundError(str(self.model_path))

        self.interpreter = tflite.Interpreter(model_path=str(self.model_path), num_threads=cfg.num_threads)
        self.interpreter.allocate_tensors()
        self._input = self.interpreter.get_input_details()[0]
        self._output = self.interpreter.get_output_details()[0]

    @property
    def input_shape(self) -> Optional[Shape]:
        return static_shape(self._input.get("shape"))

    @property
    def output_shape(self) -> Optional[Shape]:
        return static_shape(self._output.get("shape"))

    def infer(self, blob: np.ndarray) -> np.ndarray:
        x = np.asarray(blob, dtype=self._input["dtype"])
        self.interpreter.set_tensor(self._input["index"], x)
        self.interpreter.invoke()
        return np.array(self.interpreter.get_tensor(self._output["index"]))

    def close(self) -> None:
        self.interpreter = None
