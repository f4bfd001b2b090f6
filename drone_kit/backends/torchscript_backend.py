from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import numpy as np

from .base import PathLike, Shape


@dataclass(frozen=True)
class TorchScriptBackendConfig:
    """
    Configuration for TorchScript inference.

    - device: "cpu" or "cuda" (if available)
    - num_threads: intra-op thread count hint (torch.set_num_threads)
    - output_index: if the model returns multiple outputs, select this index
    """

    device: str = "cpu"
    num_threads: int = 2
    output_index: int = 0


class TorchScriptBackend:
    """
    Minimal TorchScript backend using `torch.jit.load`.

    TorchScript modules do not declare I/O shapes, so both shapes are None and
    the pipeline falls back to its configured defaults.
    """

    def __init__(self, model_path: PathLike, cfg: TorchScriptBackendConfig = TorchScriptBackendConfig()):
        try:
            import torch  # type: ignore
        except Exception as e:  # pragma: no cover
            raise ImportError("torch is required for the TorchScript backend. Install with `pip install torch`.") from e

        self._torch = torch
        self.model_path = Path(model_path)
        if not self.model_path.exists():
            raise FileNotFoundError(str(self.model_path))

        torch.set_num_threads(cfg.num_threads)
        self.device = torch.device(cfg.device)
        self.output_index = cfg.output_index

        model = torch.jit.load(str(self.model_path), map_location=self.device)
        model.eval()
        self.model = model

    @property
    def input_shape(self) -> Optional[Shape]:
        return None

    @property
    def output_shape(self) -> Optional[Shape]:
        return None

    def infer(self, blob: np.ndarray) -> np.ndarray:
        torch = self._torch
        x = torch.as_tensor(blob, device=self.device).float().contiguous()

        with torch.no_grad():
            y = self.model(x)

        if isinstance(y, (tuple, list)):
            y = y[self.output_index]

        if hasattr(y, "detach"):
            y = y.detach()
        return y.to("cpu").numpy()

    def close(self) -> None:
        self.model = None
