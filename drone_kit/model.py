"""
Owned handle around one loaded inference backend.

The handle is created empty, loaded at most once, shared read-only by
inference calls and released explicitly with `close()`.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Callable, Optional

import numpy as np

from .backends.base import InferenceBackend, PathLike, Shape, backend_for_path


logger = logging.getLogger(__name__)

Loader = Callable[[Path, str, int], InferenceBackend]


class ModelNotLoadedError(RuntimeError):
    pass


def create_backend(model_path: Path, backend: str, num_threads: int) -> InferenceBackend:
    """
    Instantiate a backend by name. Runtimes are imported only when selected.
    """

    if backend == "tflite":
        from .backends.tflite_backend import TfliteBackend, TfliteBackendConfig

        return TfliteBackend(model_path, TfliteBackendConfig(num_threads=num_threads))

    if backend == "onnxruntime":
        from .backends.onnxruntime_backend import OnnxRuntimeBackend, OnnxRuntimeBackendConfig

        return OnnxRuntimeBackend(model_path, OnnxRuntimeBackendConfig(num_threads=num_threads))

    if backend == "torchscript":
        from .backends.torchscript_backend import TorchScriptBackend, TorchScriptBackendConfig

        return TorchScriptBackend(model_path, TorchScriptBackendConfig(num_threads=num_threads))

    raise ValueError(f"Unsupported backend: {backend!r}")


class ModelHandle:
    def __init__(self, loader: Optional[Loader] = None):
        self._loader = loader or create_backend
        self._lock = threading.Lock()
        self._backend: Optional[InferenceBackend] = None
        self.model_path: Optional[Path] = None
        self.backend_name: Optional[str] = None

    @property
    def is_loaded(self) -> bool:
        return self._backend is not None

    @property
    def input_shape(self) -> Optional[Shape]:
        return self._query_shape("input_shape")

    @property
    def output_shape(self) -> Optional[Shape]:
        return self._query_shape("output_shape")

    def _query_shape(self, attr: str) -> Optional[Shape]:
        # Unavailable shape details fall back to the configured defaults.
        backend = self._backend
        if backend is None:
            return None
        try:
            return getattr(backend, attr)
        except Exception as e:
            logger.debug("Model %s unavailable: %s", attr, e)
            return None

    def load(self, model_path: PathLike, *, backend: Optional[str] = None, num_threads: int = 2) -> str:
        """
        Load the model once. Later calls are no-ops while a model is loaded.

        Returns a short status message; load failures are reported in the
        message rather than raised.
        """

        with self._lock:
            if self._backend is not None:
                return f"Model already loaded ({self.model_path})"

            path = Path(model_path)
            try:
                name = (backend or backend_for_path(path)).lower()
                loaded = self._loader(path, name, num_threads)
            except Exception as e:
                logger.warning("Failed to load model %s: %s", path, e)
                return f"Failed to load model {path}: {type(e).__name__}: {e}"

            self._backend = loaded
            self.model_path = path
            self.backend_name = name

        logger.info(
            "Loaded %s model %s (input=%s, output=%s, threads=%d)",
            name,
            path,
            self.input_shape,
            self.output_shape,
            num_threads,
        )
        return f"Model loaded successfully ({name}: {path})"

    def run(self, tensor: np.ndarray) -> np.ndarray:
        backend = self._backend
        if backend is None:
            raise ModelNotLoadedError("No model loaded; call load() first.")
        return backend.infer(tensor)

    def close(self) -> None:
        with self._lock:
            backend, self._backend = self._backend, None
            self.model_path = None
            self.backend_name = None
        if backend is not None:
            backend.close()
            logger.debug("Model released")

    def __enter__(self) -> "ModelHandle":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    @classmethod
    def probe(
        cls,
        model_path: PathLike,
        *,
        backend: Optional[str] = None,
        num_threads: int = 2,
        loader: Optional[Loader] = None,
    ) -> str:
        """
        Load the model and release it immediately; useful to check runtime bindings.
        """

        handle = cls(loader)
        status = handle.load(model_path, backend=backend, num_threads=num_threads)
        if not handle.is_loaded:
            return status
        shapes = f"input={handle.input_shape}, output={handle.output_shape}"
        handle.close()
        return f"Model loaded and closed successfully ({model_path}; {shapes})"
