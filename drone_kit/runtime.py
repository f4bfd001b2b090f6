from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from pathlib import Path
from typing import List, Optional, Sequence, Tuple, Union

import numpy as np

from .config import PipelineConfig
from .frames import RawFrame
from .metadata import find_metadata, load_model_metadata
from .model import Loader, ModelHandle
from .nms import filter_detections
from .postprocess import DecoderConfig, DetectionDecoder
from .resample import FrameResampler
from .tensor import TensorBuilder, TensorLayout
from .types import Detection


logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


def find_project_root(
    start: Optional[PathLike] = None,
    markers: Sequence[str] = ("pyproject.toml", "setup.py", ".git", "requirements.txt"),
) -> Path:
    """
    Best-effort project root discovery, used to resolve relative model paths.
    """

    p = Path(start) if start is not None else Path.cwd()
    p = p.resolve()

    # If a file is provided, start from its directory.
    if p.is_file():
        p = p.parent

    for parent in (p, *p.parents):
        for m in markers:
            if (parent / m).exists():
                return parent
    return p


def resolve_path(path: PathLike, root: Optional[PathLike] = "auto") -> Path:
    """
    Resolve `path` to an absolute Path.

    - Absolute paths are returned as-is.
    - Relative paths are resolved against:
      - `root` if provided
      - project root (auto) otherwise
    """

    p = Path(path)
    if p.is_absolute():
        return p

    if root == "auto" or root is None:
        base = find_project_root()
    else:
        base = Path(root).resolve()

    return (base / p).resolve()


@dataclass(frozen=True)
class PreprocessResult:
    tensor: np.ndarray
    layout: TensorLayout
    size: int
    orig_size: Tuple[int, int]


class DetectionPipeline:
    """
    Raw frame -> resample -> tensor -> model -> decode -> NMS.

    Calling the pipeline never raises: a missing model, an unsupported frame or a
    failing inference call all yield an empty detection list for that frame.
    Nothing is carried over from one call to the next.
    """

    def __init__(self, model: ModelHandle, cfg: PipelineConfig = PipelineConfig()):
        self.model = model
        self.cfg = cfg
        self.builder = TensorBuilder(default_size=cfg.input_size, layout=cfg.input_layout)
        self.decoder = DetectionDecoder(
            DecoderConfig(conf_threshold=cfg.conf_threshold, min_box_area=cfg.min_box_area)
        )

    def preprocess(self, frame: RawFrame) -> PreprocessResult:
        layout, size = self.builder.resolve(self.model.input_shape)
        buffer = FrameResampler(size).resample(frame)
        tensor = self.builder.build(buffer, layout)
        return PreprocessResult(tensor=tensor, layout=layout, size=size, orig_size=(frame.width, frame.height))

    def postprocess(self, raw: np.ndarray) -> List[Detection]:
        return filter_detections(self.decoder.decode(raw), self.cfg.iou_threshold)

    def __call__(self, frame: RawFrame) -> List[Detection]:
        if not self.model.is_loaded:
            logger.debug("No model loaded; skipping frame")
            return []

        try:
            prep = self.preprocess(frame)
        except (TypeError, ValueError) as e:
            logger.warning("Skipping frame: %s", e)
            return []
        except Exception:
            logger.exception("Preprocessing failed; no detections for this frame")
            return []

        try:
            raw = self.model.run(prep.tensor)
        except Exception:
            logger.exception("Inference failed; no detections for this frame")
            return []

        return self.postprocess(raw)

    def close(self) -> None:
        self.model.close()

    def __enter__(self) -> "DetectionPipeline":
        return self

    def __exit__(self, *exc) -> None:
        self.close()


def load_pipeline(
    model_path: PathLike,
    *,
    backend: Optional[str] = None,
    root: Optional[PathLike] = "auto",
    cfg: Optional[PipelineConfig] = None,
    loader: Optional[Loader] = None,
) -> DetectionPipeline:
    """
    Create a pipeline for a model on disk.

    Typical usage:
        pipe = load_pipeline("models/drone-detection-yolov11_float16.tflite")

    Without an explicit `cfg`, a metadata sidecar next to the model (see
    `find_metadata`) may declare the input size and layout. If the model fails
    to load, the failure is logged and the returned pipeline yields no
    detections.
    """

    resolved = resolve_path(model_path, root=root)

    if cfg is None:
        cfg = PipelineConfig()
        meta_path = find_metadata(resolved)
        if meta_path is not None:
            meta = load_model_metadata(meta_path)
            if meta.input_size is not None:
                cfg = replace(cfg, input_size=meta.input_size)
            if meta.input_layout is not None:
                cfg = replace(cfg, input_layout=meta.input_layout.value)
            logger.debug("Applied model metadata from %s: %s", meta_path, meta)

    handle = ModelHandle(loader)
    status = handle.load(resolved, backend=backend, num_threads=cfg.num_threads)
    if not handle.is_loaded:
        logger.error(status)

    return DetectionPipeline(handle, cfg)
