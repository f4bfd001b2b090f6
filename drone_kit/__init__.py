"""
Camera frame -> normalized detections.

Preprocessing (colour conversion, nearest-neighbor resampling, tensor layout),
single-class YOLO output decoding and greedy NMS, plus a thin model handle and a
latest-frame worker loop. Core functionality needs only NumPy; inference
runtimes are optional and imported lazily by their backends.
"""

from .types import BoundingBox, Detection
from .frames import PixelFormat, Plane, RawFrame, UnsupportedFrameError, resolve_format
from .color import convert_pixel, sample_grid, yuv_to_rgb
from .resample import FrameResampler, source_indices
from .tensor import TensorBuilder, TensorLayout
from .postprocess import DecoderConfig, DetectionDecoder, describe_output
from .nms import NMSConfig, box_iou, filter_detections, nms
from .model import ModelHandle, ModelNotLoadedError
from .config import PipelineConfig, load_pipeline_config
from .metadata import ModelMetadata, load_model_metadata
from .runtime import DetectionPipeline, load_pipeline, find_project_root, resolve_path
from .worker import DetectionWorker, LatestFrameSlot

__all__ = [
    "BoundingBox",
    "Detection",
    "PixelFormat",
    "Plane",
    "RawFrame",
    "UnsupportedFrameError",
    "resolve_format",
    "convert_pixel",
    "sample_grid",
    "yuv_to_rgb",
    "FrameResampler",
    "source_indices",
    "TensorBuilder",
    "TensorLayout",
    "DecoderConfig",
    "DetectionDecoder",
    "describe_output",
    "NMSConfig",
    "box_iou",
    "filter_detections",
    "nms",
    "ModelHandle",
    "ModelNotLoadedError",
    "PipelineConfig",
    "load_pipeline_config",
    "ModelMetadata",
    "load_model_metadata",
    "DetectionPipeline",
    "load_pipeline",
    "find_project_root",
    "resolve_path",
    "DetectionWorker",
    "LatestFrameSlot",
]
