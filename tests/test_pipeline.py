import tempfile
import unittest
from pathlib import Path
from typing import List, Optional
from unittest import mock

import numpy as np

from drone_kit.config import PipelineConfig
from drone_kit.frames import PixelFormat, Plane, RawFrame
from drone_kit.model import ModelHandle, ModelNotLoadedError
from drone_kit.runtime import DetectionPipeline, load_pipeline


class FakeBackend:
    def __init__(
        self, output=None, input_shape=(1, 32, 32, 3), output_shape=(1, 5, 8), error=None, shape_error=None
    ):
        self.output = output
        self.shape_error = shape_error
        self._input_shape = input_shape
        self._output_shape = output_shape
        self.error = error
        self.blobs: List[np.ndarray] = []
        self.closed = False

    @property
    def input_shape(self):
        if self.shape_error is not None:
            raise self.shape_error
        return self._input_shape

    @property
    def output_shape(self):
        if self.shape_error is not None:
            raise self.shape_error
        return self._output_shape

    def infer(self, blob: np.ndarray) -> np.ndarray:
        self.blobs.append(blob)
        if self.error is not None:
            raise self.error
        return self.output

    def close(self) -> None:
        self.closed = True


class RecordingLoader:
    def __init__(self, backend: Optional[FakeBackend] = None, error: Optional[Exception] = None):
        self.backend = backend or FakeBackend()
        self.error = error
        self.calls = []

    def __call__(self, path, name, num_threads):
        self.calls.append((path, name, num_threads))
        if self.error is not None:
            raise self.error
        return self.backend


def _gray_frame(width: int = 20, height: int = 10) -> RawFrame:
    img = np.full((height, width, 4), 128, dtype=np.uint8)
    return RawFrame.from_packed_array(img, PixelFormat.BGRA8888)


def _duplicates_output() -> np.ndarray:
    # one confident box and four near-duplicates, plus two low-confidence columns
    cols = [
        (0.50, 0.50, 0.30, 0.30, 0.95),
        (0.51, 0.50, 0.30, 0.30, 0.90),
        (0.49, 0.51, 0.29, 0.31, 0.88),
        (0.50, 0.49, 0.31, 0.30, 0.85),
        (0.52, 0.52, 0.30, 0.29, 0.80),
        (0.10, 0.10, 0.10, 0.10, 0.20),
        (0.90, 0.90, 0.10, 0.10, 0.40),
        (0.00, 0.00, 0.00, 0.00, 0.00),
    ]
    return np.array(cols, dtype=np.float32).T[None, ...]  # (1, 5, 8)


class TestModelHandle(unittest.TestCase):
    def test_load_once(self) -> None:
        loader = RecordingLoader()
        handle = ModelHandle(loader)
        self.assertFalse(handle.is_loaded)
        self.assertIsNone(handle.input_shape)

        status = handle.load("models/drone.tflite", num_threads=4)
        self.assertIn("loaded successfully", status)
        self.assertTrue(handle.is_loaded)
        self.assertEqual(loader.calls, [(Path("models/drone.tflite"), "tflite", 4)])
        self.assertEqual(handle.input_shape, (1, 32, 32, 3))
        self.assertEqual(handle.output_shape, (1, 5, 8))

        self.assertIn("already loaded", handle.load("models/other.onnx"))
        self.assertEqual(len(loader.calls), 1)

    def test_backend_selection(self) -> None:
        loader = RecordingLoader()
        ModelHandle(loader).load("m.onnx")
        ModelHandle(loader).load("m.pt")
        ModelHandle(loader).load("m.bin", backend="TFLite")
        self.assertEqual([c[1] for c in loader.calls], ["onnxruntime", "torchscript", "tflite"])

    def test_failures_are_reported_not_raised(self) -> None:
        handle = ModelHandle(RecordingLoader(error=FileNotFoundError("missing.tflite")))
        status = handle.load("missing.tflite")
        self.assertTrue(status.startswith("Failed to load model"))
        self.assertIn("FileNotFoundError", status)
        self.assertFalse(handle.is_loaded)

        status = ModelHandle(RecordingLoader()).load("model.weird")
        self.assertTrue(status.startswith("Failed to load model"))

    def test_failed_load_can_be_retried(self) -> None:
        loader = RecordingLoader(error=RuntimeError("boom"))
        handle = ModelHandle(loader)
        handle.load("m.tflite")
        loader.error = None
        handle.load("m.tflite")
        self.assertTrue(handle.is_loaded)

    def test_unavailable_shapes_do_not_break_load(self) -> None:
        backend = FakeBackend(shape_error=RuntimeError("tensor details unavailable"))
        handle = ModelHandle(RecordingLoader(backend))
        status = handle.load("m.tflite")
        self.assertIn("loaded successfully", status)
        self.assertTrue(handle.is_loaded)
        self.assertIsNone(handle.input_shape)
        self.assertIsNone(handle.output_shape)

        status = ModelHandle.probe("m.tflite", loader=RecordingLoader(FakeBackend(shape_error=RuntimeError("x"))))
        self.assertIn("loaded and closed successfully", status)

    def test_run_and_close(self) -> None:
        backend = FakeBackend(output=np.ones((1, 5, 8)))
        handle = ModelHandle(RecordingLoader(backend))
        with self.assertRaises(ModelNotLoadedError):
            handle.run(np.zeros((1, 32, 32, 3), dtype=np.float32))

        with handle:
            handle.load("m.tflite")
            self.assertEqual(handle.run(np.zeros((1, 32, 32, 3), dtype=np.float32)).shape, (1, 5, 8))

        self.assertTrue(backend.closed)
        self.assertFalse(handle.is_loaded)
        handle.close()

    def test_probe(self) -> None:
        backend = FakeBackend()
        status = ModelHandle.probe("m.tflite", loader=RecordingLoader(backend))
        self.assertIn("loaded and closed successfully", status)
        self.assertTrue(backend.closed)

        status = ModelHandle.probe("m.tflite", loader=RecordingLoader(error=ValueError("bad model")))
        self.assertIn("bad model", status)


class TestDetectionPipeline(unittest.TestCase):
    def _pipeline(self, backend: FakeBackend, cfg: PipelineConfig = PipelineConfig(input_size=32)) -> DetectionPipeline:
        handle = ModelHandle(RecordingLoader(backend))
        handle.load("m.tflite")
        return DetectionPipeline(handle, cfg)

    def test_duplicates_collapse_to_best_box(self) -> None:
        pipeline = self._pipeline(FakeBackend(output=_duplicates_output()))
        dets = pipeline(_gray_frame())
        self.assertEqual(len(dets), 1)
        self.assertAlmostEqual(dets[0].confidence, 0.95, places=5)
        self.assertTrue(np.allclose(dets[0].as_ltrb(), (0.35, 0.35, 0.65, 0.65), atol=1e-6))

    def test_repeat_runs_are_identical(self) -> None:
        pipeline = self._pipeline(FakeBackend(output=_duplicates_output()))
        raw = _duplicates_output()
        self.assertEqual(pipeline.postprocess(raw), pipeline.postprocess(raw))
        self.assertEqual(pipeline(_gray_frame()), pipeline(_gray_frame()))

    def test_tensor_follows_declared_layout(self) -> None:
        nhwc = FakeBackend(output=_duplicates_output())
        self._pipeline(nhwc)(_gray_frame())
        self.assertEqual(nhwc.blobs[0].shape, (1, 32, 32, 3))
        self.assertEqual(nhwc.blobs[0].dtype, np.float32)

        nchw = FakeBackend(output=_duplicates_output(), input_shape=(1, 3, 16, 16))
        self._pipeline(nchw)(_gray_frame())
        self.assertEqual(nchw.blobs[0].shape, (1, 3, 16, 16))
        self.assertTrue(np.allclose(nchw.blobs[0], 128 / 255.0))

    def test_unknown_shape_uses_configured_size(self) -> None:
        backend = FakeBackend(output=_duplicates_output(), input_shape=None)
        self._pipeline(backend, PipelineConfig(input_size=24, input_layout="nchw"))(_gray_frame())
        self.assertEqual(backend.blobs[0].shape, (1, 3, 24, 24))

    def test_unavailable_shape_uses_configured_size(self) -> None:
        backend = FakeBackend(output=_duplicates_output(), shape_error=RuntimeError("tensor details unavailable"))
        pipeline = self._pipeline(backend, PipelineConfig(input_size=24))
        self.assertEqual(len(pipeline(_gray_frame())), 1)
        self.assertEqual(backend.blobs[0].shape, (1, 24, 24, 3))

    def test_unexpected_preprocess_error_is_contained(self) -> None:
        backend = FakeBackend(output=_duplicates_output())
        pipeline = self._pipeline(backend)
        with mock.patch.object(pipeline.builder, "build", side_effect=RuntimeError("out of memory")):
            with self.assertLogs("drone_kit.runtime", level="ERROR"):
                self.assertEqual(pipeline(_gray_frame()), [])
        self.assertEqual(backend.blobs, [])
        self.assertEqual(len(pipeline(_gray_frame())), 1)

    def test_model_not_loaded(self) -> None:
        pipeline = DetectionPipeline(ModelHandle(RecordingLoader()), PipelineConfig(input_size=32))
        self.assertEqual(pipeline(_gray_frame()), [])

    def test_inference_failure_is_contained(self) -> None:
        backend = FakeBackend(output=_duplicates_output(), error=RuntimeError("delegate crashed"))
        pipeline = self._pipeline(backend)
        with self.assertLogs("drone_kit.runtime", level="ERROR"):
            self.assertEqual(pipeline(_gray_frame()), [])

        backend.error = None
        self.assertEqual(len(pipeline(_gray_frame())), 1)

    def test_malformed_output(self) -> None:
        pipeline = self._pipeline(FakeBackend(output=np.zeros((1, 4, 8))))
        self.assertEqual(pipeline(_gray_frame()), [])
        pipeline = self._pipeline(FakeBackend(output=None))
        self.assertEqual(pipeline(_gray_frame()), [])

    def test_unsupported_frame_skips_inference(self) -> None:
        backend = FakeBackend(output=_duplicates_output())
        pipeline = self._pipeline(backend)
        bad = RawFrame(
            width=4,
            height=4,
            format=PixelFormat.BGRA8888,
            planes=(Plane(data=bytes(48), row_stride=12, pixel_stride=3),),
        )
        self.assertEqual(pipeline(bad), [])
        self.assertEqual(backend.blobs, [])

    def test_planar_frame(self) -> None:
        backend = FakeBackend(output=_duplicates_output())
        buf = np.full(8 * 6 * 3 // 2, 128, dtype=np.uint8)
        dets = self._pipeline(backend)(RawFrame.from_i420(buf, width=8, height=6))
        self.assertEqual(len(dets), 1)
        self.assertTrue(np.allclose(backend.blobs[0], 128 / 255.0))


class TestLoadPipeline(unittest.TestCase):
    def test_metadata_sidecar_declares_layout(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            model = Path(tmp) / "drone.tflite"
            model.write_bytes(b"")
            (Path(tmp) / "drone.yaml").write_text("imgsz: [16, 16]\nlayout: nchw\n", encoding="utf-8")

            backend = FakeBackend(output=_duplicates_output(), input_shape=None)
            loader = RecordingLoader(backend)
            with load_pipeline(model, loader=loader) as pipeline:
                self.assertEqual(pipeline.cfg.input_size, 16)
                self.assertEqual(pipeline.cfg.input_layout, "nchw")
                self.assertEqual(len(pipeline(_gray_frame())), 1)
                self.assertEqual(backend.blobs[0].shape, (1, 3, 16, 16))

            self.assertTrue(backend.closed)
            self.assertEqual(loader.calls[0][2], 2)

    def test_explicit_config_skips_metadata(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            (Path(tmp) / "metadata.yaml").write_text("imgsz: 16\n", encoding="utf-8")
            cfg = PipelineConfig(input_size=24, num_threads=3)
            loader = RecordingLoader()
            pipeline = load_pipeline("drone.tflite", root=tmp, cfg=cfg, loader=loader)
            self.assertIs(pipeline.cfg, cfg)
            self.assertEqual(loader.calls[0][0], (Path(tmp) / "drone.tflite").resolve())
            self.assertEqual(loader.calls[0][2], 3)

    def test_failed_load_yields_empty_pipeline(self) -> None:
        loader = RecordingLoader(error=FileNotFoundError("nope"))
        with self.assertLogs("drone_kit.runtime", level="ERROR"):
            pipeline = load_pipeline("/nonexistent/drone.tflite", loader=loader)
        self.assertFalse(pipeline.model.is_loaded)
        self.assertEqual(pipeline(_gray_frame()), [])


if __name__ == "__main__":
    unittest.main()
