from __future__ import annotations

import argparse
import logging

import cv2

from drone_kit import PixelFormat, RawFrame, load_pipeline, load_pipeline_config
from drone_kit.log import setup_logging


logger = logging.getLogger("run_detect")


def read_frame(path: str, fmt: str) -> RawFrame:
    img = cv2.imread(path)
    if img is None:
        raise FileNotFoundError(f"Could not read image at path: {path}")

    if fmt == "yuv420":
        h, w = img.shape[:2]
        # I420 needs even dimensions
        img = img[: h - h % 2, : w - w % 2]
        h, w = img.shape[:2]
        return RawFrame.from_i420(cv2.cvtColor(img, cv2.COLOR_BGR2YUV_I420), width=w, height=h)
    return RawFrame.from_packed_array(cv2.cvtColor(img, cv2.COLOR_BGR2BGRA), PixelFormat.BGRA8888)


def main() -> int:
    parser = argparse.ArgumentParser(description="Run drone detection on a single image.")
    parser.add_argument("--image", required=True, help="Path to an input image.")
    parser.add_argument(
        "--model",
        default="models/drone-detection-yolov11_float16.tflite",
        help="Path to a model (.tflite/.onnx/.pt).",
    )
    parser.add_argument("--backend", default=None, help="Force backend: tflite / onnxruntime / torchscript.")
    parser.add_argument("--config", default=None, help="Optional pipeline config JSON.")
    parser.add_argument("--format", choices=["bgra", "yuv420"], default="bgra", help="Raw frame format to feed.")
    parser.add_argument("--log-level", default="INFO")
    args = parser.parse_args()

    setup_logging(args.log_level)

    cfg = load_pipeline_config(args.config) if args.config else None
    frame = read_frame(args.image, args.format)

    with load_pipeline(args.model, backend=args.backend, cfg=cfg) as pipeline:
        detections = pipeline(frame)

    logger.info("%d detection(s)", len(detections))
    for det in detections:
        x1, y1, x2, y2 = det.box.to_pixels(frame.width, frame.height)
        print(f"{det.confidence:.3f} ltrb={det.as_ltrb()} px=({x1}, {y1}, {x2}, {y2})")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
