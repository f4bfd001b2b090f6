from __future__ import annotations

import argparse

import numpy as np

from drone_kit import (
    FrameResampler,
    ModelHandle,
    PipelineConfig,
    PixelFormat,
    RawFrame,
    TensorBuilder,
    describe_output,
)
from drone_kit.log import setup_logging


def gray_frame(width: int = 320, height: int = 240) -> RawFrame:
    img = np.full((height, width, 4), 128, dtype=np.uint8)
    img[..., 3] = 255
    return RawFrame.from_packed_array(img, PixelFormat.BGRA8888)


def main() -> int:
    parser = argparse.ArgumentParser(description="Load a model, dump its I/O shapes and one raw output.")
    parser.add_argument("--model", required=True, help="Path to a model (.tflite/.onnx/.pt).")
    parser.add_argument("--backend", default=None, help="Force backend: tflite / onnxruntime / torchscript.")
    parser.add_argument("--threads", type=int, default=2, help="Thread-count hint for the runtime.")
    parser.add_argument("--probe-only", action="store_true", help="Only load and close the model.")
    parser.add_argument("--sample", type=int, default=100, help="Number of output values to print.")
    parser.add_argument("--log-level", default="INFO")
    args = parser.parse_args()

    setup_logging(args.log_level)

    if args.probe_only:
        print(ModelHandle.probe(args.model, backend=args.backend, num_threads=args.threads))
        return 0

    cfg = PipelineConfig(num_threads=args.threads)
    with ModelHandle() as handle:
        status = handle.load(args.model, backend=args.backend, num_threads=cfg.num_threads)
        print(status)
        if not handle.is_loaded:
            return 1
        print(f"input_shape={handle.input_shape} output_shape={handle.output_shape}")

        builder = TensorBuilder(default_size=cfg.input_size, layout=cfg.input_layout)
        layout, size = builder.resolve(handle.input_shape)
        tensor = builder.build(FrameResampler(size).resample(gray_frame()), layout)
        print(f"feeding {layout.value} tensor {tensor.shape}")
        raw = handle.run(tensor)
        print(describe_output(raw, limit=args.sample))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
