from __future__ import annotations

import argparse
import statistics
import time
from dataclasses import dataclass
from typing import List

import numpy as np

from drone_kit import DecoderConfig, DetectionDecoder, RawFrame, filter_detections, load_pipeline
from drone_kit.log import setup_logging

from run_detect import read_frame


@dataclass(frozen=True)
class TimingSummary:
    n: int
    mean_ms: float
    p50_ms: float
    p90_ms: float
    p95_ms: float


def _percentile(sorted_values: List[float], q: float) -> float:
    if not sorted_values:
        raise ValueError("No values provided.")
    if q < 0.0 or q > 100.0:
        raise ValueError("q must be in [0, 100].")
    if len(sorted_values) == 1:
        return float(sorted_values[0])
    # Linear interpolation between closest ranks.
    pos = (q / 100.0) * (len(sorted_values) - 1)
    lo = int(np.floor(pos))
    hi = int(np.ceil(pos))
    if lo == hi:
        return float(sorted_values[lo])
    t = pos - lo
    return float(sorted_values[lo] * (1.0 - t) + sorted_values[hi] * t)


def _summarize_ms(values_s: List[float]) -> TimingSummary:
    ms_sorted = sorted(v * 1000.0 for v in values_s)
    return TimingSummary(
        n=len(ms_sorted),
        mean_ms=float(statistics.fmean(ms_sorted)) if ms_sorted else 0.0,
        p50_ms=_percentile(ms_sorted, 50.0) if ms_sorted else 0.0,
        p90_ms=_percentile(ms_sorted, 90.0) if ms_sorted else 0.0,
        p95_ms=_percentile(ms_sorted, 95.0) if ms_sorted else 0.0,
    )


def _format_summary(label: str, s: TimingSummary) -> str:
    return (
        f"{label}: n={s.n} mean={s.mean_ms:.3f}ms p50={s.p50_ms:.3f}ms "
        f"p90={s.p90_ms:.3f}ms p95={s.p95_ms:.3f}ms"
    )


def _synthetic_output(n: int, seed: int = 0) -> np.ndarray:
    # (5, N): cx, cy, w, h, conf
    rng = np.random.default_rng(seed)
    out = np.empty((5, n), dtype=np.float32)
    out[0:2] = rng.uniform(0.0, 1.0, size=(2, n))
    out[2:4] = rng.uniform(0.02, 0.3, size=(2, n))
    out[4] = rng.uniform(0.0, 1.0, size=n)
    return out


def main() -> int:
    parser = argparse.ArgumentParser(description="Benchmark preprocess / inference / postprocess latency.")
    src = parser.add_mutually_exclusive_group(required=True)
    src.add_argument("--image", default=None, help="Path to an input image (repeated N times).")
    src.add_argument(
        "--synthetic-candidates",
        type=int,
        default=None,
        help="Model-free benchmark of decode + NMS over N random candidates.",
    )
    parser.add_argument("--model", default="models/drone-detection-yolov11_float16.tflite")
    parser.add_argument("--backend", default=None, help="Force backend: tflite / onnxruntime / torchscript.")
    parser.add_argument("--format", choices=["bgra", "yuv420"], default="bgra", help="Raw frame format to feed.")
    parser.add_argument("--warmup", type=int, default=5, help="Iterations to run but not record.")
    parser.add_argument("--repeats", type=int, default=50, help="Recorded iterations.")
    parser.add_argument("--log-level", default="WARNING")
    args = parser.parse_args()

    if args.warmup < 0:
        raise ValueError("--warmup must be >= 0")
    if args.repeats < 1:
        raise ValueError("--repeats must be >= 1")

    setup_logging(args.log_level)

    t_pre: List[float] = []
    t_inf: List[float] = []
    t_post: List[float] = []

    if args.synthetic_candidates is not None:
        if args.synthetic_candidates < 1:
            raise ValueError("--synthetic-candidates must be >= 1")
        raw = _synthetic_output(int(args.synthetic_candidates))
        decoder = DetectionDecoder(DecoderConfig())
        kept = 0
        for i in range(args.warmup + args.repeats):
            t0 = time.perf_counter()
            kept = len(filter_detections(decoder.decode(raw)))
            t1 = time.perf_counter()
            if i >= args.warmup:
                t_post.append(t1 - t0)
        print(_format_summary("postprocess", _summarize_ms(t_post)))
        print(f"candidates={args.synthetic_candidates} kept={kept}")
        return 0

    frame: RawFrame = read_frame(args.image, args.format)
    with load_pipeline(args.model, backend=args.backend) as pipeline:
        if not pipeline.model.is_loaded:
            raise RuntimeError(f"Model failed to load: {args.model}")
        for i in range(args.warmup + args.repeats):
            t0 = time.perf_counter()
            prep = pipeline.preprocess(frame)
            t1 = time.perf_counter()
            raw = pipeline.model.run(prep.tensor)
            t2 = time.perf_counter()
            _ = pipeline.postprocess(raw)
            t3 = time.perf_counter()
            if i < args.warmup:
                continue
            t_pre.append(t1 - t0)
            t_inf.append(t2 - t1)
            t_post.append(t3 - t2)

    print(_format_summary("preprocess", _summarize_ms(t_pre)))
    print(_format_summary("inference", _summarize_ms(t_inf)))
    print(_format_summary("postprocess", _summarize_ms(t_post)))
    print(f"frame={frame.width}x{frame.height} format={frame.format.value}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
