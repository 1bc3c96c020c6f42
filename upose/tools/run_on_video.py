from __future__ import annotations

import argparse
import json
import logging
from dataclasses import asdict, is_dataclass
from pathlib import Path

import cv2
import numpy as np

from upose.core.config.presets import list_presets, preset_patch
from upose.core.config.settings import load_settings
from upose.core.overlay.draw import draw_overlays
from upose.core.pipeline import PoseTracker


def _to_jsonable(obj):
    if is_dataclass(obj):
        return _to_jsonable(asdict(obj))
    if isinstance(obj, np.ndarray):
        return obj.tolist()
    if isinstance(obj, dict):
        return {str(k): _to_jsonable(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_to_jsonable(v) for v in obj]
    if isinstance(obj, np.generic):
        return obj.item()
    return obj


def build_settings(args):
    overrides = preset_patch(args.preset) if args.preset else {}
    if args.optimizer:
        overrides["optimizer"] = args.optimizer
    if args.localization:
        overrides["localization"] = args.localization
    if args.iterations is not None:
        overrides["optimizer_iterations"] = args.iterations
    if args.no_wait:
        overrides["wait_for_subject"] = False
    return load_settings(**overrides)


def run(args):
    cap = cv2.VideoCapture(args.input)
    if not cap.isOpened():
        raise SystemExit(f"Cannot open video {args.input}")
    tracker = PoseTracker.from_settings(build_settings(args))

    writer = None
    outputs = []
    while True:
        ok, frame = cap.read()
        if not ok:
            break
        if args.profile:
            summary, _, _timings = tracker.process_with_profile(frame)
        else:
            summary, _ = tracker.process(frame)
        outputs.append(_to_jsonable(summary))

        if args.annotated:
            if writer is None:
                h, w = frame.shape[:2]
                fourcc = cv2.VideoWriter_fourcc(*"MJPG")
                writer = cv2.VideoWriter(str(args.annotated), fourcc, 15.0, (w, h))
            writer.write(draw_overlays(frame, summary))

        if args.max_frames and len(outputs) >= args.max_frames:
            break
    cap.release()
    if writer is not None:
        writer.release()
    out_path = Path(args.output)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    with open(out_path, "w", encoding="utf-8") as f:
        json.dump(outputs, f, indent=2)
    print(f"Wrote {len(outputs)} frame summaries to {out_path}")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    parser = argparse.ArgumentParser(description="Track an upper-body pose through a video")
    parser.add_argument("--input", required=True, help="Path to video file")
    parser.add_argument("--output", required=True, help="Where to save JSON output")
    parser.add_argument("--preset", choices=list_presets(), default=None, help="Named settings preset")
    parser.add_argument("--optimizer", choices=["random", "simplex"], default=None)
    parser.add_argument("--localization", choices=["assignment", "prior"], default=None)
    parser.add_argument("--iterations", type=int, default=None, help="Optimizer budget per frame")
    parser.add_argument("--max-frames", type=int, default=0, help="Limit frames for quick tests")
    parser.add_argument("--annotated", default=None, help="Optional annotated video output (MJPG .avi)")
    parser.add_argument("--profile", action="store_true", help="Record per-stage timings")
    parser.add_argument(
        "--no-wait", action="store_true", help="Track from the first frame without waiting for a subject"
    )
    run(parser.parse_args())
