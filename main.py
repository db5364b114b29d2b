#!/usr/bin/env python3
"""Batch helmet/face analysis of every image in a folder."""

from __future__ import annotations

import argparse
import json
from dataclasses import replace
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from helmet_detection import DetectorConfig, HelmetDetector, to_pixel_rect
from helmet_detection.geometry import format_caption
from helmet_detection.log import setup_logging
from helmet_detection.types import DetectionResult

IMAGE_EXTENSIONS = {".jpg", ".jpeg", ".png", ".bmp", ".gif", ".tiff"}


def parse_display_size(value: str) -> Tuple[int, int]:
    """Parse ``WxH`` into a positive (width, height) pair."""

    try:
        width_text, height_text = value.lower().split("x", 1)
        width, height = int(width_text), int(height_text)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"expected WIDTHxHEIGHT, got {value!r}") from exc
    if width <= 0 or height <= 0:
        raise argparse.ArgumentTypeError(f"display size must be positive, got {value!r}")
    return width, height


def format_detections(
    detections: Sequence[DetectionResult], display_size: Tuple[int, int]
) -> List[dict]:
    width, height = display_size
    formatted = []
    for detection in detections:
        rect = to_pixel_rect(detection.bounding_box, width, height)
        formatted.append({
            "label": detection.label,
            "confidence": round(detection.confidence, 4),
            "caption": format_caption(detection),
            "bounding_box": [
                detection.bounding_box.x,
                detection.bounding_box.y,
                detection.bounding_box.width,
                detection.bounding_box.height,
            ],
            "display_rect": [round(rect.x, 2), round(rect.y, 2), round(rect.width, 2), round(rect.height, 2)],
        })
    return formatted


def list_images(folder: Path) -> List[Path]:
    return sorted(
        f for f in folder.iterdir()
        if f.is_file() and f.suffix.lower() in IMAGE_EXTENSIONS
    )


def analyze_images_in_folder(
    detector: HelmetDetector,
    folder_path: str,
    display_size: Tuple[int, int] = (300, 300),
) -> dict:
    """Run both pipelines on every image in ``folder_path``.

    Args:
        detector: Detector with its models already loaded
        folder_path: Folder containing the images
        display_size: Surface size used to compute the drawn rectangles

    Returns:
        Mapping of image file name to its detections and errors
    """
    folder = Path(folder_path)
    if not folder.exists():
        print(f"❌ Folder not found: {folder_path}")
        return {}

    image_files = list_images(folder)
    if not image_files:
        print(f"⚠️  No images found in: {folder_path}")
        return {}

    print(f"📁 Found {len(image_files)} image(s)")
    print("=" * 80)

    all_results = {}
    for idx, image_file in enumerate(image_files, 1):
        print(f"\n[{idx}/{len(image_files)}] {image_file.name}")
        try:
            report = detector.detect_objects(str(image_file))
            detector.store.drain()
        except (FileNotFoundError, ValueError) as e:
            print(f"  ❌ Unable to read image: {e}")
            all_results[image_file.name] = {"helmets": [], "faces": [], "errors": [str(e)]}
            continue

        helmets = format_detections(report.helmet_detections, display_size)
        faces = format_detections(report.face_detections, display_size)
        for item in helmets:
            print(f"  🪖 {item['caption']} at {item['display_rect']}")
        for item in faces:
            print(f"  🙂 {item['caption']} at {item['display_rect']}")
        if not helmets and not faces:
            print("  ℹ️  No detections found")
        for error in report.errors:
            print(f"  ❌ {error}")

        all_results[image_file.name] = {
            "helmets": helmets,
            "faces": faces,
            "errors": report.errors,
        }

    print("\n" + "=" * 80)
    print(f"\n✨ Done! Processed {len(image_files)} image(s)\n")
    return all_results


def build_report(
    results: dict,
    confidence_threshold: float = 0.5,
    load_errors: Optional[Sequence[str]] = None,
) -> dict:
    """Wrap per-image results with a summary; model load failures apply to every image."""

    load_errors = list(load_errors or [])
    return {
        "images": results,
        "summary": {
            "total": len(results),
            "with_helmets": sum(1 for data in results.values() if data["helmets"]),
            "with_faces": sum(1 for data in results.values() if data["faces"]),
            "with_errors": sum(1 for data in results.values() if data["errors"] or load_errors),
            "load_errors": load_errors,
            "confidence_threshold": confidence_threshold,
        },
    }


def save_results_to_json(report: dict, output_file: str) -> None:
    with open(output_file, "w", encoding="utf-8") as f:
        json.dump(report, f, ensure_ascii=False, indent=2)
    print(f"💾 Results saved to: {output_file}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("folder", help="folder containing the images to analyze")
    parser.add_argument("--output", default="analysis_results.json", help="JSON report path")
    parser.add_argument("--display-size", type=parse_display_size, default=(300, 300), metavar="WxH")
    parser.add_argument("--helmet-model", help="overrides HELMET_MODEL_PATH")
    parser.add_argument("--target-model", help="overrides TARGET_MODEL_PATH")
    parser.add_argument("--device", help="overrides INFERENCE_DEVICE")
    parser.add_argument("--log-level", help="overrides LOG_LEVEL")
    return parser


def config_from_args(args: argparse.Namespace, base: Optional[DetectorConfig] = None) -> DetectorConfig:
    config = base or DetectorConfig.from_env()
    overrides = {
        "helmet_model_path": args.helmet_model,
        "target_model_path": args.target_model,
        "device": args.device,
        "log_level": args.log_level.upper() if args.log_level else None,
    }
    return replace(config, **{key: value for key, value in overrides.items() if value})


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    config = config_from_args(args)
    setup_logging(config.log_level)

    print("\n" + "=" * 80)
    print("🖼️  Helmet detection batch analysis")
    print("=" * 80)
    print(f"📂 Folder: {args.folder}")
    print(f"📊 Confidence threshold: {config.confidence_threshold:.0%}\n")

    detector = HelmetDetector.from_config(config)
    loaded = detector.store.drain()
    load_errors = [message for message in (loaded.helmet_error, loaded.face_error) if message]
    for message in load_errors:
        print(f"⚠️  {message}")

    results = analyze_images_in_folder(detector, args.folder, args.display_size)
    if not results:
        return 1

    save_results_to_json(build_report(results, config.confidence_threshold, load_errors), args.output)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
