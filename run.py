from __future__ import annotations

import argparse
import logging
import sys
import time
from pathlib import Path

from dotenv import load_dotenv
from tqdm import tqdm

from vision_gateway.config import MIME_TYPE_MAP, Settings
from vision_gateway.contracts import UploadedFile
from vision_gateway.errors import ConfigError, error_body
from vision_gateway.gemini_captioner import GeminiCaptioner
from vision_gateway.io import append_jsonl
from vision_gateway.pipeline import analyze_one
from vision_gateway.vision_client import VisionAnnotator


def _iter_images(input_dir: Path):
    for p in sorted(input_dir.rglob("*")):
        if p.is_file() and p.suffix.lower() in MIME_TYPE_MAP:
            yield p


def _serve(settings: Settings, args: argparse.Namespace) -> int:
    import uvicorn

    from vision_gateway.app import create_app

    host = args.host or settings.host
    port = args.port or settings.port
    logging.getLogger(__name__).info("API running on http://%s:%d", host, port)
    uvicorn.run(create_app(settings), host=host, port=port, log_level=settings.log_level.lower())
    return 0


def _analyze_dir(settings: Settings, args: argparse.Namespace) -> int:
    input_dir = Path(args.input)
    output_path = Path(args.output)
    if not input_dir.exists():
        raise FileNotFoundError(f"Input dir not found: {input_dir}")

    images = list(_iter_images(input_dir))
    if not images:
        print(f"No images found under {input_dir}")
        return 0

    annotator = VisionAnnotator.from_settings(settings)
    captioner = GeminiCaptioner.from_settings(settings)

    stats = {"total": 0, "ok": 0, "failed": 0}
    t0 = time.perf_counter()
    for img_path in tqdm(images, desc="Analyzing", unit="img"):
        rel = img_path.relative_to(input_dir).as_posix()
        # Source files are the user's; no release callback.
        outcome = analyze_one(UploadedFile(original_name=rel, storage_path=str(img_path)), annotator, captioner)

        stats["total"] += 1
        if outcome.ok:
            stats["ok"] += 1
            append_jsonl(str(output_path), outcome.report.to_json())
        else:
            stats["failed"] += 1
            append_jsonl(
                str(output_path),
                {"fileName": rel, "error": error_body(outcome.error, str(outcome.error) or "Failed to analyze image")},
            )

    t1 = time.perf_counter()
    print(
        "Done.\n"
        f"- total:     {stats['total']}\n"
        f"- ok:        {stats['ok']}\n"
        f"- failed:    {stats['failed']}\n"
        f"- elapsed_s: {t1 - t0:.2f}\n"
        f"- output:    {output_path.resolve()}"
    )
    return 0


def main() -> int:
    load_dotenv()

    parser = argparse.ArgumentParser(description="Image annotation + captioning gateway (Cloud Vision + Gemini).")
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the HTTP API.")
    serve.add_argument("--host", type=str, default=None, help="Bind address (default: $HOST or 0.0.0.0).")
    serve.add_argument("--port", type=int, default=None, help="Port (default: $PORT or 5000).")

    analyze = sub.add_parser("analyze", help="Analyze every image in a directory.")
    analyze.add_argument("--input", required=True, type=str, help="Input directory containing images.")
    analyze.add_argument("--output", required=True, type=str, help="JSONL file to append one result per image to.")
    args = parser.parse_args()

    try:
        settings = Settings.from_env()
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2

    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.command == "serve":
        return _serve(settings, args)
    return _analyze_dir(settings, args)


if __name__ == "__main__":
    raise SystemExit(main())
