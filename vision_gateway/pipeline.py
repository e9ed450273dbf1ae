from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, List, Optional, Protocol, Sequence

from .config import CAPTION_PROMPT, DESCRIBE_PROMPT, MAX_FILES
from .contracts import AggregateImageReport, AnnotationResult, EncodedImage, UploadedFile
from .errors import AnalyzeError, RequestCancelled
from .io import encode_image
from .signals import derive_emotions, derive_product_links

logger = logging.getLogger(__name__)


class Annotator(Protocol):
    def annotate(self, image: EncodedImage) -> AnnotationResult: ...


class Captioner(Protocol):
    def caption(self, image: EncodedImage, prompt: str = CAPTION_PROMPT) -> str: ...


@dataclass
class ImageOutcome:
    file_name: str
    report: Optional[AggregateImageReport] = None
    error: Optional[Exception] = None
    elapsed_s: float = 0.0

    @property
    def ok(self) -> bool:
        return self.error is None


def _check_cancelled(cancel: Optional[threading.Event]) -> None:
    if cancel is not None and cancel.is_set():
        raise RequestCancelled("analysis cancelled")


def analyze_image(
    upload: UploadedFile,
    annotator: Annotator,
    captioner: Captioner,
    cancel: Optional[threading.Event] = None,
) -> AggregateImageReport:
    """
    STRICT ORDER:
      1) Encode the stored file
      2) Vision annotation
      3) Gemini caption
      4) Derived signals (emotions, product links)
    """
    encoded = encode_image(upload.storage_path, upload.declared_mime_type)

    _check_cancelled(cancel)
    annotation = annotator.annotate(encoded)

    _check_cancelled(cancel)
    caption = captioner.caption(encoded)

    return AggregateImageReport(
        file_name=upload.original_name,
        labels=annotation.label_annotations,
        text_annotations=annotation.text_annotations,
        face_annotations=[face.provider_json() for face in annotation.face_annotations],
        safe_search_annotation=annotation.safe_search_annotation,
        caption=caption,
        emotions=derive_emotions(annotation.face_annotations),
        product_links=derive_product_links(annotation.label_annotations),
    )


def analyze_one(
    upload: UploadedFile,
    annotator: Annotator,
    captioner: Captioner,
    release: Optional[Callable[[UploadedFile], None]] = None,
    cancel: Optional[threading.Event] = None,
) -> ImageOutcome:
    """
    Runs analyze_image and captures expected failures as an outcome instead
    of raising. `release` (if given) is called once the image is done, on
    every path.
    """
    t0 = time.perf_counter()
    try:
        outcome = ImageOutcome(
            file_name=upload.original_name,
            report=analyze_image(upload, annotator, captioner, cancel=cancel),
        )
    except (AnalyzeError, OSError) as e:
        if not isinstance(e, RequestCancelled):
            logger.warning("Analysis failed for %s: %s", upload.original_name, e)
        outcome = ImageOutcome(file_name=upload.original_name, error=e)
    finally:
        if release is not None:
            release(upload)
    outcome.elapsed_s = time.perf_counter() - t0
    logger.info("%s: %s in %.3fs", upload.original_name, "ok" if outcome.ok else "failed", outcome.elapsed_s)
    return outcome


def analyze_batch(
    uploads: Sequence[UploadedFile],
    annotator: Annotator,
    captioner: Captioner,
    release: Optional[Callable[[UploadedFile], None]] = None,
    cancel: Optional[threading.Event] = None,
    fail_fast: bool = False,
    max_workers: int = MAX_FILES,
) -> List[ImageOutcome]:
    """
    One task per image on a bounded pool; outcomes come back in input order.

    With fail_fast, the first failure sets the shared cancel event so images
    still in flight stop before their next upstream call.
    """
    if not uploads:
        return []
    stop = cancel if cancel is not None else threading.Event()

    def _run(upload: UploadedFile) -> ImageOutcome:
        outcome = analyze_one(upload, annotator, captioner, release=release, cancel=stop)
        if fail_fast and not outcome.ok:
            stop.set()
        return outcome

    workers = max(1, min(max_workers, len(uploads)))
    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="analyze") as pool:
        futures = [pool.submit(_run, u) for u in uploads]
        return [f.result() for f in futures]


def collect_reports(outcomes: Sequence[ImageOutcome]) -> List[AggregateImageReport]:
    """
    All reports, or raise. The raised error is the first real failure in
    input order; cancellations only win when nothing else failed.
    """
    failures = [o.error for o in outcomes if o.error is not None]
    if failures:
        real = [e for e in failures if not isinstance(e, RequestCancelled)]
        raise (real or failures)[0]
    return [o.report for o in outcomes if o.report is not None]


def describe_image(
    upload: UploadedFile,
    captioner: Captioner,
    cancel: Optional[threading.Event] = None,
) -> str:
    encoded = encode_image(upload.storage_path, upload.declared_mime_type)
    _check_cancelled(cancel)
    return captioner.caption(encoded, prompt=DESCRIBE_PROMPT)
