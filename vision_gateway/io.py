from __future__ import annotations

import base64
import json
import logging
import mimetypes
import shutil
import time
import uuid
from contextlib import contextmanager, suppress
from pathlib import Path
from typing import Any, BinaryIO, Dict, Iterator, List, Optional, Sequence, Tuple

from PIL import Image

from .config import DEFAULT_MIME_TYPE, MIME_TYPE_MAP
from .contracts import EncodedImage, UploadedFile
from .errors import ReadError

logger = logging.getLogger(__name__)

MAX_STORED_STEM = 100
MAX_STORED_SUFFIX = 10


def _sniff_image_mime(path: str) -> Optional[str]:
    try:
        with Image.open(path) as img:
            return Image.MIME.get(img.format or "")
    except OSError:
        return None


def resolve_mime_type(path: str, declared: Optional[str] = None) -> str:
    """
    Order:
      1) explicit extension table
      2) generic guess from the file name
      3) content sniff (Pillow)
      4) client-declared image/* type
      5) image/jpeg
    """
    ext = Path(path).suffix.lower()
    if ext in MIME_TYPE_MAP:
        return MIME_TYPE_MAP[ext]

    guessed, _ = mimetypes.guess_type(path)
    if guessed:
        return guessed

    sniffed = _sniff_image_mime(path)
    if sniffed:
        return sniffed

    if declared and declared.startswith("image/"):
        return declared
    return DEFAULT_MIME_TYPE


def encode_image(path: str, declared: Optional[str] = None) -> EncodedImage:
    p = Path(path)
    if not p.is_file():
        raise FileNotFoundError(f"File not found: {path}")

    mime_type = resolve_mime_type(path, declared)
    try:
        raw = p.read_bytes()
    except OSError as e:
        raise ReadError(f"Failed to read file: {p.name}") from e
    if not raw:
        raise ReadError(f"Failed to read file: {p.name} is empty")

    logger.debug("Encoded %s (%d bytes, %s)", p.name, len(raw), mime_type)
    return EncodedImage(base64_payload=base64.b64encode(raw).decode("utf-8"), mime_type=mime_type)


def safe_file_name(name: str, max_stem: int = MAX_STORED_STEM) -> str:
    """
    Filesystem-safe basename, keeping the extension.
    Example: "../my photo (1).PNG" -> "my_photo__1_.PNG"

    The stem is cut to `max_stem` characters so the stored name stays under
    the 255-byte filename limit whatever the client sent.
    """
    base = Path(name.replace("\\", "/")).name or "upload"
    safe = "".join(ch if ch.isascii() and (ch.isalnum() or ch in ("_", "-", ".")) else "_" for ch in base)
    p = Path(safe)
    suffix = p.suffix if len(p.suffix) <= MAX_STORED_SUFFIX else ""
    stem = safe[: len(safe) - len(p.suffix)] if p.suffix else safe
    return stem[:max_stem] + suffix


def append_jsonl(path: str, record: Dict[str, Any]) -> None:
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    with open(p, "a", encoding="utf-8") as fp:
        fp.write(json.dumps(record, ensure_ascii=False) + "\n")


class TempFileStore:
    """
    Holds uploads on disk for the lifetime of one request.

    Names are `<epoch-ms>-<uuid8>-<safe original name>`, so concurrent requests
    never collide in the shared directory.
    """

    def __init__(self, root: str):
        self.root = Path(root)

    def _unique_path(self, original_name: str) -> Path:
        stamp = int(time.time() * 1000)
        return self.root / f"{stamp}-{uuid.uuid4().hex[:8]}-{safe_file_name(original_name)}"

    def save(self, original_name: str, stream: BinaryIO, declared_mime_type: Optional[str] = None) -> UploadedFile:
        self.root.mkdir(parents=True, exist_ok=True)
        dest = self._unique_path(original_name)
        try:
            with open(dest, "wb") as out:
                shutil.copyfileobj(stream, out)
        except BaseException:
            with suppress(OSError):
                dest.unlink(missing_ok=True)
            raise
        return UploadedFile(
            original_name=original_name,
            storage_path=str(dest),
            declared_mime_type=declared_mime_type,
        )

    def release(self, upload: UploadedFile) -> None:
        try:
            Path(upload.storage_path).unlink(missing_ok=True)
        except OSError as e:
            logger.warning("Could not delete temp file %s: %s", upload.storage_path, e)

    @contextmanager
    def session(
        self, files: Sequence[Tuple[str, BinaryIO, Optional[str]]]
    ) -> Iterator[List[UploadedFile]]:
        """
        Persist `(original_name, stream, content_type)` triples and yield the
        stored files. Everything written here is deleted on exit, including
        files saved before a failing save.
        """
        saved: List[UploadedFile] = []
        try:
            for name, stream, content_type in files:
                upload = self.save(name, stream, content_type)
                saved.append(upload)
            yield saved
        finally:
            for upload in saved:
                self.release(upload)
