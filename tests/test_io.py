from __future__ import annotations

import base64
import io
from pathlib import Path

import pytest
from PIL import Image

from vision_gateway.errors import ReadError
from vision_gateway.io import TempFileStore, encode_image, resolve_mime_type, safe_file_name


def _image_bytes(fmt: str) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", (16, 12), (200, 100, 50)).save(buf, format=fmt)
    return buf.getvalue()


def test_png_extension_wins_over_content(tmp_path: Path):
    # JPEG bytes behind a .png name: the extension table decides.
    p = tmp_path / "photo.png"
    p.write_bytes(_image_bytes("JPEG"))
    assert resolve_mime_type(str(p)) == "image/png"


@pytest.mark.parametrize(
    "name,expected",
    [
        ("a.JPG", "image/jpeg"),
        ("a.jpeg", "image/jpeg"),
        ("a.gif", "image/gif"),
        ("a.webp", "image/webp"),
        ("a.bmp", "image/bmp"),
    ],
)
def test_extension_table(tmp_path: Path, name: str, expected: str):
    assert resolve_mime_type(str(tmp_path / name)) == expected


def test_extensionless_file_is_sniffed_from_content(tmp_path: Path):
    p = tmp_path / "upload_blob"
    p.write_bytes(_image_bytes("PNG"))
    assert resolve_mime_type(str(p)) == "image/png"


def test_unrecognized_file_uses_declared_then_jpeg(tmp_path: Path):
    p = tmp_path / "upload_blob"
    p.write_bytes(b"definitely not an image")
    assert resolve_mime_type(str(p), declared="image/webp") == "image/webp"
    assert resolve_mime_type(str(p), declared="application/octet-stream") == "image/jpeg"
    assert resolve_mime_type(str(p)) == "image/jpeg"


def test_encode_image_is_base64_of_bytes(tmp_path: Path):
    raw = _image_bytes("PNG")
    p = tmp_path / "x.png"
    p.write_bytes(raw)

    first = encode_image(str(p))
    second = encode_image(str(p))

    assert first.mime_type == "image/png"
    assert base64.b64decode(first.base64_payload) == raw
    assert first == second


def test_encode_image_missing_file(tmp_path: Path):
    with pytest.raises(FileNotFoundError):
        encode_image(str(tmp_path / "nope.png"))


def test_encode_image_empty_file(tmp_path: Path):
    p = tmp_path / "empty.png"
    p.write_bytes(b"")
    with pytest.raises(ReadError):
        encode_image(str(p))


def test_safe_file_name():
    assert safe_file_name("../my photo (1).PNG") == "my_photo__1_.PNG"
    assert safe_file_name("dir\\evil.jpg") == "evil.jpg"
    assert safe_file_name("") == "upload"


def test_safe_file_name_caps_long_names():
    name = safe_file_name("x" * 300 + ".png")
    assert name == "x" * 100 + ".png"
    # An overlong "extension" is treated as part of the stem.
    assert safe_file_name("y" * 150 + "." + "z" * 40) == "y" * 100


def test_store_accepts_300_char_name(tmp_path: Path):
    store = TempFileStore(str(tmp_path))
    long_name = "p" * 300 + ".png"

    upload = store.save(long_name, io.BytesIO(b"x"))

    stored = Path(upload.storage_path).name
    assert len(stored.encode("utf-8")) <= 255
    assert stored.endswith(".png")
    assert upload.original_name == long_name


def test_store_names_do_not_collide_and_keep_extension(tmp_path: Path):
    store = TempFileStore(str(tmp_path / "uploads"))
    a = store.save("same.png", io.BytesIO(b"a"))
    b = store.save("same.png", io.BytesIO(b"b"))

    assert a.storage_path != b.storage_path
    assert a.storage_path.endswith("-same.png")
    assert Path(a.storage_path).read_bytes() == b"a"
    assert Path(b.storage_path).read_bytes() == b"b"


def test_store_session_cleans_up_on_success_and_failure(tmp_path: Path):
    root = tmp_path / "uploads"
    store = TempFileStore(str(root))
    files = [("a.png", io.BytesIO(b"1"), "image/png"), ("b.jpg", io.BytesIO(b"2"), "image/jpeg")]

    with store.session(files) as uploads:
        assert [u.original_name for u in uploads] == ["a.png", "b.jpg"]
        assert uploads[1].declared_mime_type == "image/jpeg"
        assert len(list(root.iterdir())) == 2
    assert list(root.iterdir()) == []

    with pytest.raises(RuntimeError):
        with store.session([("c.png", io.BytesIO(b"3"), None)]):
            raise RuntimeError("boom")
    assert list(root.iterdir()) == []


def test_store_release_is_idempotent(tmp_path: Path):
    store = TempFileStore(str(tmp_path))
    upload = store.save("x.png", io.BytesIO(b"x"))
    store.release(upload)
    store.release(upload)
    assert not Path(upload.storage_path).exists()
