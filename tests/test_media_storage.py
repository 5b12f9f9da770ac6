import re
from datetime import date
from pathlib import Path

import pytest

from app.classifieds.modules.media.service import (
    ImageValidationError,
    UploadedImage,
    build_image_storage_key,
    discard_images,
    image_dimensions,
    sniff_image_mime,
    upload_ad_image,
    validate_image,
)
from app.classifieds.storage import LocalStorage, S3Storage, StorageError, storage_from_config

from conftest import png_bytes

MB = 1024 * 1024


def test_sniff_image_mime():
    assert sniff_image_mime(b"\xff\xd8\xff\xe0rest") == "image/jpeg"
    assert sniff_image_mime(png_bytes()) == "image/png"
    assert sniff_image_mime(b"RIFF\x00\x00\x00\x00WEBPVP8 ") == "image/webp"
    assert sniff_image_mime(b"GIF89a\x01\x00\x02\x00") == "image/gif"
    assert sniff_image_mime(b"%PDF-1.7") is None
    assert sniff_image_mime(b"") is None


def test_image_dimensions():
    assert image_dimensions(png_bytes(640, 480), "image/png") == (640, 480)
    assert image_dimensions(b"GIF89a\x10\x00\x20\x00", "image/gif") == (16, 32)
    assert image_dimensions(b"\xff\xd8\xff", "image/jpeg") == (None, None)


def test_validate_image():
    assert validate_image(png_bytes(), "a.png", max_bytes=MB) == "image/png"
    with pytest.raises(ImageValidationError, match="is empty"):
        validate_image(b"", "a.png", max_bytes=MB)
    with pytest.raises(ImageValidationError, match="Maximum size is 1MB"):
        validate_image(png_bytes() + b"\x00" * MB, "big.png", max_bytes=MB)
    # extension does not matter, the content does
    with pytest.raises(ImageValidationError, match="not a supported image"):
        validate_image(b"<html></html>", "photo.jpg", max_bytes=MB)


def test_build_image_storage_key():
    key = build_image_storage_key(7, "HOUSING", "image/webp", date(2030, 3, 4))
    assert re.fullmatch(r"ads/housing/7/2030-03-04/[0-9a-f]{32}\.webp", key)
    assert key != build_image_storage_key(7, "HOUSING", "image/webp", date(2030, 3, 4))


def test_uploaded_image_dict_round_trip():
    img = UploadedImage(storage_key="k", mime_type="image/png", bytes=10, sha256="ab", width=2, height=3)
    assert UploadedImage.from_dict(img.to_dict()) == img
    partial = UploadedImage.from_dict({"storage_key": "k"})
    assert partial.mime_type == "application/octet-stream"
    assert partial.bytes == 0


def test_local_storage_put_open_delete(tmp_path: Path):
    storage = LocalStorage(root=tmp_path)
    storage.put_bytes("ads/x/1.png", b"abc")
    assert storage.exists("ads/x/1.png")
    with storage.open("ads/x/1.png") as fh:
        assert fh.read() == b"abc"
    storage.delete("ads/x/1.png")
    assert not storage.exists("ads/x/1.png")
    # deleting again is fine
    storage.delete("ads/x/1.png")
    with pytest.raises(StorageError):
        storage.open("ads/x/1.png")


def test_local_storage_rejects_keys_outside_root(tmp_path: Path):
    storage = LocalStorage(root=tmp_path / "root")
    with pytest.raises(StorageError):
        storage.put_bytes("../escape.txt", b"x")
    with pytest.raises(StorageError):
        storage.exists("ads/../../escape.txt")


def test_local_storage_delete_many(tmp_path: Path):
    storage = LocalStorage(root=tmp_path)
    for name in ("a", "b", "c"):
        storage.put_bytes(f"k/{name}", b"1")
    assert storage.delete_many(["k/a", "k/b"]) == 2
    assert storage.exists("k/c")
    assert not storage.exists("k/a")


class _FakeS3:
    def __init__(self):
        self.calls = []

    def delete_objects(self, Bucket, Delete):
        keys = [o["Key"] for o in Delete["Objects"]]
        self.calls.append(keys)
        return {"Deleted": [{"Key": k} for k in keys]}


def test_s3_delete_many_chunks(monkeypatch):
    fake = _FakeS3()
    monkeypatch.setattr(S3Storage, "_client", lambda self: fake)
    storage = S3Storage(endpoint="", region="", bucket="b", access_key_id="", secret_access_key="")
    keys = [f"k{i}" for i in range(1500)]
    assert storage.delete_many(keys) == 1500
    assert [len(c) for c in fake.calls] == [1000, 500]
    assert storage.delete_many([]) == 0


def test_s3_delete_many_raises_on_errors(monkeypatch):
    class _Failing(_FakeS3):
        def delete_objects(self, Bucket, Delete):
            return {"Errors": [{"Key": "k0", "Message": "denied"}]}

    monkeypatch.setattr(S3Storage, "_client", lambda self: _Failing())
    storage = S3Storage(endpoint="", region="", bucket="b", access_key_id="", secret_access_key="")
    with pytest.raises(StorageError, match="denied"):
        storage.delete_many(["k0"])


def test_storage_from_config(tmp_path: Path):
    local = storage_from_config({"STORAGE_BACKEND": "local", "STORAGE_ROOT": str(tmp_path)})
    assert isinstance(local, LocalStorage)
    assert local.root == tmp_path
    s3 = storage_from_config({"STORAGE_BACKEND": "S3", "S3_BUCKET": " media "})
    assert isinstance(s3, S3Storage)
    assert s3.bucket == "media"


def test_upload_ad_image(tmp_path: Path):
    storage = LocalStorage(root=tmp_path)
    data = png_bytes(10, 20)
    img = upload_ad_image(storage, user_id=3, category="MARKETPLACE", file_bytes=data, filename="My Lamp.png", max_bytes=MB)
    assert img.storage_key.startswith("ads/marketplace/3/")
    assert img.mime_type == "image/png"
    assert img.bytes == len(data)
    assert (img.width, img.height) == (10, 20)
    assert img.alt == "My_Lamp"
    assert len(img.sha256) == 64
    assert storage.exists(img.storage_key)


def test_upload_rejects_before_storing(tmp_path: Path):
    storage = LocalStorage(root=tmp_path)
    with pytest.raises(ImageValidationError):
        upload_ad_image(storage, user_id=3, category="HOUSING", file_bytes=b"nope", filename="x.png", max_bytes=MB)
    assert not (tmp_path / "ads").exists()


def test_discard_images_never_raises(tmp_path: Path):
    class _Broken(LocalStorage):
        def delete(self, key):
            raise StorageError("boom")

    assert discard_images(_Broken(root=tmp_path), ["a"]) == 0
    assert discard_images(LocalStorage(root=tmp_path), []) == 0
