import io
import os
import sys
import pytest
from PIL import Image

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from avatar_service import AvatarService
from db import ProfileRepository, SettingsRepository, UserRepository


@pytest.fixture
def service(tmp_path):
    db_file = str(tmp_path / "workout.db")
    uid = UserRepository(db_file).create("ana@example.com", "hash")
    profiles = ProfileRepository(db_file)
    profiles.ensure(uid, "ana@example.com", "ana")
    svc = AvatarService(profiles, SettingsRepository(db_file, str(tmp_path / "s.yaml")))
    return svc, uid


def _png(size=(600, 300), color="blue") -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", size, color).save(buf, format="PNG")
    return buf.getvalue()


def test_default_avatar(service):
    svc, uid = service
    data = svc.get(uid)
    img = Image.open(io.BytesIO(data))
    assert img.format == "PNG"
    assert img.size == (64, 64)


def test_upload_thumbnails_and_stores(service):
    svc, uid = service
    svc.upload(uid, _png())
    img = Image.open(io.BytesIO(svc.get(uid)))
    assert img.size == (256, 128)
    assert img.mode == "RGBA"
    assert svc._profiles.fetch(uid)["has_avatar"] is True
    svc.remove(uid)
    assert svc._profiles.fetch(uid)["has_avatar"] is False


def test_upload_rejects_invalid_data(service):
    svc, uid = service
    with pytest.raises(ValueError, match="empty"):
        svc.upload(uid, b"")
    with pytest.raises(ValueError, match="invalid image"):
        svc.upload(uid, b"not an image")
    with pytest.raises(ValueError, match="too large"):
        svc.upload(uid, b"0" * (AvatarService.MAX_UPLOAD_BYTES + 1))
