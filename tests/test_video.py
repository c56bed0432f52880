# tests/test_video.py
from io import BytesIO

import pytest
from fastapi import UploadFile

from lms.config import settings
from lms.courses.models import LessonType
from lms.media.video import VideoService
from lms.exceptions import AccessDeniedError, NotFoundError, InvalidStateError

@pytest.fixture
def video_dir(tmp_path, monkeypatch):
    monkeypatch.setattr(settings, "VIDEO_DIR", str(tmp_path))
    return tmp_path

def test_signed_url_round_trip():
    url = VideoService.signed_url("intro.mp4", ttl_seconds=60)

    path, token = url.split("?token=")
    assert path.endswith("/intro.mp4")
    assert VideoService.verify_token("intro.mp4", token) is True
    assert VideoService.verify_token("other.mp4", token) is False
    assert VideoService.verify_token("intro.mp4", "garbage") is False

def test_expired_token_is_rejected():
    url = VideoService.signed_url("intro.mp4", ttl_seconds=-10)

    assert VideoService.verify_token("intro.mp4", url.split("?token=")[1]) is False

def test_video_key_from_url_or_bare_key():
    assert VideoService.extract_video_key("https://cdn.example.com/videos/abc.mp4") == "abc.mp4"
    assert VideoService.extract_video_key("abc.mp4") == "abc.mp4"

def test_resolve_path_rejects_traversal(video_dir):
    (video_dir / "clip.mp4").write_bytes(b"data")

    assert VideoService.resolve_path("clip.mp4").endswith("clip.mp4")
    for key in ("../secret.mp4", ".hidden", "missing.mp4", ""):
        with pytest.raises(NotFoundError):
            VideoService.resolve_path(key)

async def test_upload_and_delete_video(video_dir):
    upload = UploadFile(file=BytesIO(b"\x00\x01video"), filename="Lecture.MP4")

    video_key = await VideoService.upload_video(upload)

    assert video_key.endswith(".mp4")
    assert (video_dir / video_key).exists()
    assert VideoService.delete_video(video_key) is True
    assert VideoService.delete_video(video_key) is False

async def test_stream_url_requires_lesson_access(db, factory):
    user = await factory.user()
    course = await factory.course()
    module = await factory.module(course, 1)
    first = await factory.lesson(module, 1, lesson_type=LessonType.VIDEO, content_url="one.mp4")
    second = await factory.lesson(module, 2, lesson_type=LessonType.VIDEO, content_url="two.mp4")
    await factory.enrollment(user, course)

    stream = await VideoService.get_stream_url(db, user.id, first.id, ttl_seconds=120)
    assert "one.mp4?token=" in stream.url

    with pytest.raises(AccessDeniedError) as exc_info:
        await VideoService.get_stream_url(db, user.id, second.id)
    assert exc_info.value.reason == "previous_lesson_incomplete"

async def test_stream_url_for_non_video_or_missing_content(db, factory):
    user = await factory.user()
    course = await factory.course()
    module = await factory.module(course, 1)
    video = await factory.lesson(module, 1, lesson_type=LessonType.VIDEO)
    await factory.enrollment(user, course)
    text_module = await factory.module(course, 2)
    text = await factory.lesson(text_module, 1)

    with pytest.raises(InvalidStateError):
        await VideoService.get_stream_url(db, user.id, video.id)
    with pytest.raises(NotFoundError):
        await VideoService.get_stream_url(db, user.id, text.id)
