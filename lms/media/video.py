# lms/media/video.py
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from fastapi import UploadFile
from datetime import datetime, timedelta
from typing import Optional
from urllib.parse import quote, urlparse
import os
import logging

import jwt

from lms.config import settings
from lms.courses.models import Lesson, LessonType
from lms.courses.prerequisites import PrerequisiteService
from lms.media.schemas import VideoStreamUrl
from lms.exceptions import NotFoundError, AccessDeniedError, InvalidStateError
from lms.utils.file_upload import save_video_file

logger = logging.getLogger(__name__)

class VideoService:
    """Signed, expiring links to lesson videos stored under VIDEO_DIR"""

    @staticmethod
    def extract_video_key(content_url: str) -> str:
        """Lesson content may hold a bare key or a full URL ending in the key"""
        path = urlparse(content_url).path or content_url
        return path.rstrip("/").rsplit("/", 1)[-1]

    @staticmethod
    def signed_url(video_key: str, ttl_seconds: Optional[int] = None) -> str:
        ttl = ttl_seconds if ttl_seconds is not None else settings.VIDEO_URL_TTL_SECONDS
        payload = {
            "type": "video",
            "key": video_key,
            "exp": datetime.utcnow() + timedelta(seconds=ttl),
        }
        token = jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.ALGORITHM)
        return f"{settings.VIDEO_BASE_URL.rstrip('/')}/{quote(video_key)}?token={token}"

    @staticmethod
    def verify_token(video_key: str, token: str) -> bool:
        try:
            payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
        except jwt.PyJWTError:
            return False
        return payload.get("type") == "video" and payload.get("key") == video_key

    @staticmethod
    def resolve_path(video_key: str) -> str:
        # Keys are flat file names inside VIDEO_DIR
        if not video_key or os.path.basename(video_key) != video_key or video_key.startswith("."):
            raise NotFoundError("Video")

        path = os.path.join(settings.VIDEO_DIR, video_key)
        if not os.path.isfile(path):
            raise NotFoundError("Video")
        return path

    @staticmethod
    async def get_stream_url(
        db: AsyncSession,
        user_id: int,
        lesson_id: int,
        ttl_seconds: Optional[int] = None
    ) -> VideoStreamUrl:
        """Signed URL for a video lesson the user is allowed to watch"""
        result = await db.execute(select(Lesson).where(Lesson.id == lesson_id))
        lesson = result.scalar_one_or_none()
        if lesson is None or lesson.lesson_type != LessonType.VIDEO:
            raise NotFoundError("Video lesson")

        access = await PrerequisiteService.check_lesson_access(db, user_id, lesson_id)
        if not access.can_access:
            raise AccessDeniedError(access.message, reason=access.reason.value)

        if not lesson.content_url:
            raise InvalidStateError("Video content URL not found for lesson")

        ttl = ttl_seconds if ttl_seconds is not None else settings.VIDEO_URL_TTL_SECONDS
        video_key = VideoService.extract_video_key(lesson.content_url)
        url = VideoService.signed_url(video_key, ttl)

        logger.info(f"Generated video URL for user {user_id}, lesson {lesson_id}")
        return VideoStreamUrl(
            lesson_id=lesson_id,
            url=url,
            expires_at=datetime.utcnow() + timedelta(seconds=ttl)
        )

    @staticmethod
    async def upload_video(upload_file: UploadFile) -> str:
        video_key = await save_video_file(upload_file)
        logger.info(f"Video uploaded: {video_key}")
        return video_key

    @staticmethod
    def delete_video(video_key: str) -> bool:
        try:
            path = VideoService.resolve_path(video_key)
        except NotFoundError:
            return False
        os.remove(path)
        logger.info(f"Video deleted: {video_key}")
        return True
