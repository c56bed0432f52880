# lms/media/router.py
from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile, status
from fastapi.responses import FileResponse
from sqlalchemy.ext.asyncio import AsyncSession
import os

from lms.database import get_db
from lms.deps import get_current_user, get_admin_user
from lms.accounts.models import User
from lms.media.video import VideoService
from lms.media.schemas import VideoStreamUrl, VideoUpload

router = APIRouter()

@router.get("/lessons/{lesson_id}/stream", response_model=VideoStreamUrl)
async def get_lesson_stream_url(
    lesson_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Get a signed, expiring URL for a video lesson"""
    return await VideoService.get_stream_url(db, current_user.id, lesson_id)

@router.get("/videos/{video_key}")
async def stream_video(
    video_key: str,
    token: str = Query(...)
):
    """Serve a video file for a valid signed token"""
    if not VideoService.verify_token(video_key, token):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid or expired video link"
        )

    path = VideoService.resolve_path(video_key)
    return FileResponse(path, filename=os.path.basename(path))

@router.post("/videos", response_model=VideoUpload, status_code=201)
async def upload_video(
    file: UploadFile = File(...),
    current_user: User = Depends(get_admin_user)
):
    """Upload a lesson video (admin only)"""
    video_key = await VideoService.upload_video(file)
    return VideoUpload(video_key=video_key, size=os.path.getsize(VideoService.resolve_path(video_key)))
