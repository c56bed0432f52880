# lms/media/schemas.py
from pydantic import BaseModel
from datetime import datetime

class VideoStreamUrl(BaseModel):
    lesson_id: int
    url: str
    expires_at: datetime

class VideoUpload(BaseModel):
    video_key: str
    size: int
