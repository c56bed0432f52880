# lms/utils/file_upload.py
import aiofiles
import aiofiles.os
import os
from fastapi import UploadFile, HTTPException
from PIL import Image
import uuid
import logging
from typing import Optional, List

from lms.config import settings

logger = logging.getLogger(__name__)

ALLOWED_IMAGE_EXTENSIONS = {'jpg', 'jpeg', 'png', 'gif', 'webp'}
ALLOWED_VIDEO_EXTENSIONS = {'mp4', 'mov', 'webm', 'm4v'}

def get_extension(filename: Optional[str]) -> str:
    if not filename or '.' not in filename:
        return ''
    return filename.rsplit('.', 1)[-1].lower()

async def _write_upload(
    upload_file: UploadFile,
    destination_dir: str,
    allowed_extensions: Optional[List[str]],
    max_size: int
) -> str:
    """Validate and store an upload, returning the stored file name"""

    # Validate file size
    contents = await upload_file.read()
    if len(contents) > max_size:
        raise HTTPException(
            status_code=413,
            detail=f"File too large. Maximum size is {max_size // (1024*1024)}MB"
        )

    # Validate file extension
    file_extension = get_extension(upload_file.filename)
    if allowed_extensions and file_extension not in allowed_extensions:
        raise HTTPException(
            status_code=400,
            detail=f"File type not allowed. Allowed types: {', '.join(allowed_extensions)}"
        )

    # Generate unique filename
    unique_filename = f"{uuid.uuid4().hex}.{file_extension}" if file_extension else uuid.uuid4().hex
    os.makedirs(destination_dir, exist_ok=True)

    async with aiofiles.open(os.path.join(destination_dir, unique_filename), 'wb') as f:
        await f.write(contents)

    return unique_filename

async def save_upload_file(
    upload_file: UploadFile,
    subdir: str,
    allowed_extensions: Optional[List[str]] = None,
    max_size: int = settings.MAX_UPLOAD_SIZE,
    resize_image: bool = False,
    image_size: tuple = (800, 600)
) -> str:
    """Save uploaded file under UPLOAD_DIR/<subdir> and return its public URL"""
    destination_dir = os.path.join(settings.UPLOAD_DIR, subdir)
    filename = await _write_upload(upload_file, destination_dir, allowed_extensions, max_size)

    if resize_image and get_extension(filename) in ALLOWED_IMAGE_EXTENSIONS:
        file_path = os.path.join(destination_dir, filename)
        try:
            with Image.open(file_path) as img:
                img.thumbnail(image_size, Image.Resampling.LANCZOS)
                img.save(file_path, optimize=True, quality=85)
        except OSError:
            # Keep the original when Pillow cannot process it
            logger.warning(f"Could not resize uploaded image {file_path}")

    return f"/static/uploads/{subdir}/{filename}"

async def delete_upload_file(file_url: Optional[str]) -> bool:
    """Remove a file stored by save_upload_file, given its public URL"""
    prefix = "/static/uploads/"
    if not file_url or not file_url.startswith(prefix):
        return False

    subdir, _, filename = file_url[len(prefix):].partition("/")
    if subdir in ("", ".", "..") or filename in ("", ".", "..") or "/" in filename:
        return False

    file_path = os.path.join(settings.UPLOAD_DIR, subdir, filename)
    try:
        await aiofiles.os.remove(file_path)
    except FileNotFoundError:
        return False
    except OSError:
        logger.exception(f"Could not delete uploaded file {file_path}")
        return False
    return True

async def save_assignment_file(
    upload_file: UploadFile,
    allowed_extensions: List[str],
    max_size: int
) -> str:
    """Save a student's assignment submission"""
    return await save_upload_file(
        upload_file=upload_file,
        subdir="assignments",
        allowed_extensions=allowed_extensions,
        max_size=max_size
    )

async def save_course_thumbnail(upload_file: UploadFile) -> str:
    """Save course thumbnail with resizing"""
    return await save_upload_file(
        upload_file=upload_file,
        subdir="courses",
        allowed_extensions=sorted(ALLOWED_IMAGE_EXTENSIONS),
        max_size=10 * 1024 * 1024,  # 10MB
        resize_image=True,
        image_size=(800, 450)
    )

async def save_video_file(upload_file: UploadFile) -> str:
    """Store a lesson video outside the static mount; returns the video key"""
    return await _write_upload(
        upload_file,
        settings.VIDEO_DIR,
        sorted(ALLOWED_VIDEO_EXTENSIONS),
        settings.MAX_UPLOAD_SIZE
    )
