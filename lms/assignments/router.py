# lms/assignments/router.py
from fastapi import APIRouter, Depends, File, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional

from lms.database import get_db
from lms.deps import get_current_user
from lms.accounts.models import User
from lms.assignments.service import AssignmentService
from lms.assignments.schemas import Assignment, Submission

router = APIRouter()

@router.get("/me/submissions", response_model=List[Submission])
async def get_my_submissions(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return await AssignmentService.get_user_submissions(db, current_user.id)

@router.get("/{assignment_id}", response_model=Assignment)
async def get_assignment(
    assignment_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return await AssignmentService.get_assignment(db, assignment_id)

@router.post("/{assignment_id}/submit", response_model=Submission, status_code=201)
async def submit_assignment(
    assignment_id: int,
    file: UploadFile = File(...),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Upload a submission file; resubmitting replaces the previous one"""
    return await AssignmentService.submit_assignment(db, current_user.id, assignment_id, file)

@router.get("/{assignment_id}/submission", response_model=Optional[Submission])
async def get_my_submission(
    assignment_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    await AssignmentService.get_assignment(db, assignment_id)
    return await AssignmentService.get_submission(db, current_user.id, assignment_id)
