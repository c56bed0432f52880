# lms/certificates/router.py
from fastapi import APIRouter, Depends, Response
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List

from lms.database import get_db
from lms.deps import get_current_user
from lms.accounts.models import User
from lms.certificates.service import CertificateService
from lms.certificates.schemas import Certificate, CertificateVerification, CertificateEligibility
from lms.exceptions import NotFoundError

router = APIRouter()

async def _owned_certificate(db: AsyncSession, certificate_id: int, user: User):
    certificate = await CertificateService.get_certificate(db, certificate_id)
    if certificate.user_id != user.id and not user.is_admin:
        raise NotFoundError("Certificate")
    return certificate

@router.get("/me", response_model=List[Certificate])
async def get_my_certificates(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return await CertificateService.get_user_certificates(db, current_user.id)

@router.get("/verify/{certificate_code}", response_model=CertificateVerification)
async def verify_certificate(
    certificate_code: str,
    db: AsyncSession = Depends(get_db)
):
    """Verify certificate authenticity (public)"""
    return await CertificateService.verify_certificate(db, certificate_code)

@router.get("/eligibility/{course_id}", response_model=CertificateEligibility)
async def get_certificate_eligibility(
    course_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return await CertificateService.get_eligibility(db, current_user.id, course_id)

@router.post("/generate/{course_id}", response_model=Certificate)
async def generate_certificate(
    course_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Issue the caller's certificate, or return the one already issued"""
    return await CertificateService.generate_certificate(db, current_user.id, course_id)

@router.get("/{certificate_id}", response_model=Certificate)
async def get_certificate(
    certificate_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return await _owned_certificate(db, certificate_id, current_user)

@router.get("/{certificate_id}/pdf")
async def download_certificate(
    certificate_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    certificate = await _owned_certificate(db, certificate_id, current_user)
    pdf = await CertificateService.render_pdf(db, certificate)
    return Response(
        content=pdf,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{certificate.certificate_code}.pdf"'}
    )
