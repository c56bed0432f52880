# lms/certificates/service.py
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError
from datetime import datetime
from typing import List, Optional
import uuid
import logging

from lms.config import settings
from lms.accounts.models import User
from lms.courses.models import Course, Module, Lesson, Enrollment
from lms.courses.progress import LessonProgressService
from lms.quizzes.models import Quiz, QuizAttempt
from lms.quizzes.service import QuizService
from lms.assignments.models import Assignment, AssignmentSubmission, SubmissionStatus
from lms.certificates.models import Certificate
from lms.certificates.schemas import CertificateVerification, CertificateEligibility
from lms.certificates.renderer import render_certificate
from lms.exceptions import NotFoundError, InvalidStateError
from lms.utils.email import send_certificate_email

logger = logging.getLogger(__name__)

class CertificateService:

    @staticmethod
    def generate_certificate_code(now: Optional[datetime] = None) -> str:
        """CERT-YYYYMMDD-XXXXXXXX with eight random hex characters"""
        now = now or datetime.utcnow()
        return f"CERT-{now.strftime('%Y%m%d')}-{uuid.uuid4().hex[:8].upper()}"

    # Lookups

    @staticmethod
    async def get_certificate(db: AsyncSession, certificate_id: int) -> Certificate:
        result = await db.execute(select(Certificate).where(Certificate.id == certificate_id))
        certificate = result.scalar_one_or_none()
        if not certificate:
            raise NotFoundError("Certificate")
        return certificate

    @staticmethod
    async def get_user_course_certificate(db: AsyncSession, user_id: int, course_id: int) -> Optional[Certificate]:
        result = await db.execute(
            select(Certificate).where(
                Certificate.user_id == user_id,
                Certificate.course_id == course_id
            )
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def get_user_certificates(db: AsyncSession, user_id: int) -> List[Certificate]:
        result = await db.execute(
            select(Certificate)
            .where(Certificate.user_id == user_id)
            .order_by(Certificate.issued_at.desc())
        )
        return result.scalars().all()

    @staticmethod
    async def get_course_certificates(db: AsyncSession, course_id: int) -> List[Certificate]:
        result = await db.execute(
            select(Certificate)
            .where(Certificate.course_id == course_id)
            .order_by(Certificate.issued_at.desc())
        )
        return result.scalars().all()

    @staticmethod
    async def validate_certificate(db: AsyncSession, certificate_code: str) -> Optional[Certificate]:
        result = await db.execute(
            select(Certificate).where(Certificate.certificate_code == certificate_code)
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def verify_certificate(db: AsyncSession, certificate_code: str) -> CertificateVerification:
        """Public verification of a certificate code"""
        certificate = await CertificateService.validate_certificate(db, certificate_code)
        if certificate is None:
            return CertificateVerification(valid=False, certificate_code=certificate_code)

        user = await db.get(User, certificate.user_id)
        course = await db.get(Course, certificate.course_id)
        return CertificateVerification(
            valid=True,
            certificate_code=certificate.certificate_code,
            student_name=user.full_name if user else None,
            course_title=course.get_title() if course else None,
            issued_at=certificate.issued_at,
            completion_date=certificate.completion_date,
            final_grade=certificate.final_grade
        )

    # Eligibility

    @staticmethod
    async def _get_enrollment(db: AsyncSession, user_id: int, course_id: int) -> Optional[Enrollment]:
        result = await db.execute(
            select(Enrollment).where(
                Enrollment.user_id == user_id,
                Enrollment.course_id == course_id
            )
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def is_eligible_for_certificate(db: AsyncSession, user_id: int, course_id: int) -> bool:
        """Active enrollment, every lesson completed, required quizzes and assignments passed"""
        enrollment = await CertificateService._get_enrollment(db, user_id, course_id)
        if enrollment is None or not enrollment.is_active:
            return False

        progress = await LessonProgressService.calculate_course_progress(db, enrollment.id)
        if progress < 100:
            return False

        result = await db.execute(
            select(Quiz.id)
            .join(Lesson, Quiz.lesson_id == Lesson.id)
            .join(Module, Lesson.module_id == Module.id)
            .where(
                Module.course_id == course_id,
                Quiz.required_to_unlock == True,
                Quiz.is_active == True
            )
        )
        for quiz_id in result.scalars().all():
            if not await QuizService.is_quiz_passed(db, user_id, quiz_id):
                return False

        result = await db.execute(
            select(Assignment.id)
            .join(Lesson, Assignment.lesson_id == Lesson.id)
            .join(Module, Lesson.module_id == Module.id)
            .where(
                Module.course_id == course_id,
                Assignment.is_required == True,
                Assignment.is_active == True
            )
        )
        for assignment_id in result.scalars().all():
            submission = await db.execute(
                select(AssignmentSubmission.status).where(
                    AssignmentSubmission.assignment_id == assignment_id,
                    AssignmentSubmission.user_id == user_id
                )
            )
            if submission.scalar_one_or_none() != SubmissionStatus.PASSED:
                return False

        return True

    @staticmethod
    async def should_generate_certificate(db: AsyncSession, user_id: int, course_id: int) -> bool:
        if await CertificateService.get_user_course_certificate(db, user_id, course_id):
            return False
        return await CertificateService.is_eligible_for_certificate(db, user_id, course_id)

    @staticmethod
    async def get_eligibility(db: AsyncSession, user_id: int, course_id: int) -> CertificateEligibility:
        enrollment = await CertificateService._get_enrollment(db, user_id, course_id)
        progress = 0.0
        if enrollment is not None:
            progress = await LessonProgressService.calculate_course_progress(db, enrollment.id)

        return CertificateEligibility(
            course_id=course_id,
            eligible=await CertificateService.is_eligible_for_certificate(db, user_id, course_id),
            has_certificate=await CertificateService.get_user_course_certificate(db, user_id, course_id) is not None,
            progress_percentage=progress
        )

    @staticmethod
    async def calculate_final_grade(db: AsyncSession, user_id: int, course_id: int) -> float:
        """Weighted blend of course progress and the best passing score per quiz"""
        enrollment = await CertificateService._get_enrollment(db, user_id, course_id)
        if enrollment is None:
            return 0.0

        progress = await LessonProgressService.calculate_course_progress(db, enrollment.id)

        result = await db.execute(
            select(QuizAttempt.quiz_id, func.max(QuizAttempt.score))
            .join(Quiz, QuizAttempt.quiz_id == Quiz.id)
            .join(Lesson, Quiz.lesson_id == Lesson.id)
            .join(Module, Lesson.module_id == Module.id)
            .where(
                QuizAttempt.user_id == user_id,
                QuizAttempt.passed == True,
                Module.course_id == course_id
            )
            .group_by(QuizAttempt.quiz_id)
        )
        best_scores = [score for _, score in result.all() if score is not None]
        quiz_average = sum(best_scores) / len(best_scores) if best_scores else 100.0

        final_grade = (
            progress * settings.CERTIFICATE_PROGRESS_WEIGHT
            + quiz_average * settings.CERTIFICATE_QUIZ_WEIGHT
        )
        return round(final_grade, 2)

    # Issuance

    @staticmethod
    async def generate_certificate(db: AsyncSession, user_id: int, course_id: int) -> Certificate:
        """Issue the certificate for (user, course), or return the one already issued"""
        existing = await CertificateService.get_user_course_certificate(db, user_id, course_id)
        if existing:
            return existing

        if not await CertificateService.is_eligible_for_certificate(db, user_id, course_id):
            raise InvalidStateError("User is not eligible for a certificate")

        enrollment = await CertificateService._get_enrollment(db, user_id, course_id)
        completion_date = enrollment.completed_at or datetime.utcnow()
        final_grade = await CertificateService.calculate_final_grade(db, user_id, course_id)

        for _ in range(settings.CERTIFICATE_CODE_MAX_RETRIES):
            now = datetime.utcnow()
            certificate = Certificate(
                user_id=user_id,
                course_id=course_id,
                certificate_code=CertificateService.generate_certificate_code(now),
                issued_at=now,
                completion_date=completion_date,
                final_grade=final_grade
            )
            db.add(certificate)
            try:
                await db.commit()
            except IntegrityError:
                await db.rollback()
                # Either a concurrent request issued it first or the code collided
                existing = await CertificateService.get_user_course_certificate(db, user_id, course_id)
                if existing:
                    return existing
                logger.warning(f"Certificate code collision for user {user_id}, course {course_id}; retrying")
                continue

            await db.refresh(certificate)
            logger.info(
                f"Certificate generated: {certificate.certificate_code} for user {user_id}, course {course_id}"
            )
            return certificate

        raise InvalidStateError("Could not allocate a unique certificate code")

    @staticmethod
    async def check_and_generate_certificate(db: AsyncSession, user_id: int, course_id: int) -> Optional[Certificate]:
        """Issue the certificate when it is due and notify the student"""
        if not await CertificateService.should_generate_certificate(db, user_id, course_id):
            return None

        certificate = await CertificateService.generate_certificate(db, user_id, course_id)

        user = await db.get(User, user_id)
        course = await db.get(Course, course_id)
        if user and course:
            await send_certificate_email(
                email=user.email,
                user_name=user.full_name,
                course_title=course.get_title(user.preferred_language),
                certificate_code=certificate.certificate_code
            )

        return certificate

    @staticmethod
    async def render_pdf(db: AsyncSession, certificate: Certificate) -> bytes:
        user = await db.get(User, certificate.user_id)
        course = await db.get(Course, certificate.course_id)
        if user is None or course is None:
            raise NotFoundError("Certificate owner or course")

        return render_certificate(
            student_name=user.full_name,
            course_title=course.get_title(),
            certificate_code=certificate.certificate_code,
            completion_date=certificate.completion_date,
            issued_at=certificate.issued_at,
            final_grade=certificate.final_grade,
            issuer_name=settings.COMPANY_NAME,
            verification_url=f"{settings.APP_BASE_URL}/api/certificates/verify/{certificate.certificate_code}"
        )
