# lms/admin/service.py
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, distinct
from decimal import Decimal

from lms.accounts.models import User
from lms.courses.models import Course, Enrollment, EnrollmentStatus
from lms.payments.models import Payment, PaymentStatus
from lms.assignments.models import AssignmentSubmission, SubmissionStatus
from lms.certificates.models import Certificate
from lms.accounts.schemas import UserBrief
from lms.courses.schemas import Enrollment as EnrollmentSchema
from lms.admin.schemas import AdminDashboard, DashboardSummary

class AdminService:

    @staticmethod
    async def _count(db: AsyncSession, query) -> int:
        result = await db.execute(query)
        return result.scalar() or 0

    @staticmethod
    async def get_dashboard(db: AsyncSession, recent_limit: int = 5) -> AdminDashboard:
        """Platform counters plus the latest enrollments and sign-ups"""
        count = AdminService._count

        result = await db.execute(
            select(func.sum(Payment.amount_paid)).where(Payment.status == PaymentStatus.COMPLETED)
        )
        revenue = result.scalar() or Decimal("0")

        summary = DashboardSummary(
            total_users=await count(db, select(func.count(User.id))),
            total_courses=await count(db, select(func.count(Course.id))),
            published_courses=await count(
                db, select(func.count(Course.id)).where(Course.is_published == True)
            ),
            total_enrollments=await count(db, select(func.count(Enrollment.id))),
            pending_enrollments=await count(
                db,
                select(func.count(Enrollment.id)).where(Enrollment.status == EnrollmentStatus.PENDING_PAYMENT)
            ),
            active_students=await count(
                db,
                select(func.count(distinct(Enrollment.user_id))).where(
                    Enrollment.status.in_(EnrollmentStatus.ACTIVE)
                )
            ),
            certificates_issued=await count(db, select(func.count(Certificate.id))),
            pending_submissions=await count(
                db,
                select(func.count(AssignmentSubmission.id)).where(
                    AssignmentSubmission.status == SubmissionStatus.PENDING
                )
            ),
            total_revenue=revenue
        )

        result = await db.execute(
            select(Enrollment).order_by(Enrollment.enrolled_at.desc()).limit(recent_limit)
        )
        recent_enrollments = result.scalars().all()

        result = await db.execute(select(User).order_by(User.created_at.desc()).limit(recent_limit))
        recent_users = result.scalars().all()

        return AdminDashboard(
            summary=summary,
            recent_enrollments=[EnrollmentSchema.model_validate(e) for e in recent_enrollments],
            recent_users=[UserBrief.model_validate(u) for u in recent_users]
        )
