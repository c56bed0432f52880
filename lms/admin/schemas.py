# lms/admin/schemas.py
from pydantic import BaseModel
from typing import List
from decimal import Decimal

from lms.accounts.schemas import UserBrief
from lms.courses.schemas import Enrollment

class DashboardSummary(BaseModel):
    total_users: int = 0
    total_courses: int = 0
    published_courses: int = 0
    total_enrollments: int = 0
    pending_enrollments: int = 0
    active_students: int = 0
    certificates_issued: int = 0
    pending_submissions: int = 0
    total_revenue: Decimal = Decimal("0")

class AdminDashboard(BaseModel):
    summary: DashboardSummary
    recent_enrollments: List[Enrollment] = []
    recent_users: List[UserBrief] = []
