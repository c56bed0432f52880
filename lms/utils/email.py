# lms/utils/email.py
import aiosmtplib
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from jinja2 import Environment, FileSystemLoader, TemplateNotFound, select_autoescape
from datetime import datetime
import logging
import os
import re
from typing import Dict, Any, Optional

from lms.config import settings

logger = logging.getLogger(__name__)

TEMPLATE_DIR = os.path.join(os.path.dirname(os.path.dirname(__file__)), "templates")

# Setup Jinja2 environment for email templates
template_env = Environment(
    loader=FileSystemLoader(TEMPLATE_DIR),
    autoescape=select_autoescape(["html"])
)

def render_email(template_name: str, context: Dict[str, Any]) -> tuple:
    """Render the HTML body and its plain text alternative"""
    context = {
        'company_name': settings.COMPANY_NAME,
        'frontend_url': settings.FRONTEND_URL,
        'current_year': datetime.utcnow().year,
        **context,
    }

    html_content = template_env.get_template(f"emails/{template_name}.html").render(**context)

    try:
        text_content = template_env.get_template(f"emails/{template_name}.txt").render(**context)
    except TemplateNotFound:
        # Fallback to HTML stripped of tags
        text_content = re.sub(r'<[^>]+>', '', html_content)

    return html_content, text_content

async def send_email(
    to_email: str,
    subject: str,
    template_name: str,
    context: Dict[str, Any],
    fail_silently: bool = True
) -> bool:
    """Send email using template"""
    try:
        # Skip email sending in development if no email config
        if not settings.EMAIL_HOST_USER or not settings.EMAIL_HOST_PASSWORD:
            logger.info(f"EMAIL SKIPPED (no config): {subject} to {to_email}")
            if template_name == "password_reset":
                logger.info(f"RESET CODE: {context.get('reset_code')}")
            return True

        html_content, text_content = render_email(template_name, context)

        # Create message
        message = MIMEMultipart("alternative")
        message["Subject"] = f"[{settings.COMPANY_NAME}] {subject}"
        message["From"] = settings.DEFAULT_FROM_EMAIL or settings.EMAIL_HOST_USER
        message["To"] = to_email

        message.attach(MIMEText(text_content, "plain"))
        message.attach(MIMEText(html_content, "html"))

        await aiosmtplib.send(
            message,
            hostname=settings.EMAIL_HOST,
            port=settings.EMAIL_PORT,
            start_tls=settings.EMAIL_USE_TLS,
            username=settings.EMAIL_HOST_USER,
            password=settings.EMAIL_HOST_PASSWORD,
        )

        logger.info(f"Email sent: {subject} to {to_email}")
        return True

    except Exception:
        logger.exception(f"Failed to send email to {to_email}")
        if not fail_silently:
            raise
        return False

async def send_welcome_email(email: str, user_name: str) -> bool:
    """Send welcome email after registration"""
    return await send_email(
        to_email=email,
        subject="Welcome to Our Learning Platform!",
        template_name="welcome_email",
        context={'user_name': user_name}
    )

async def send_password_reset_email(email: str, reset_code: str, user_name: str = None) -> bool:
    """Send password reset code"""
    context = {
        'reset_code': reset_code,
        'user_name': user_name,
        'expiry_hours': 1,
        'reset_url': f"{settings.FRONTEND_URL}/reset-password?code={reset_code}&email={email}"
    }

    return await send_email(
        to_email=email,
        subject="Reset Your Password",
        template_name="password_reset",
        context=context
    )

async def send_enrollment_email(email: str, user_name: str, course_title: str, course_id: int) -> bool:
    """Confirm an approved enrollment"""
    context = {
        'user_name': user_name,
        'course_title': course_title,
        'course_url': f"{settings.FRONTEND_URL}/courses/{course_id}"
    }

    return await send_email(
        to_email=email,
        subject=f"Enrollment confirmed: {course_title}",
        template_name="enrollment_confirmation",
        context=context
    )

async def send_certificate_email(email: str, user_name: str, course_title: str, certificate_code: str) -> bool:
    """Announce an issued certificate"""
    context = {
        'user_name': user_name,
        'course_title': course_title,
        'certificate_code': certificate_code,
        'verify_url': f"{settings.FRONTEND_URL}/certificates/verify/{certificate_code}"
    }

    return await send_email(
        to_email=email,
        subject=f"Your certificate for {course_title}",
        template_name="certificate_issued",
        context=context
    )

async def send_assignment_feedback_email(
    email: str,
    user_name: str,
    assignment_title: str,
    status: str,
    feedback: Optional[str] = None,
    grade: Optional[float] = None
) -> bool:
    """Tell the student their submission was reviewed"""
    context = {
        'user_name': user_name,
        'assignment_title': assignment_title,
        'status': status,
        'feedback': feedback,
        'grade': grade
    }

    return await send_email(
        to_email=email,
        subject=f"Assignment reviewed: {assignment_title}",
        template_name="assignment_reviewed",
        context=context
    )
