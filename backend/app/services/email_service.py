"""Email notification service using Resend API."""

import logging
from typing import Optional

import resend

from app.core.config import settings
from app.models.coach_request import CoachRequest
from app.models.course import Course
from app.models.user import User

logger = logging.getLogger(__name__)

# Brand colors
BRAND_PRIMARY = "#f97316"  # Orange
BRAND_DARK = "#1f2937"
BRAND_LIGHT = "#f9fafb"


def get_email_template(
    title: str, content: str, cta_text: Optional[str] = None, cta_url: Optional[str] = None
) -> str:
    """Wrap ``content`` in the branded email layout.

    Args:
        title: Email heading
        content: HTML body
        cta_text: Optional call-to-action button text
        cta_url: Optional call-to-action button URL
    """
    cta_button = ""
    if cta_text and cta_url:
        cta_button = f"""
        <div style="text-align: center; margin: 30px 0;">
            <a href="{cta_url}" style="display: inline-block; background-color: {BRAND_PRIMARY}; color: white; padding: 14px 28px; text-decoration: none; border-radius: 8px; font-weight: 600;">
                {cta_text}
            </a>
        </div>
        """

    return f"""
    <!DOCTYPE html>
    <html>
        <head><meta charset="utf-8"></head>
        <body style="margin: 0; padding: 40px 20px; font-family: -apple-system, 'Segoe UI', Roboto, Arial, sans-serif; background-color: {BRAND_LIGHT};">
            <div style="max-width: 600px; margin: 0 auto; background-color: white; border-radius: 12px; overflow: hidden;">
                <div style="background-color: {BRAND_PRIMARY}; padding: 32px 40px; text-align: center;">
                    <h1 style="margin: 0; color: white; font-size: 24px;">{title}</h1>
                </div>
                <div style="padding: 40px; color: {BRAND_DARK}; font-size: 16px; line-height: 1.6;">
                    {content}
                    {cta_button}
                </div>
                <div style="padding: 20px 40px; text-align: center; color: #6b7280; font-size: 12px;">
                    {settings.PROJECT_NAME} &middot; <a href="{settings.FRONTEND_URL}" style="color: #6b7280;">{settings.FRONTEND_URL}</a>
                </div>
            </div>
        </body>
    </html>
    """


class EmailService:
    """Service for sending email notifications via Resend."""

    @staticmethod
    def send_course_ready_email(user: User, course: Course, request: CoachRequest) -> bool:
        """Tell the customer their coach-authored plan is ready.

        Args:
            user: Owner of the request
            course: The linked course (must have a ``pdf_url``)
            request: The released coach request

        Returns:
            True if email sent successfully, False otherwise
        """
        try:
            if not settings.RESEND_API_KEY:
                logger.warning("RESEND_API_KEY not configured, skipping email")
                return False
            resend.api_key = settings.RESEND_API_KEY

            course_url = f"{settings.FRONTEND_URL}/courses/{course.id}"
            content = f"""
            <p>Hi <strong>{user.name or user.email}</strong>,</p>
            <p>Your personal {request.goal.lower()} plan from coach <strong>{request.coach_slug}</strong> is ready.</p>
            <p><strong>{course.title}</strong><br>
               {request.days_per_week} sessions per week, {request.level} level, {request.training_type} training.</p>
            <p>You can read it online or <a href="{course.pdf_url}">download the PDF</a>.</p>
            """

            resend.Emails.send({
                "from": settings.EMAIL_FROM,
                "to": user.email,
                "subject": f"Your plan is ready: {course.title}",
                "html": get_email_template(
                    title="Your training plan is ready",
                    content=content,
                    cta_text="Open my plan",
                    cta_url=course_url,
                ),
            })

            logger.info(f"Course ready email sent to {user.email} for coach request {request.id}")
            return True

        except Exception as e:
            logger.error(f"Failed to send course ready email for coach request {request.id}: {e}")
            return False
