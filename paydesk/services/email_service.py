"""
PayDesk - Email Service

Handles transactional email sending.
Supports SendGrid or SMTP; falls back to a logging mock when neither is
configured. ``send_email`` never raises; it reports delivery as a bool.
"""

import asyncio
import base64
import logging
import smtplib
import ssl
from dataclasses import dataclass
from email import encoders
from email.mime.base import MIMEBase
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from html import escape
from typing import Any, Dict, List, Optional

import httpx

from paydesk.config import Settings, get_settings
from paydesk.services.salary_calculator import SalaryBreakdown
from paydesk.utils.error_handling import ErrorCode, ExternalServiceException
from paydesk.utils.formatting import format_currency

logger = logging.getLogger(__name__)


class EmailProvider:
    """Email provider types."""
    SMTP = "smtp"
    SENDGRID = "sendgrid"
    MOCK = "mock"


@dataclass
class EmailMessage:
    """Email message data structure."""
    to: List[str]
    subject: str
    body_text: str
    body_html: Optional[str] = None
    cc: Optional[List[str]] = None
    reply_to: Optional[str] = None
    # Each attachment: {"filename": str, "content": bytes, "content_type": str}
    attachments: Optional[List[Dict[str, Any]]] = None


class EmailService:
    """Service for sending transactional emails."""

    def __init__(self, settings: Optional[Settings] = None):
        settings = settings or get_settings()
        self.from_email = settings.email_from
        self.from_name = settings.email_from_name
        self.base_url = settings.base_url

        # SMTP settings
        self.smtp_host = settings.smtp_host
        self.smtp_port = settings.smtp_port
        self.smtp_username = settings.smtp_username
        self.smtp_password = settings.smtp_password
        self.smtp_use_tls = settings.smtp_use_tls

        # SendGrid settings
        self.sendgrid_api_key = settings.sendgrid_api_key

    def _determine_provider(self) -> str:
        """Determine which email provider to use based on configuration."""
        if self.sendgrid_api_key:
            return EmailProvider.SENDGRID
        elif self.smtp_host:
            return EmailProvider.SMTP
        else:
            return EmailProvider.MOCK

    async def send_email(self, message: EmailMessage) -> bool:
        """
        Send an email using the configured provider.
        """
        provider = self._determine_provider()

        try:
            if provider == EmailProvider.SENDGRID:
                return await self._send_via_sendgrid(message)
            elif provider == EmailProvider.SMTP:
                return await asyncio.to_thread(self._send_via_smtp, message)
            else:
                return await self._send_mock(message)
        except ExternalServiceException as e:
            logger.error(f"Email delivery failed ({e.code.value}): {e.message}")
            return False
        except Exception as e:
            logger.error(f"Failed to send email via {provider}: {e}")
            return False

    async def _send_via_sendgrid(self, message: EmailMessage) -> bool:
        """Send email via SendGrid API."""
        payload: Dict[str, Any] = {
            "personalizations": [
                {
                    "to": [{"email": email} for email in message.to],
                }
            ],
            "from": {
                "email": self.from_email,
                "name": self.from_name,
            },
            "subject": message.subject,
            "content": [
                {"type": "text/plain", "value": message.body_text},
            ],
        }

        if message.body_html:
            payload["content"].append({
                "type": "text/html",
                "value": message.body_html,
            })

        if message.cc:
            payload["personalizations"][0]["cc"] = [
                {"email": email} for email in message.cc
            ]

        if message.reply_to:
            payload["reply_to"] = {"email": message.reply_to}

        if message.attachments:
            payload["attachments"] = [
                {
                    "content": base64.b64encode(attachment["content"]).decode("ascii"),
                    "filename": attachment["filename"],
                    "type": attachment.get("content_type", "application/octet-stream"),
                    "disposition": "attachment",
                }
                for attachment in message.attachments
            ]

        async with httpx.AsyncClient(timeout=30.0) as client:
            response = await client.post(
                "https://api.sendgrid.com/v3/mail/send",
                json=payload,
                headers={
                    "Authorization": f"Bearer {self.sendgrid_api_key}",
                    "Content-Type": "application/json",
                },
            )

        if response.status_code in (200, 202):
            logger.info(f"Email sent via SendGrid to {message.to}")
            return True
        raise ExternalServiceException(
            "sendgrid",
            f"SendGrid API error: {response.status_code} - {response.text}",
            code=ErrorCode.EMAIL_SERVICE_ERROR,
        )

    def _send_via_smtp(self, message: EmailMessage) -> bool:
        """Send email via SMTP (blocking; run in a worker thread)."""
        msg = MIMEMultipart("mixed")
        msg["Subject"] = message.subject
        msg["From"] = f"{self.from_name} <{self.from_email}>"
        msg["To"] = ", ".join(message.to)
        if message.cc:
            msg["Cc"] = ", ".join(message.cc)
        if message.reply_to:
            msg["Reply-To"] = message.reply_to

        body = MIMEMultipart("alternative")
        body.attach(MIMEText(message.body_text, "plain"))
        if message.body_html:
            body.attach(MIMEText(message.body_html, "html"))
        msg.attach(body)

        for attachment in message.attachments or []:
            maintype, _, subtype = attachment.get(
                "content_type", "application/octet-stream"
            ).partition("/")
            part = MIMEBase(maintype, subtype or "octet-stream")
            part.set_payload(attachment["content"])
            encoders.encode_base64(part)
            part.add_header(
                "Content-Disposition",
                f'attachment; filename="{attachment["filename"]}"'
            )
            msg.attach(part)

        all_recipients = list(message.to) + list(message.cc or [])

        try:
            with smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=30) as server:
                if self.smtp_use_tls:
                    server.starttls(context=ssl.create_default_context())
                if self.smtp_username and self.smtp_password:
                    server.login(self.smtp_username, self.smtp_password)
                server.sendmail(self.from_email, all_recipients, msg.as_string())
        except (smtplib.SMTPException, OSError) as e:
            raise ExternalServiceException(
                "smtp",
                f"SMTP delivery to {self.smtp_host}:{self.smtp_port} failed: {e}",
                code=ErrorCode.EMAIL_SERVICE_ERROR,
                original_error=e,
            ) from e

        logger.info(f"Email sent via SMTP to {message.to}")
        return True

    async def _send_mock(self, message: EmailMessage) -> bool:
        """Mock email sending for development."""
        attachments = [a["filename"] for a in message.attachments or []]
        logger.info(
            f"[MOCK EMAIL] To: {message.to} | Subject: {message.subject} | Attachments: {attachments}"
        )
        logger.debug(f"[MOCK EMAIL] Body: {message.body_text[:200]}...")
        return True

    # ===========================================
    # TRANSACTIONAL EMAIL TEMPLATES
    # ===========================================

    async def send_welcome_email(self, to_email: str, name: str, employee_code: Optional[str] = None) -> bool:
        """Send welcome email to new accounts."""
        code_line = f"Your employee ID is {employee_code}." if employee_code else ""
        body_html = f"""
        <html>
        <body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333;">
            <div style="max-width: 600px; margin: 0 auto; padding: 20px;">
                <h1 style="color: #2563eb;">Welcome to {escape(self.from_name)}</h1>
                <p>Hi {escape(name)},</p>
                <p>Your account has been created. {escape(code_line)}</p>
                <p>You can now submit expenses and view your salary slips.</p>
                <p><a href="{self.base_url}/login">Log in</a></p>
            </div>
        </body>
        </html>
        """
        body_text = (
            f"Hi {name},\n\nYour account has been created. {code_line}\n"
            f"You can now submit expenses and view your salary slips.\n\n"
            f"Log in: {self.base_url}/login\n"
        )
        return await self.send_email(EmailMessage(
            to=[to_email],
            subject=f"Welcome to {self.from_name}",
            body_text=body_text,
            body_html=body_html,
        ))

    async def send_expense_decision_email(
        self,
        to_email: str,
        employee_name: str,
        expense_title: str,
        amount,
        approved: bool,
        admin_name: str,
        rejection_reason: Optional[str] = None,
    ) -> bool:
        """Tell an employee their expense was approved or rejected."""
        decision = "Approved" if approved else "Rejected"
        colour = "#16a34a" if approved else "#dc2626"
        reason_html = (
            f"<p><strong>Reason:</strong> {escape(rejection_reason)}</p>"
            if rejection_reason else ""
        )
        body_html = f"""
        <html>
        <body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333;">
            <div style="max-width: 600px; margin: 0 auto; padding: 20px;">
                <h2 style="color: {colour};">Expense {decision}</h2>
                <p>Hi {escape(employee_name)},</p>
                <p>Your expense <strong>{escape(expense_title)}</strong>
                   for {format_currency(amount)} has been {decision.lower()} by {escape(admin_name)}.</p>
                {reason_html}
            </div>
        </body>
        </html>
        """
        body_text = (
            f"Hi {employee_name},\n\nYour expense \"{expense_title}\" for "
            f"{format_currency(amount)} has been {decision.lower()} by {admin_name}.\n"
        )
        if rejection_reason:
            body_text += f"Reason: {rejection_reason}\n"
        return await self.send_email(EmailMessage(
            to=[to_email],
            subject=f"Expense {decision} - {expense_title}",
            body_text=body_text,
            body_html=body_html,
        ))

    async def send_salary_slip_email(
        self,
        to_email: str,
        employee_name: str,
        period_label: str,
        breakdown: SalaryBreakdown,
        pdf_content: bytes,
        pdf_filename: str,
    ) -> bool:
        """Send the one-page salary summary with the PDF attached."""
        rows = [
            ("Gross Salary", breakdown.gross),
            ("Total Deductions", breakdown.total_deductions),
        ]
        rows_html = "".join(
            f"<tr><td style='padding: 6px 12px;'>{label}</td>"
            f"<td style='padding: 6px 12px; text-align: right;'>{format_currency(value)}</td></tr>"
            for label, value in rows
        )
        body_html = f"""
        <html>
        <body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333;">
            <div style="max-width: 600px; margin: 0 auto; padding: 20px;">
                <h2 style="color: #2563eb;">Salary Slip - {escape(period_label)}</h2>
                <p>Dear {escape(employee_name)},</p>
                <p>Please find attached your salary slip for {escape(period_label)}.</p>
                <table style="border-collapse: collapse; width: 100%;">
                    {rows_html}
                    <tr style="font-weight: bold; background-color: #eff6ff;">
                        <td style="padding: 6px 12px;">Net Salary</td>
                        <td style="padding: 6px 12px; text-align: right;">{format_currency(breakdown.net)}</td>
                    </tr>
                </table>
                <p>If you have any questions, please contact HR.</p>
            </div>
        </body>
        </html>
        """
        body_text = (
            f"Dear {employee_name},\n\n"
            f"Please find attached your salary slip for {period_label}.\n\n"
            f"Gross Salary: {format_currency(breakdown.gross)}\n"
            f"Total Deductions: {format_currency(breakdown.total_deductions)}\n"
            f"Net Salary: {format_currency(breakdown.net)}\n"
        )
        return await self.send_email(EmailMessage(
            to=[to_email],
            subject=f"Salary Slip - {period_label}",
            body_text=body_text,
            body_html=body_html,
            attachments=[{
                "filename": pdf_filename,
                "content": pdf_content,
                "content_type": "application/pdf",
            }],
        ))
