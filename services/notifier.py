"""
Email notifications (Flask-Mail)

Sending is best effort: a failed email is logged and never undoes the
state change that triggered it.
"""

import logging

from flask_mail import Message

logger = logging.getLogger(__name__)

BUTTON_STYLE = (
    "background-color: #4F46E5; color: white; padding: 12px 24px; "
    "text-decoration: none; border-radius: 6px; display: inline-block;"
)
SUPPORT_EMAIL = "scanserviceandhelp@gmail.com"


class EmailNotifier:
    def __init__(self, mail, client_url=""):
        self.mail = mail
        self.client_url = (client_url or "").rstrip("/")

    def send(self, to, subject, body):
        try:
            self.mail.send(Message(subject, recipients=[to], html=body))
            return True
        except Exception:
            logger.exception("Email '%s' to %s could not be sent", subject, to)
            return False

    def _button(self, path, label):
        return f'<p><a href="{self.client_url}{path}" style="{BUTTON_STYLE}">{label}</a></p>'

    # ---------------- ACCOUNT ------------------

    def verification(self, account, raw_token):
        role_text = "as a volunteer " if account.role == "volunteer" else ""
        body = (
            f"<p>Hello {account.name or ''},</p>"
            f"<p>Thank you for signing up {role_text}for SCAN. "
            "Please verify your email by clicking the link below:</p>"
            + self._button(f"/verify-email?token={raw_token}", "Verify Email")
            + "<p>If you did not sign up, you can ignore this email.</p>"
        )
        return self.send(account.email, "Verify your email for SCAN", body)

    def password_reset(self, account, raw_token):
        body = (
            "<h2>Password Reset Request</h2>"
            "<p>You requested a password reset for your SCAN account.</p>"
            + self._button(f"/reset-password/{raw_token}", "Reset Password")
            + "<p>This link will expire in 1 hour.</p>"
            "<p>If you didn't request this, please ignore this email.</p>"
        )
        return self.send(account.email, "Password Reset Request - SCAN", body)

    def volunteer_approved(self, account):
        body = (
            f"<p>Hello {account.name},</p>"
            "<p>Your volunteer account for SCAN has been approved by an administrator.</p>"
            "<p>You can now log in to your account and start helping.</p>"
            + self._button("/login", "Log In to SCAN")
        )
        return self.send(account.email, "Your Volunteer Account has been Approved!", body)

    def volunteer_rejected(self, account):
        body = (
            f"<p>Hello {account.name},</p>"
            "<p>Your volunteer account request on SCAN has been rejected by an administrator.</p>"
            f"<p>If you believe this was a mistake, please contact support at {SUPPORT_EMAIL}</p>"
        )
        return self.send(account.email, "Your Volunteer Account Request Has Been Rejected", body)

    def account_terminated(self, account):
        body = (
            f"<p>Hello {account.name},</p>"
            "<p>Your account on SCAN has been terminated by an administrator.</p>"
            "<p>If you would like to use our services again, you will need to sign up for a new account.</p>"
            f"<p>If you believe this was a mistake, please contact support at {SUPPORT_EMAIL}</p>"
        )
        return self.send(account.email, "Your SCAN Account Has Been Terminated", body)

    def account_suspended(self, account):
        body = (
            f"<p>Hello {account.name},</p>"
            "<p>Your account on SCAN has been suspended by an administrator. "
            "You will not be able to log in until further notice.</p>"
            f"<p>If you believe this was a mistake, please contact support at {SUPPORT_EMAIL}</p>"
        )
        return self.send(account.email, "Your SCAN Account Has Been Suspended", body)

    def account_restored(self, account):
        body = (
            f"<p>Hello {account.name},</p>"
            "<p>Your account on SCAN has been restored by an administrator. "
            "You can now log in and use the platform again.</p>"
            + self._button("/login", "Log In to SCAN")
        )
        return self.send(account.email, "Your SCAN Account Has Been Restored", body)

    # ---------------- HELP REQUESTS ------------------

    def _request_details(self, help_request):
        return (
            "<h3>Request Details:</h3><ul>"
            f"<li><strong>Help Type:</strong> {help_request.title}</li>"
            f"<li><strong>Date:</strong> {help_request.requested_date}</li>"
            f"<li><strong>Time:</strong> {help_request.requested_time}</li>"
            f"<li><strong>Location:</strong> {help_request.location}</li>"
            "</ul>"
        )

    def request_accepted(self, citizen, help_request):
        assignment = help_request.assignment
        body = (
            "<h2>Your Help Request Has Been Accepted!</h2>"
            "<p>Great news! A volunteer has accepted your help request.</p>"
            "<h3>Volunteer Details:</h3><ul>"
            f"<li><strong>Name:</strong> {assignment.volunteer_name}</li>"
            f"<li><strong>Contact:</strong> {assignment.volunteer_contact}</li>"
            "</ul>"
            "<h3>Your Completion Code:</h3>"
            f'<p style="font-size: 24px; font-weight: bold; text-align: center;">{assignment.completion_code}</p>'
            "<p><em>Please provide this code to the volunteer when they complete your help request.</em></p>"
            + self._request_details(help_request)
            + self._button("/login", "Login to SCAN")
        )
        return self.send(citizen.email, "Help Request Accepted - SCAN", body)

    def request_completed(self, citizen, help_request):
        body = (
            "<h2>Help Request Completed!</h2>"
            "<p>Your help request has been marked as completed.</p>"
            + self._request_details(help_request)
            + "<p>Thank you for using SCAN! We hope you received the help you needed.</p>"
            + self._button("/login", "Login to SCAN")
        )
        return self.send(citizen.email, "Help Request Completed - SCAN", body)

    def request_expired(self, citizen, help_request):
        body = (
            "<h2>Help Request Expired</h2>"
            "<p>Your help request has expired without being accepted by a volunteer.</p>"
            + self._request_details(help_request)
            + "<p>You can create a new help request at any time:</p>"
            + self._button("/login", "Login to SCAN")
        )
        return self.send(citizen.email, "Help Request Expired - SCAN", body)
