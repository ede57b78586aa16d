"""
Identity Store operations

Signup, email verification, credential checks, password reset, profile
updates and the admin account actions (approve, reject, ban, unban,
delete) plus the admin listing queries.
"""

import datetime
import hashlib
import logging
import secrets

from bson import ObjectId
from bson.errors import InvalidId
from mongoengine.errors import NotUniqueError
from werkzeug.security import check_password_hash, generate_password_hash

from db import LOCATIONS, HelpRequest, User
from services.errors import (
    AccountBanned,
    EmailAlreadyRegistered,
    NotFound,
    Unauthenticated,
    ValidationFailed,
)

logger = logging.getLogger(__name__)

VERIFICATION_TTL = datetime.timedelta(hours=24)
RESET_TTL = datetime.timedelta(hours=1)

SIGNUP_ROLES = ("citizen", "volunteer")


def hash_token(raw_token):
    return hashlib.sha256(raw_token.encode("utf-8")).hexdigest()


def find_account(account_id):
    try:
        return User.objects(pk=ObjectId(account_id)).first()
    except (InvalidId, TypeError):
        return None


class AccountService:
    def __init__(self, notifier, clock, sessions):
        self.notifier = notifier
        self.clock = clock
        self.sessions = sessions

    # ---------------- SIGNUP / VERIFY ------------------

    def signup(self, email, password, name, contact_number, role, skills=None, home_location=None):
        if not email or not password or not name or not contact_number or not role:
            raise ValidationFailed("All fields are required")
        if role not in SIGNUP_ROLES:
            raise ValidationFailed("Invalid category")
        if role == "volunteer" and home_location and home_location not in LOCATIONS:
            raise ValidationFailed("Invalid location")

        if User.objects(email=email).first():
            raise EmailAlreadyRegistered()

        raw_token = secrets.token_hex(16)
        account = User(
            email=email,
            password_hash=generate_password_hash(password),
            name=name,
            contact_number=contact_number,
            role=role,
            is_verified=False,
            verification_token_hash=hash_token(raw_token),
            verification_token_expires_at=self.clock.now() + VERIFICATION_TTL,
            # volunteers wait for an admin; approval is unused for citizens
            is_approved=(role != "volunteer"),
        )
        if role == "volunteer":
            account.skills = list(skills or [])
            account.home_location = home_location
        else:
            account.help_request = HelpRequest()

        try:
            account.save()
        except NotUniqueError:
            raise EmailAlreadyRegistered()

        logger.info("Registered %s account %s", role, email)
        self.notifier.verification(account, raw_token)
        return account, raw_token

    def verify_email(self, raw_token):
        if not raw_token:
            raise ValidationFailed("Invalid or missing verification token.")

        account = User.objects(
            verification_token_hash=hash_token(raw_token),
            verification_token_expires_at__gt=self.clock.now(),
        ).first()
        if account is None:
            raise ValidationFailed("Invalid or expired verification link.")

        account.is_verified = True
        account.verification_token_hash = None
        account.verification_token_expires_at = None
        account.save()
        return account

    def create_admin(self, email, password, name, contact_number=""):
        if User.objects(email=email).first():
            raise EmailAlreadyRegistered()
        account = User(
            email=email,
            password_hash=generate_password_hash(password),
            name=name,
            contact_number=contact_number,
            role="admin",
            is_verified=True,
            is_approved=True,
        )
        account.save()
        return account

    # ---------------- LOGIN ------------------

    def authenticate(self, email, password):
        """Check credentials and return the account; no session is issued here."""
        account = User.objects(email=email).first()
        if account is None:
            raise Unauthenticated("No account found with this email")

        if account.is_banned:
            raise AccountBanned("Your account has been suspended by an administrator")

        if not account.is_verified:
            raise Unauthenticated("Email not verified")

        if not check_password_hash(account.password_hash, password or ""):
            raise Unauthenticated("Incorrect password")

        account.last_login_at = self.clock.now()
        User.objects(pk=account.id).update_one(set__last_login_at=account.last_login_at)
        return account

    # ---------------- PASSWORD RESET ------------------

    def forgot_password(self, email):
        if not email:
            raise ValidationFailed("Email is required")
        account = User.objects(email=email).first()
        if account is None:
            raise NotFound("No such user exists")

        raw_token = secrets.token_hex(32)
        account.reset_token_hash = hash_token(raw_token)
        account.reset_token_expires_at = self.clock.now() + RESET_TTL
        account.save()

        self.notifier.password_reset(account, raw_token)
        return raw_token

    def reset_password(self, raw_token, password):
        if not raw_token or not password:
            raise ValidationFailed("Token and new password are required")

        account = User.objects(
            reset_token_hash=hash_token(raw_token),
            reset_token_expires_at__gt=self.clock.now(),
        ).first()
        if account is None:
            raise ValidationFailed("Invalid or expired reset token")

        account.password_hash = generate_password_hash(password)
        account.reset_token_hash = None
        account.reset_token_expires_at = None
        account.save()
        return account

    # ---------------- PROFILE ------------------

    def update_profile(self, account, name=None, contact_number=None, skills=None, home_location=None):
        if name:
            account.name = name
        if contact_number:
            account.contact_number = contact_number

        if account.role == "volunteer":
            if skills:
                account.skills = list(skills)
            if home_location:
                if home_location not in LOCATIONS:
                    raise ValidationFailed("Invalid location")
                account.home_location = home_location

        account.save()
        return account

    # ---------------- ADMIN ACTIONS ------------------

    def approve_volunteer(self, account_id):
        volunteer = self._volunteer(account_id)
        volunteer.is_approved = True
        volunteer.save()
        self.notifier.volunteer_approved(volunteer)
        return volunteer

    def reject_volunteer(self, account_id):
        volunteer = self._volunteer(account_id)
        self.sessions.clear_session(volunteer.id)
        volunteer.delete()
        self.notifier.volunteer_rejected(volunteer)
        return volunteer

    def delete_account(self, account_id):
        account = self._account(account_id)
        self.sessions.clear_session(account.id)
        account.delete()
        self.notifier.account_terminated(account)
        return account

    def ban(self, account_id):
        account = self._account(account_id)
        account.is_banned = True
        account.save()
        self.sessions.clear_session(account.id)
        logger.info("Banned account %s", account.email)
        self.notifier.account_suspended(account)
        return account

    def unban(self, account_id):
        account = self._account(account_id)
        account.is_banned = False
        account.save()
        self.notifier.account_restored(account)
        return account

    # ---------------- ADMIN QUERIES ------------------

    def list_pending_volunteers(self):
        return list(User.objects(role="volunteer", is_approved=False, is_banned=False))

    def list_by_role(self, role):
        if role not in ("citizen", "volunteer"):
            raise ValidationFailed("Role query param required (volunteer or citizen)")
        return list(User.objects(role=role, is_verified=True, is_banned=False))

    def list_banned(self, category=None, search=None):
        query = {"is_banned": True}
        if category and category.lower() != "all":
            query["role"] = category.lower()
        if search:
            query["name__icontains"] = search
        return list(User.objects(**query))

    def _account(self, account_id):
        account = find_account(account_id)
        if account is None:
            raise NotFound("User not found")
        return account

    def _volunteer(self, account_id):
        account = find_account(account_id)
        if account is None or account.role != "volunteer":
            raise NotFound("Volunteer not found")
        return account
