"""
Session Manager

Short-lived session tokens (stored on the account, one at a time) plus
stateless long-lived refresh tokens. Issuing a session replaces whatever
token the account held, so a ban or deletion that clears the stored token
invalidates outstanding sessions on their next validation.
"""

import datetime
import logging

import jwt
from bson import ObjectId
from bson.errors import InvalidId

from db import User
from services.errors import AccountBanned, InvalidRefreshToken, Unauthenticated

logger = logging.getLogger(__name__)

SESSION_TOKEN = "session"
REFRESH_TOKEN = "refresh"


class SessionManager:
    def __init__(
        self,
        codec,
        clock,
        session_ttl=datetime.timedelta(minutes=15),
        refresh_ttl=datetime.timedelta(days=7),
        idle_timeout=datetime.timedelta(minutes=15),
    ):
        self.codec = codec
        self.clock = clock
        self.session_ttl = session_ttl
        self.refresh_ttl = refresh_ttl
        self.idle_timeout = idle_timeout

    def issue_session(self, account_id):
        account_id = str(account_id)
        now = self.clock.now()

        session_token = self.codec.sign({"sub": account_id, "typ": SESSION_TOKEN}, self.session_ttl)
        refresh_token = self.codec.sign({"sub": account_id, "typ": REFRESH_TOKEN}, self.refresh_ttl)

        User.objects(pk=account_id).update_one(
            set__session__token=session_token,
            set__session__expires_at=now + self.session_ttl,
            set__session__last_activity_at=now,
        )
        return {"session_token": session_token, "refresh_token": refresh_token}

    def validate_session(self, token):
        """
        Authenticate a session token and refresh the account's activity
        timestamp. Returns the account; raises Unauthenticated.
        """
        payload = self._decode(token, SESSION_TOKEN, Unauthenticated("Invalid token"))
        account = _find_account(payload.get("sub"))
        if account is None:
            raise Unauthenticated("User not found")

        if account.is_banned:
            self.clear_session(account.id)
            raise Unauthenticated("Account suspended", isBanned=True)

        session = account.session
        if session is None or session.token != token:
            raise Unauthenticated("Invalid session")

        now = self.clock.now()
        if session.expires_at and now > session.expires_at:
            self.clear_session(account.id)
            raise Unauthenticated("Session expired")

        if session.last_activity_at and now - session.last_activity_at > self.idle_timeout:
            self.clear_session(account.id)
            raise Unauthenticated("Session expired due to inactivity")

        User.objects(pk=account.id, session__token=token).update_one(
            set__session__last_activity_at=now
        )
        account.session.last_activity_at = now
        return account

    def refresh(self, refresh_token):
        payload = self._decode(refresh_token, REFRESH_TOKEN, InvalidRefreshToken())
        account = _find_account(payload.get("sub"))
        if account is None:
            raise InvalidRefreshToken("User not found")

        if account.is_banned:
            self.clear_session(account.id)
            raise AccountBanned()

        return self.issue_session(account.id)

    def clear_session(self, account_id):
        User.objects(pk=account_id).update_one(
            set__session__token=None,
            set__session__expires_at=None,
        )

    def _decode(self, token, expected_type, error):
        try:
            payload = self.codec.verify(token)
        except jwt.InvalidTokenError as exc:
            logger.debug("Rejected %s token: %s", expected_type, exc)
            raise error
        if payload.get("typ") != expected_type:
            raise error
        return payload


def _find_account(account_id):
    try:
        return User.objects(pk=ObjectId(account_id)).first()
    except (InvalidId, TypeError):
        return None
