import datetime

import mongoengine
import mongomock
import pytest
from werkzeug.security import generate_password_hash

from db import HelpRequest, User
from services.accounts import AccountService
from services.assignment import AssignmentService
from services.clock import FixedClock
from services.help_requests import HelpRequestService
from services.notifier import EmailNotifier
from services.session_manager import SessionManager
from services.token_codec import TokenCodec

# 2025-01-01 05:30 IST
START = datetime.datetime(2025, 1, 1, 0, 0)

TEST_DB_URI = "mongodb://localhost/scan_test"


class RecordingNotifier(EmailNotifier):
    """Keeps every email instead of sending it."""

    def __init__(self):
        super().__init__(mail=None, client_url="http://client.test")
        self.sent = []

    def send(self, to, subject, body):
        self.sent.append({"to": to, "subject": subject, "body": body})
        return True

    def subjects(self, to=None):
        return [m["subject"] for m in self.sent if to is None or m["to"] == to]


class FailingNotifier(EmailNotifier):
    """Mail transport that always blows up; send() must swallow it."""

    class _BrokenMail:
        def send(self, message):
            raise ConnectionError("SMTP down")

    def __init__(self):
        super().__init__(mail=self._BrokenMail())


@pytest.fixture
def clock():
    return FixedClock(START)


@pytest.fixture
def mongo():
    mongoengine.disconnect()
    mongoengine.connect(host=TEST_DB_URI, mongo_client_class=mongomock.MongoClient)
    yield
    User.drop_collection()
    mongoengine.disconnect()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def sessions(mongo, clock):
    return SessionManager(TokenCodec("test-secret", clock), clock)


@pytest.fixture
def accounts(mongo, clock, notifier, sessions):
    return AccountService(notifier, clock, sessions)


@pytest.fixture
def help_requests(mongo, clock):
    return HelpRequestService(clock)


@pytest.fixture
def assignment(mongo, clock, notifier):
    return AssignmentService(clock, notifier)


def make_account(email, role="citizen", name=None, password="secret123", **extra):
    fields = {
        "email": email,
        "password_hash": generate_password_hash(password),
        "name": name or email.split("@")[0].title(),
        "contact_number": "555-0000",
        "role": role,
        "is_verified": True,
        "is_approved": role != "volunteer",
    }
    if role == "citizen":
        fields["help_request"] = HelpRequest()
    fields.update(extra)
    account = User(**fields)
    account.save()
    return account


def request_fields(**overrides):
    fields = {
        "title": "Driving",
        "description": "airport",
        "location": "Kollam",
        "requested_date": "2025-01-01",
        "requested_time": "10:00",
    }
    fields.update(overrides)
    return fields


@pytest.fixture
def citizen(mongo):
    return make_account("a@x.com", role="citizen")


@pytest.fixture
def volunteer(mongo):
    return make_account("v@x.com", role="volunteer", name="Vee", is_approved=True)
