import datetime

import mongoengine as db
from flask_login import UserMixin

ROLES = ("citizen", "volunteer", "admin")

HELP_STATES = ("idle", "open", "assigned", "completed")

HELP_CATEGORIES = (
    "Driving", "Cooking", "Housekeeping", "Gardening",
    "Companionship", "Reading", "Shopping", "Medical",
)

LOCATIONS = (
    "Thiruvananthapuram", "Kollam", "Pathanamthitta", "Alappuzha",
    "Kottayam", "Idukki", "Ernakulam", "Thrissur", "Palakkad",
    "Malappuram", "Kozhikode", "Wayanad", "Kannur", "Kasaragod",
)


def _iso(value):
    return value.isoformat() if value else None


class Session(db.EmbeddedDocument):
    token = db.StringField()
    expires_at = db.DateTimeField()
    last_activity_at = db.DateTimeField()


class Assignment(db.EmbeddedDocument):
    volunteer_name = db.StringField()
    volunteer_contact = db.StringField()
    volunteer_id = db.StringField()
    is_accepted = db.BooleanField(default=False)
    completion_code = db.StringField(max_length=6)
    accepted_at = db.DateTimeField()
    completed_at = db.DateTimeField()

    def to_dict(self, include_code=False):
        data = {
            "volunteerName": self.volunteer_name,
            "volunteerContact": self.volunteer_contact,
            "volunteerId": self.volunteer_id,
            "isAccepted": bool(self.is_accepted),
            "acceptedAt": _iso(self.accepted_at),
            "completedAt": _iso(self.completed_at),
        }
        if include_code:
            data["completionCode"] = self.completion_code
        return data


class HelpRequest(db.EmbeddedDocument):
    # idle | open | assigned | completed
    status = db.StringField(choices=HELP_STATES, default="idle")

    title = db.StringField()
    description = db.StringField()
    note = db.StringField()
    location = db.StringField()
    requested_date = db.StringField()  # YYYY-MM-DD, IST
    requested_time = db.StringField()  # HH:MM, IST
    created_at = db.DateTimeField()

    assignment = db.EmbeddedDocumentField(Assignment)

    @property
    def is_accepted(self):
        return bool(self.assignment and self.assignment.is_accepted)

    def to_dict(self, include_code=False):
        return {
            "status": self.status,
            "title": self.title,
            "description": self.description,
            "note": self.note,
            "location": self.location,
            "requestedDate": self.requested_date,
            "requestedTime": self.requested_time,
            "createdAt": _iso(self.created_at),
            "assignment": self.assignment.to_dict(include_code) if self.assignment else None,
        }


class User(UserMixin, db.Document):
    meta = {
        "collection": "users",
        "strict": False,
        # volunteers poll for open requests by state and region
        "indexes": [
            ("role", "help_request.status", "help_request.location"),
            "help_request.assignment.volunteer_id",
        ],
    }

    email = db.StringField(required=True, unique=True)
    password_hash = db.StringField(required=True)
    role = db.StringField(required=True, choices=ROLES)

    created_at = db.DateTimeField(default=datetime.datetime.utcnow)
    last_login_at = db.DateTimeField()

    # Profile
    name = db.StringField(required=True)
    contact_number = db.StringField()
    skills = db.ListField(db.StringField())  # volunteers only
    home_location = db.StringField()         # volunteers only

    # Verification / approval / ban
    is_verified = db.BooleanField(default=False)
    verification_token_hash = db.StringField()
    verification_token_expires_at = db.DateTimeField()
    is_approved = db.BooleanField(default=True)
    is_banned = db.BooleanField(default=False)

    # Password reset
    reset_token_hash = db.StringField()
    reset_token_expires_at = db.DateTimeField()

    session = db.EmbeddedDocumentField(Session, default=Session)

    # Citizens only: a single embedded slot, never a collection
    help_request = db.EmbeddedDocumentField(HelpRequest)

    def get_id(self):
        return str(self.id)

    @property
    def help_state(self):
        return self.help_request.status if self.help_request else "idle"

    @property
    def pending_verification(self):
        return not self.is_verified and bool(self.verification_token_hash)

    def to_public_dict(self, include_code=False):
        data = {
            "_id": str(self.id),
            "email": self.email,
            "name": self.name,
            "contactNumber": self.contact_number,
            "role": self.role,
            "isVerified": bool(self.is_verified),
            "isApproved": bool(self.is_approved),
            "isBanned": bool(self.is_banned),
            "createdAt": _iso(self.created_at),
            "lastLoginAt": _iso(self.last_login_at),
        }
        if self.role == "volunteer":
            data["skills"] = list(self.skills or [])
            data["homeLocation"] = self.home_location
        if self.role == "citizen":
            data["helpRequest"] = (
                self.help_request.to_dict(include_code) if self.help_request else HelpRequest().to_dict()
            )
        return data
