"""
Help Request State Machine

A citizen carries exactly one embedded help request whose status moves
idle -> open -> assigned -> completed, and back to idle on cancel, admin
cancel or expiry. Writes are conditional on the status the caller saw,
so a transition never lands on a request that changed underneath it.
"""

import datetime
import logging

from db import HELP_CATEGORIES, LOCATIONS, HelpRequest, User
from services.accounts import find_account
from services.clock import parse_schedule
from services.errors import (
    CancelWindowClosed,
    Conflict,
    Forbidden,
    NoActiveRequest,
    NotFound,
    ValidationFailed,
)

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("title", "description", "location", "requested_date", "requested_time")
ACTIVE_STATES = ("open", "assigned")


def _text(fields, name):
    value = fields.get(name)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValidationFailed(f"Invalid value for {name}", fields=[name])
    return value.strip()


class HelpRequestService:
    def __init__(
        self,
        clock,
        min_advance=datetime.timedelta(hours=3),
        cancel_cutoff=datetime.timedelta(hours=2),
    ):
        self.clock = clock
        self.min_advance = min_advance
        self.cancel_cutoff = cancel_cutoff

    # ---------------- CITIZEN ------------------

    def request(self, citizen, fields):
        """Open a new help request (idle or completed -> open)."""
        if citizen.role != "citizen":
            raise Forbidden("Only citizens can request help")

        values = {name: _text(fields, name) for name in REQUIRED_FIELDS}
        missing = [name for name, value in values.items() if not value]
        if missing:
            raise ValidationFailed("Missing required fields", fields=missing)

        if values["title"] not in HELP_CATEGORIES:
            raise ValidationFailed("Unknown help category")
        if values["location"] not in LOCATIONS:
            raise ValidationFailed("Unknown location")

        try:
            scheduled = parse_schedule(values["requested_date"], values["requested_time"])
        except ValueError:
            raise ValidationFailed("Invalid date or time")

        now = self.clock.now()
        if scheduled < now + self.min_advance:
            hours = int(self.min_advance.total_seconds() // 3600)
            raise ValidationFailed(f"Help must be requested at least {hours} hours in advance")

        help_request = HelpRequest(
            status="open",
            title=values["title"],
            description=values["description"],
            note=_text(fields, "note") or None,
            location=values["location"],
            requested_date=values["requested_date"],
            requested_time=values["requested_time"],
            created_at=now,
            assignment=None,
        )

        opened = User.objects(
            pk=citizen.id, help_request__status__nin=list(ACTIVE_STATES)
        ).update_one(set__help_request=help_request)
        if not opened:
            raise Conflict("You already have an active help request")

        citizen.help_request = help_request
        logger.info("Help request opened by %s for %s %s",
                    citizen.email, help_request.requested_date, help_request.requested_time)
        return help_request

    def cancel(self, citizen):
        """
        Citizen cancel. Unassigned requests always cancel; assigned ones only
        while more than the cutoff remains before the scheduled time.
        """
        citizen.reload()
        state = citizen.help_state
        if state == "idle":
            raise NoActiveRequest()

        if state == "assigned" and not self.cancel_allowed(citizen.help_request):
            raise CancelWindowClosed()

        if not self._clear(citizen, state):
            raise Conflict("Help request changed, please try again")

    def cancel_allowed(self, help_request):
        try:
            scheduled = parse_schedule(help_request.requested_date, help_request.requested_time)
        except ValueError:
            # unparseable schedule never blocks a cancel
            return True
        return self.clock.now() < scheduled - self.cancel_cutoff

    # ---------------- ADMIN ------------------

    def admin_cancel(self, citizen_id):
        citizen = find_account(citizen_id)
        if citizen is None or citizen.role != "citizen":
            raise NotFound("Help request not found")
        if citizen.help_state == "idle":
            raise NoActiveRequest()

        User.objects(pk=citizen.id).update_one(set__help_request=HelpRequest())
        logger.info("Help request of %s cancelled by admin", citizen.email)
        citizen.help_request = HelpRequest()
        return citizen

    def list_active(self):
        return list(User.objects(
            role="citizen", help_request__status__in=["open", "assigned", "completed"]
        ))

    # ---------------- VOLUNTEER ------------------

    def list_open_or_mine(self, volunteer, location=None):
        """
        Open requests whose scheduled time has not passed, followed by the
        volunteer's own accepted and unfinished request.
        """
        now = self.clock.now()
        query = {"role": "citizen", "help_request__status": "open"}
        if location:
            query["help_request__location"] = location

        available = []
        for citizen in User.objects(**query):
            help_request = citizen.help_request
            try:
                scheduled = parse_schedule(help_request.requested_date, help_request.requested_time)
            except ValueError:
                continue
            if scheduled >= now:
                available.append(citizen)

        mine = User.objects(
            role="citizen",
            help_request__status="assigned",
            help_request__assignment__volunteer_id=str(volunteer.id),
        )
        return available + list(mine)

    def _clear(self, citizen, expected_state):
        cleared = User.objects(
            pk=citizen.id, help_request__status=expected_state
        ).update_one(set__help_request=HelpRequest())
        if cleared:
            citizen.help_request = HelpRequest()
        return bool(cleared)
