"""
Assignment Protocol

accept() claims an open request with one conditional update, so of any
number of volunteers racing for the same request exactly one wins.
complete() checks the completion code inside the same conditional write.
"""

import logging
import secrets

from db import Assignment, User
from services.errors import (
    AlreadyAssigned,
    Forbidden,
    InvalidCode,
    NoActiveRequest,
    NotFound,
    NoVolunteerAssigned,
)

logger = logging.getLogger(__name__)


def generate_completion_code():
    return str(100000 + secrets.randbelow(900000))


class AssignmentService:
    def __init__(self, clock, notifier):
        self.clock = clock
        self.notifier = notifier

    def accept(self, citizen_email, volunteer_name, volunteer_contact, volunteer_id):
        citizen = User.objects(email=citizen_email, role="citizen").first()
        if citizen is None:
            raise NotFound("Help request not found")

        assignment = Assignment(
            volunteer_name=volunteer_name,
            volunteer_contact=volunteer_contact,
            volunteer_id=str(volunteer_id),
            is_accepted=True,
            completion_code=generate_completion_code(),
            accepted_at=self.clock.now(),
        )

        claimed = User.objects(pk=citizen.id, help_request__status="open").update_one(
            set__help_request__status="assigned",
            set__help_request__assignment=assignment,
        )
        if not claimed:
            citizen.reload()
            if citizen.help_state in ("assigned", "completed"):
                raise AlreadyAssigned()
            raise NoActiveRequest()

        citizen.reload()
        logger.info("Help request of %s accepted by volunteer %s", citizen.email, volunteer_id)
        self.notifier.request_accepted(citizen, citizen.help_request)
        return citizen.help_request

    def complete(self, citizen_email, code=None, is_admin=False, volunteer_id=None):
        """
        Mark an assigned request completed. Volunteers need the citizen's code
        and, when volunteer_id is given, must be the one who accepted it.
        """
        citizen = User.objects(email=citizen_email, role="citizen").first()
        if citizen is None:
            raise NotFound("User not found")

        if citizen.help_state not in ("open", "assigned"):
            raise NoActiveRequest()

        help_request = citizen.help_request
        if not help_request.is_accepted:
            raise NoVolunteerAssigned()
        if volunteer_id is not None and help_request.assignment.volunteer_id != str(volunteer_id):
            raise Forbidden("This help request is assigned to another volunteer")

        code = str(code).strip() if code is not None else None
        if not is_admin and help_request.assignment.completion_code != code:
            raise InvalidCode()

        query = {"pk": citizen.id, "help_request__status": "assigned"}
        if not is_admin:
            query["help_request__assignment__completion_code"] = code
        if volunteer_id is not None:
            query["help_request__assignment__volunteer_id"] = str(volunteer_id)

        completed = User.objects(**query).update_one(
            set__help_request__status="completed",
            set__help_request__assignment__completed_at=self.clock.now(),
        )
        if not completed:
            raise NoActiveRequest()

        citizen.reload()
        logger.info("Help request of %s completed%s", citizen.email, " by admin" if is_admin else "")
        self.notifier.request_completed(citizen, citizen.help_request)
        return citizen.help_request
