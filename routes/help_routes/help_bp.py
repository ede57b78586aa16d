from flask import Blueprint, jsonify, request
from flask_login import current_user

from routes.guards import get_service, json_body, role_required
from services.errors import ValidationFailed

# =========================
# Blueprint
# =========================
help_bp = Blueprint("help", __name__, url_prefix="/api/help")


def _request_fields(data):
    return {
        "title": data.get("title") or data.get("helptitle"),
        "description": data.get("description") or data.get("helpdescription"),
        "note": data.get("note") or data.get("additional"),
        "location": data.get("location"),
        "requested_date": data.get("date") or data.get("helpdate"),
        "requested_time": data.get("time") or data.get("helptime"),
    }


def _summary(citizen):
    """What a volunteer gets to see of a citizen's request."""
    return {
        "citizenId": str(citizen.id),
        "email": citizen.email,
        "name": citizen.name,
        "contactNumber": citizen.contact_number,
        "helpRequest": citizen.help_request.to_dict(),
    }


# =========================
# Citizen
# =========================

@help_bp.route("/requests/mine", methods=["GET"])
@role_required("citizen")
def my_request():
    current_user.reload()
    return jsonify({
        "success": True,
        "helpRequest": current_user.to_public_dict(include_code=True)["helpRequest"],
    })


@help_bp.route("/requests", methods=["POST"])
@role_required("citizen")
def open_request():
    citizen = current_user._get_current_object()
    help_request = get_service("help_requests").request(citizen, _request_fields(json_body()))

    return jsonify({
        "success": True,
        "message": "Help request submitted successfully",
        "helpRequest": help_request.to_dict(),
    }), 201


@help_bp.route("/requests", methods=["DELETE"])
@role_required("citizen")
def cancel_request():
    get_service("help_requests").cancel(current_user._get_current_object())
    return jsonify({"success": True, "message": "Help request cancelled successfully"})


# =========================
# Volunteer
# =========================

@help_bp.route("/requests", methods=["GET"])
@role_required("volunteer")
def list_requests():
    citizens = get_service("help_requests").list_open_or_mine(
        current_user, location=request.args.get("location")
    )
    return jsonify({"success": True, "data": [_summary(c) for c in citizens]})


@help_bp.route("/requests/accept", methods=["POST"])
@role_required("volunteer")
def accept_request():
    data = json_body()
    email = data.get("email")
    if not email:
        raise ValidationFailed("Citizen email is required")

    help_request = get_service("assignment").accept(
        email,
        data.get("volunteerName") or current_user.name,
        data.get("volunteerContact") or current_user.contact_number,
        current_user.id,
    )
    return jsonify({
        "success": True,
        "message": "Help request accepted successfully",
        "helpRequest": help_request.to_dict(),
    })


@help_bp.route("/requests/complete", methods=["POST"])
@role_required("volunteer")
def complete_request():
    data = json_body()
    email = data.get("email")
    if not email:
        raise ValidationFailed("Citizen email is required")

    get_service("assignment").complete(
        email, data.get("completionCode"), volunteer_id=current_user.id
    )
    return jsonify({"success": True, "message": "Help request marked as completed successfully"})
