from flask import Blueprint, jsonify, request

from db import User
from routes.guards import get_service, role_required
from services.accounts import find_account
from services.errors import NotFound

# =========================
# Blueprint
# =========================
admin_bp = Blueprint("admin", __name__, url_prefix="/api/admin")


def _users(accounts):
    return [a.to_public_dict() for a in accounts]


# =========================
# Volunteer Approval
# =========================

@admin_bp.route("/volunteers/pending", methods=["GET"])
@role_required("admin")
def pending_volunteers():
    volunteers = get_service("accounts").list_pending_volunteers()
    return jsonify({"success": True, "volunteers": _users(volunteers)})


@admin_bp.route("/volunteers/<account_id>/approve", methods=["PATCH"])
@role_required("admin")
def approve_volunteer(account_id):
    volunteer = get_service("accounts").approve_volunteer(account_id)
    return jsonify({"success": True, "volunteer": volunteer.to_public_dict()})


@admin_bp.route("/volunteers/<account_id>", methods=["DELETE"])
@role_required("admin")
def reject_volunteer(account_id):
    get_service("accounts").reject_volunteer(account_id)
    return jsonify({"success": True, "message": "Volunteer deleted"})


# =========================
# Users
# =========================

@admin_bp.route("/users", methods=["GET"])
@role_required("admin")
def list_users():
    role = (request.args.get("role") or "").lower()
    users = get_service("accounts").list_by_role(role)
    return jsonify({"success": True, "users": _users(users)})


@admin_bp.route("/users/<account_id>", methods=["DELETE"])
@role_required("admin")
def delete_user(account_id):
    get_service("accounts").delete_account(account_id)
    return jsonify({"success": True, "message": "User deleted"})


@admin_bp.route("/users/banned", methods=["GET"])
@role_required("admin")
def banned_users():
    users = get_service("accounts").list_banned(
        category=request.args.get("category"),
        search=request.args.get("search"),
    )
    return jsonify({"success": True, "users": _users(users)})


@admin_bp.route("/users/<account_id>/ban", methods=["PATCH"])
@role_required("admin")
def ban_user(account_id):
    get_service("accounts").ban(account_id)
    return jsonify({"success": True, "message": "User has been banned"})


@admin_bp.route("/users/<account_id>/unban", methods=["PATCH"])
@role_required("admin")
def unban_user(account_id):
    get_service("accounts").unban(account_id)
    return jsonify({"success": True, "message": "User has been unbanned"})


# =========================
# Help Requests
# =========================

@admin_bp.route("/helps", methods=["GET"])
@role_required("admin")
def list_helps():
    citizens = get_service("help_requests").list_active()
    return jsonify({"success": True, "helps": _users(citizens)})


@admin_bp.route("/helps/<account_id>/complete", methods=["PATCH"])
@role_required("admin")
def complete_help(account_id):
    citizen = find_account(account_id)
    if citizen is None or citizen.role != "citizen":
        raise NotFound("Help request not found")

    get_service("assignment").complete(citizen.email, is_admin=True)
    return jsonify({"success": True, "message": "Help request marked as completed successfully"})


@admin_bp.route("/helps/<account_id>/cancel", methods=["PATCH"])
@role_required("admin")
def cancel_help(account_id):
    get_service("help_requests").admin_cancel(account_id)
    return jsonify({"success": True, "message": "Help cancelled"})


@admin_bp.route("/check-expired-requests", methods=["POST"])
@role_required("admin")
def check_expired():
    expired = get_service("sweeper").sweep()
    return jsonify({
        "success": True,
        "message": "Expired requests check completed",
        "expired": expired,
        "openRequests": User.objects(role="citizen", help_request__status="open").count(),
    })
