import datetime

import psutil
from flask import Blueprint, current_app, jsonify
from flask_login import current_user, login_required

from routes.guards import get_service, json_body
from services.errors import InvalidRefreshToken

# =========================
# Blueprint
# =========================
auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


# =========================
# Signup / Verification
# =========================

@auth_bp.route("/signup", methods=["POST"])
def signup():
    data = json_body()

    account, _ = get_service("accounts").signup(
        email=data.get("email"),
        password=data.get("password"),
        name=data.get("name"),
        contact_number=data.get("contactNumber") or data.get("contactno"),
        role=(data.get("role") or data.get("category") or "").lower(),
        skills=data.get("skills"),
        home_location=data.get("location"),
    )

    if account.role == "volunteer":
        message = "Volunteer registration successful. Please check your email to verify your account."
    else:
        message = "User created successfully. Please check your email to verify your account."

    return jsonify({"success": True, "message": message}), 201


@auth_bp.route("/verify-email", methods=["POST"])
def verify_email():
    account = get_service("accounts").verify_email(json_body().get("token"))

    if account.role == "volunteer" and not account.is_approved:
        return jsonify({
            "success": True,
            "message": "Email verified successfully. Your registration is pending admin approval.",
            "pendingApproval": True,
        })

    return jsonify({"success": True, "message": "Email verified successfully. You can now log in."})


# =========================
# Login / Logout / Refresh
# =========================

@auth_bp.route("/login", methods=["POST"])
def login():
    data = json_body()

    account = get_service("accounts").authenticate(data.get("email"), data.get("password"))
    tokens = get_service("sessions").issue_session(account.id)

    return jsonify({
        "success": True,
        "message": "Login successful",
        "user": account.to_public_dict(include_code=True),
        "sessionToken": tokens["session_token"],
        "refreshToken": tokens["refresh_token"],
        "pendingApproval": account.role == "volunteer" and not account.is_approved,
    })


@auth_bp.route("/logout", methods=["POST"])
@login_required
def logout():
    get_service("sessions").clear_session(current_user.id)
    return jsonify({"success": True, "message": "Logged out successfully"})


@auth_bp.route("/refresh-token", methods=["POST"])
def refresh_token():
    token = json_body().get("refreshToken")
    if not token:
        raise InvalidRefreshToken("No refresh token provided")

    tokens = get_service("sessions").refresh(token)
    return jsonify({
        "success": True,
        "message": "Token refreshed successfully",
        "sessionToken": tokens["session_token"],
        "refreshToken": tokens["refresh_token"],
    })


# =========================
# Password Reset
# =========================

@auth_bp.route("/forgot-password", methods=["POST"])
def forgot_password():
    get_service("accounts").forgot_password(json_body().get("email"))
    return jsonify({"success": True, "message": "Password reset email sent"})


@auth_bp.route("/reset-password/<token>", methods=["POST"])
def reset_password(token):
    get_service("accounts").reset_password(token, json_body().get("password"))
    return jsonify({"success": True, "message": "Password reset successful"})


# =========================
# Profile
# =========================

@auth_bp.route("/check-auth", methods=["GET"])
@auth_bp.route("/me", methods=["GET"])
@login_required
def me():
    return jsonify({"success": True, "user": current_user.to_public_dict(include_code=True)})


@auth_bp.route("/update-profile", methods=["PUT"])
@login_required
def update_profile():
    data = json_body()

    account = get_service("accounts").update_profile(
        current_user._get_current_object(),
        name=data.get("name"),
        contact_number=data.get("contactNumber") or data.get("contactno"),
        skills=data.get("skills"),
        home_location=data.get("location"),
    )
    return jsonify({
        "success": True,
        "message": "Profile updated successfully",
        "user": account.to_public_dict(include_code=True),
    })


# =========================
# Health
# =========================

@auth_bp.route("/health", methods=["GET"])
def health():
    sweeper = current_app.extensions["scan"]["sweeper"]
    return jsonify({
        "status": "healthy",
        "timestamp": datetime.datetime.now(datetime.timezone.utc).isoformat(),
        "service": "SCAN Backend",
        "server_load": psutil.cpu_percent(interval=None),
        "sweeper_running": sweeper.running,
    })
