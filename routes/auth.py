# routes/auth.py
from __future__ import annotations

from flask import Blueprint, Response, current_app, g, jsonify, make_response, request
from flask_wtf.csrf import generate_csrf

from auth_guard import issue_session_token, require_role, session_cookie_name
from limiter import limiter
from services.captcha import issue_captcha
from services.step_up import (
    MfaPhaseInput,
    MfaRequired,
    PasswordPhaseInput,
    disable_mfa,
    enable_mfa,
    mfa_phase,
    password_phase,
    setup_mfa,
)

__all__ = ["auth_bp", "require_role"]
auth_bp = Blueprint("auth", __name__, url_prefix="/auth")


# -------------------------------------------------------------------
# Middleware
# -------------------------------------------------------------------
@auth_bp.after_request
def add_no_store(resp):
    resp.headers["Cache-Control"] = "no-store"
    return resp


def _body() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _session_response(user, status: int = 200):
    """Issue the session cookie for a fully authenticated user."""
    resp = make_response(jsonify(success=True, user=user.to_public()), status)
    resp.set_cookie(
        session_cookie_name(),
        issue_session_token(user),
        max_age=int(current_app.config["JWT_TTL_HOURS"]) * 3600,
        httponly=True,
        secure=current_app.config.get("SESSION_COOKIE_SECURE", False),
        samesite="Strict",
    )
    current_app.logger.info("[auth] session issued uid=%s role=%s", user.id, user.role)
    return resp


# -------------------------------------------------------------------
# Challenges
# -------------------------------------------------------------------
@auth_bp.route("/captcha", methods=["GET"])
def captcha():
    return Response(issue_captcha(), mimetype="image/png")


@auth_bp.route("/csrf-token", methods=["GET"])
def csrf_token():
    return jsonify(csrfToken=generate_csrf()), 200


# -------------------------------------------------------------------
# Login (password phase, then MFA phase)
# -------------------------------------------------------------------
@auth_bp.route("/login", methods=["POST"])
@limiter.limit(lambda: current_app.config["LOGIN_RATE_LIMIT"])
def login():
    """
    Body: { email, password, captcha }
    -> session cookie, or { mfaRequired: true, tempToken } when 2FA is on.
    """
    data = _body()
    result = password_phase(PasswordPhaseInput(
        email=str(data.get("email") or ""),
        password=str(data.get("password") or ""),
        captcha=str(data.get("captcha") or ""),
    ))

    if isinstance(result, MfaRequired):
        return jsonify(success=True, mfaRequired=True, tempToken=result.challenge_token), 200
    return _session_response(result.user)


@auth_bp.route("/login/verify-mfa", methods=["POST"])
@limiter.limit(lambda: current_app.config["LOGIN_RATE_LIMIT"])
def login_verify_mfa():
    """Body: { tempToken, code } -> session cookie."""
    data = _body()
    result = mfa_phase(MfaPhaseInput(
        challenge_token=str(data.get("tempToken") or ""),
        code=str(data.get("code") or ""),
    ))
    return _session_response(result.user)


@auth_bp.route("/logout", methods=["POST"])
def logout():
    resp = make_response(jsonify(success=True), 200)
    resp.delete_cookie(session_cookie_name(), httponly=True, samesite="Strict")
    return resp


@auth_bp.route("/me", methods=["GET"])
@require_role()
def me():
    return jsonify(success=True, user=g.user.to_public()), 200


# -------------------------------------------------------------------
# MFA enrollment (authenticated)
# -------------------------------------------------------------------
@auth_bp.route("/mfa/setup", methods=["POST"])
@require_role()
def mfa_setup():
    enrollment = setup_mfa(g.user)
    return jsonify(
        success=True,
        secret=enrollment.secret,
        otpauthUrl=enrollment.otpauth_uri,
        qrCode=f"data:image/png;base64,{enrollment.qr_code_png}",
    ), 200


@auth_bp.route("/mfa/enable", methods=["POST"])
@require_role()
def mfa_enable():
    enable_mfa(g.user, str(_body().get("code") or ""))
    return jsonify(success=True, mfaEnabled=True), 200


@auth_bp.route("/mfa/disable", methods=["POST"])
@require_role()
def mfa_disable():
    disable_mfa(g.user, str(_body().get("code") or ""))
    return jsonify(success=True, mfaEnabled=False), 200
