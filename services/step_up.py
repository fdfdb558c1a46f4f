# services/step_up.py
"""
Two-phase (step-up) login.

  PASSWORD phase  --(password ok, MFA off)-->  SessionGranted
                  --(password ok, MFA on)--->  MfaRequired(challenge_token)
  MFA phase       --(valid TOTP code)------->  SessionGranted

Failed passwords count towards a per-account lockout. Failed codes do not
consume the challenge, but a challenge is retired after
MFA_CHALLENGE_MAX_ATTEMPTS failures.

Enrollment (setup -> enable) and disable are separate authenticated calls.
"""

from __future__ import annotations

import re
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import pyotp
from flask import current_app
from sqlalchemy import update
from werkzeug.security import check_password_hash, generate_password_hash

from db import db
from errors import AccountLocked, BadRequest, InvalidCredentials, InvalidMfaCode
from models.mfa_challenge import MfaChallenge
from models.user import User
from services import audit as audit_events
from services.audit import audit
from services.captcha import verify_captcha
from utils.qr import qr_png_base64

_CODE_RE = re.compile(r"^\d{6}$")

# Hashed once so unknown accounts cost the same as a wrong password
_DUMMY_PASSWORD_HASH = generate_password_hash(secrets.token_hex(16))


def _now_utc() -> datetime:
    # Naive UTC: DateTime columns are stored without tzinfo
    return datetime.now(timezone.utc).replace(tzinfo=None)


# ---------- transition inputs / outputs ----------

@dataclass(frozen=True)
class PasswordPhaseInput:
    email: str
    password: str
    captcha: str


@dataclass(frozen=True)
class MfaPhaseInput:
    challenge_token: str
    code: str


@dataclass(frozen=True)
class SessionGranted:
    user: User


@dataclass(frozen=True)
class MfaRequired:
    challenge_token: str
    expires_at: datetime


@dataclass(frozen=True)
class MfaEnrollment:
    secret: str
    otpauth_uri: str
    qr_code_png: str  # base64


# ---------- helpers ----------

def _verify_totp(secret: str | None, code: str | None) -> bool:
    code = (code or "").strip()
    if not secret or not _CODE_RE.match(code):
        return False
    # valid_window=1 accepts the previous and next 30s step for clock drift
    return pyotp.TOTP(secret).verify(code, valid_window=1)


def _remaining_lock_seconds(user: User, now: datetime) -> int:
    return max(1, int((user.lock_until - now).total_seconds()))


def _record_failed_password(user: User, now: datetime) -> None:
    """Count a bad password, lock at the threshold. Always raises."""
    max_attempts = int(current_app.config["LOGIN_MAX_ATTEMPTS"])

    # Atomic increment; concurrent bad attempts must all count
    db.session.execute(
        update(User)
        .where(User.id == user.id)
        .values(failed_login_attempts=User.failed_login_attempts + 1)
    )
    db.session.commit()
    db.session.refresh(user)

    if user.failed_login_attempts >= max_attempts:
        user.lock_until = now + timedelta(minutes=int(current_app.config["LOGIN_LOCK_MINUTES"]))
        db.session.commit()
        audit(user.id, audit_events.ACCOUNT_LOCKED,
              f"Account locked after {user.failed_login_attempts} failed attempts")
        raise AccountLocked(locked=True, lockoutRemainingSeconds=_remaining_lock_seconds(user, now))

    audit(user.id, audit_events.LOGIN_FAILED, "Invalid password")
    raise InvalidCredentials(remainingAttempts=max_attempts - user.failed_login_attempts)


def _mint_challenge(user: User, now: datetime) -> MfaRequired:
    ttl = int(current_app.config["MFA_CHALLENGE_TTL_SECONDS"])
    challenge = MfaChallenge(
        id=secrets.token_urlsafe(32),
        user_id=user.id,
        expires_at=now + timedelta(seconds=ttl),
    )
    db.session.add(challenge)
    db.session.commit()
    return MfaRequired(challenge_token=challenge.id, expires_at=challenge.expires_at)


# ---------- password phase ----------

def password_phase(inp: PasswordPhaseInput) -> SessionGranted | MfaRequired:
    verify_captcha(inp.captcha)

    now = _now_utc()
    email = (inp.email or "").strip().lower()
    user = User.query.filter_by(email=email).first() if email else None
    if not user:
        check_password_hash(_DUMMY_PASSWORD_HASH, inp.password or "")
        audit(None, audit_events.LOGIN_FAILED, f"Unknown account {email[:80]!r}")
        raise InvalidCredentials()

    if user.is_locked(now):
        raise AccountLocked(
            f"Account locked. Try again in {(_remaining_lock_seconds(user, now) + 59) // 60} minute(s)",
            locked=True,
            lockoutRemainingSeconds=_remaining_lock_seconds(user, now),
        )

    if user.lock_until is not None:
        # Lock has run out: start counting again
        user.lock_until = None
        user.failed_login_attempts = 0
        db.session.commit()

    if not user.check_password(inp.password):
        _record_failed_password(user, now)

    user.failed_login_attempts = 0
    user.lock_until = None
    db.session.commit()

    if user.mfa_enabled:
        current_app.logger.info("[auth] password ok, MFA required uid=%s", user.id)
        return _mint_challenge(user, now)

    audit(user.id, audit_events.LOGIN_SUCCESS, "Password login")
    return SessionGranted(user=user)


# ---------- MFA phase ----------

def mfa_phase(inp: MfaPhaseInput) -> SessionGranted:
    now = _now_utc()
    token = (inp.challenge_token or "").strip()
    challenge = db.session.get(MfaChallenge, token) if token else None

    max_attempts = int(current_app.config["MFA_CHALLENGE_MAX_ATTEMPTS"])
    if (
        challenge is None
        or challenge.consumed
        or challenge.expires_at <= now
        or challenge.attempts >= max_attempts
    ):
        raise InvalidMfaCode("Invalid or expired session, please log in again")

    user = challenge.user
    if not (user.mfa_enabled and _verify_totp(user.mfa_secret, inp.code)):
        db.session.execute(
            update(MfaChallenge)
            .where(MfaChallenge.id == challenge.id)
            .values(attempts=MfaChallenge.attempts + 1)
        )
        db.session.commit()
        audit(user.id, audit_events.MFA_FAILED, "Invalid 2FA code at login")
        raise InvalidMfaCode()

    # Single redemption even under concurrent submits
    res = db.session.execute(
        update(MfaChallenge)
        .where(MfaChallenge.id == challenge.id, MfaChallenge.consumed.is_(False))
        .values(consumed=True)
    )
    db.session.commit()
    if res.rowcount != 1:
        raise InvalidMfaCode("Invalid or expired session, please log in again")

    audit(user.id, audit_events.LOGIN_SUCCESS, "Password + 2FA login")
    return SessionGranted(user=user)


# ---------- enrollment ----------

def setup_mfa(user: User) -> MfaEnrollment:
    if user.mfa_enabled:
        raise BadRequest("2FA is already enabled")

    secret = pyotp.random_base32()
    user.mfa_secret = secret
    db.session.commit()

    uri = pyotp.TOTP(secret).provisioning_uri(
        name=user.email, issuer_name=current_app.config["MFA_ISSUER"]
    )
    return MfaEnrollment(secret=secret, otpauth_uri=uri, qr_code_png=qr_png_base64(uri))


def enable_mfa(user: User, code: str | None) -> None:
    if user.mfa_enabled:
        raise BadRequest("2FA is already enabled")
    if not user.mfa_secret:
        raise BadRequest("Run 2FA setup first")
    if not _verify_totp(user.mfa_secret, code):
        raise InvalidMfaCode()

    user.mfa_enabled = True
    db.session.commit()
    audit(user.id, audit_events.MFA_ENABLED, "2FA enabled")


def disable_mfa(user: User, code: str | None) -> None:
    if not user.mfa_enabled:
        raise BadRequest("2FA is not enabled")
    if not _verify_totp(user.mfa_secret, code):
        raise InvalidMfaCode()

    user.mfa_enabled = False
    user.mfa_secret = None
    db.session.commit()
    audit(user.id, audit_events.MFA_DISABLED, "2FA disabled")
