# models/user.py
from __future__ import annotations
from datetime import datetime
from db import db
from sqlalchemy.sql import func
from werkzeug.security import generate_password_hash, check_password_hash

ROLES = ("buyer", "seller", "admin")


class User(db.Model):
    __tablename__ = "users"

    id               = db.Column(db.Integer, primary_key=True, autoincrement=True)
    name             = db.Column(db.String(80), nullable=False)
    email            = db.Column(db.String(254), nullable=False, unique=True, index=True)
    password_hash    = db.Column(db.String(255), nullable=False)
    role             = db.Column(db.Enum(*ROLES, name="user_role"), nullable=False, default="buyer", index=True)

    # ── Step-up auth ────────────────────────────────────────────────────────
    mfa_secret       = db.Column(db.String(32), nullable=True)
    mfa_enabled      = db.Column(db.Boolean, nullable=False, default=False)

    # ── Lockout ─────────────────────────────────────────────────────────────
    failed_login_attempts = db.Column(db.Integer, nullable=False, default=0)
    lock_until       = db.Column(db.DateTime, nullable=True)  # naive UTC

    created_at       = db.Column(db.DateTime, server_default=func.now(), nullable=False)
    updated_at       = db.Column(db.DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)

    # ── Helpers ─────────────────────────────────────────────────────────────
    def set_password(self, raw: str) -> None:
        self.password_hash = generate_password_hash(raw)

    def check_password(self, raw: str) -> bool:
        try:
            return check_password_hash(self.password_hash or "", raw or "")
        except Exception:
            return False

    def is_locked(self, now: datetime) -> bool:
        return self.lock_until is not None and self.lock_until > now

    def to_public(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "role": self.role,
            "mfaEnabled": bool(self.mfa_enabled),
        }
