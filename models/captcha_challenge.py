# models/captcha_challenge.py
from db import db
from sqlalchemy.sql import func

class CaptchaChallenge(db.Model):
    """Server-side record of an issued captcha; the session only holds its id."""
    __tablename__ = "captcha_challenges"
    id          = db.Column(db.String(64), primary_key=True)   # random opaque token
    answer_hash = db.Column(db.String(64), nullable=False)     # peppered sha256
    created_at  = db.Column(db.DateTime, server_default=func.now(), nullable=False)
    expires_at  = db.Column(db.DateTime, nullable=False, index=True)  # naive UTC
    consumed    = db.Column(db.Boolean, nullable=False, default=False)
