# models/mfa_challenge.py
from db import db
from sqlalchemy.sql import func

class MfaChallenge(db.Model):
    __tablename__ = "mfa_challenges"
    id         = db.Column(db.String(64), primary_key=True)   # random opaque token
    user_id    = db.Column(db.Integer, db.ForeignKey("users.id"), index=True, nullable=False)
    created_at = db.Column(db.DateTime, server_default=func.now(), nullable=False)
    expires_at = db.Column(db.DateTime, nullable=False)       # naive UTC
    consumed   = db.Column(db.Boolean, nullable=False, default=False)
    attempts   = db.Column(db.Integer, nullable=False, default=0)
    user = db.relationship("User")
