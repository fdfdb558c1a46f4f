# models/activity_log.py
from db import db
from sqlalchemy.sql import func

class ActivityLog(db.Model):
    """Append-only audit trail; rows are never updated."""
    __tablename__ = "activity_logs"

    id         = db.Column(db.Integer, primary_key=True, autoincrement=True)
    user_id    = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    action     = db.Column(db.String(32), nullable=False, index=True)
    details    = db.Column(db.String(500), nullable=False, default="")
    ip_address = db.Column(db.String(64), nullable=True)
    user_agent = db.Column(db.String(255), nullable=True)
    created_at = db.Column(db.DateTime, server_default=func.now(), nullable=False)
