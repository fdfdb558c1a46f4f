# services/audit.py
"""
Append-only audit sink.

Security-relevant events are emitted at fixed points of the login and
settlement flows. The sink is looked up from ``app.extensions["audit_sink"]``
so storage can be swapped (tests use ``MemoryAuditSink``).

Public API:
  - audit(user_id, action, details)       -> emits through the app's sink
  - DbAuditSink / MemoryAuditSink
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional

from flask import current_app, has_request_context, request

from db import db
from models.activity_log import ActivityLog

# Actions
LOGIN_SUCCESS = "LOGIN_SUCCESS"
LOGIN_FAILED = "LOGIN_FAILED"
ACCOUNT_LOCKED = "ACCOUNT_LOCKED"
MFA_ENABLED = "MFA_ENABLED"
MFA_DISABLED = "MFA_DISABLED"
MFA_FAILED = "MFA_FAILED"
PAYMENT_FAILED = "PAYMENT_FAILED"
SECURITY_ALERT = "SECURITY_ALERT"
ORDER_PLACED = "ORDER_PLACED"
SIMULATED_PAYMENT = "SIMULATED_PAYMENT"


@dataclass(frozen=True)
class AuditEvent:
    user_id: Optional[int]
    action: str
    details: str
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None


def _request_meta() -> tuple[Optional[str], Optional[str]]:
    if not has_request_context():
        return None, None
    ua = (request.user_agent.string or "")[:255] or None
    return request.remote_addr, ua


class AuditSink:
    def emit(self, event: AuditEvent) -> None:
        raise NotImplementedError


class DbAuditSink(AuditSink):
    """
    Writes one ``activity_logs`` row per event in its own commit.
    Callers only emit when no other unit of work is pending on the session.
    """

    def emit(self, event: AuditEvent) -> None:
        try:
            db.session.add(ActivityLog(
                user_id=event.user_id,
                action=event.action,
                details=event.details[:500],
                ip_address=event.ip_address,
                user_agent=event.user_agent,
            ))
            db.session.commit()
        except Exception:
            db.session.rollback()
            current_app.logger.exception("[audit] failed to persist %s for uid=%s", event.action, event.user_id)
            raise


@dataclass
class MemoryAuditSink(AuditSink):
    events: List[AuditEvent] = field(default_factory=list)

    def emit(self, event: AuditEvent) -> None:
        self.events.append(event)

    def actions(self) -> List[str]:
        return [e.action for e in self.events]


def audit(user_id: Optional[int], action: str, details: str) -> AuditEvent:
    ip, ua = _request_meta()
    event = AuditEvent(user_id=user_id, action=action, details=details, ip_address=ip, user_agent=ua)

    log = current_app.logger.warning if action == SECURITY_ALERT else current_app.logger.info
    log("[audit] %s uid=%s ip=%s %s", action, user_id, ip or "-", details)

    current_app.extensions["audit_sink"].emit(event)
    return event
