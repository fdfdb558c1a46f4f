# csrf.py
"""
Session-scoped anti-forgery token.

Flask-WTF keeps the raw secret in the signed session cookie and validates
the signed token echoed back in ``X-XSRF-TOKEN`` on every state-changing
request. The readable ``XSRF-TOKEN-V2`` cookie hands the token to the browser
client, which copies it into the header.
"""
from __future__ import annotations

from flask import Flask, current_app, jsonify, request
from flask_wtf.csrf import CSRFError, CSRFProtect, generate_csrf

from errors import CsrfRejected

csrf = CSRFProtect()


def init_csrf(app: Flask) -> None:
    app.config["WTF_CSRF_HEADERS"] = [app.config["CSRF_HEADER_NAME"]]
    csrf.init_app(app)

    @app.after_request
    def _set_csrf_cookie(resp):
        if not app.config.get("WTF_CSRF_ENABLED", True):
            return resp
        resp.set_cookie(
            app.config["CSRF_COOKIE_NAME"],
            generate_csrf(),
            secure=app.config.get("SESSION_COOKIE_SECURE", False),
            httponly=False,  # the client must read it
            samesite="Strict",
        )
        return resp

    @app.errorhandler(CSRFError)
    def _csrf_rejected(e: CSRFError):
        current_app.logger.warning(
            "[csrf] rejected %s %s ip=%s reason=%s",
            request.method, request.path, request.remote_addr, e.description,
        )
        err = CsrfRejected()
        return jsonify(err.to_dict()), err.status_code
