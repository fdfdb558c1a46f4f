# services/captcha.py
"""
Human-verification challenge for the password phase of login.

Each challenge is a ``captcha_challenges`` row holding a peppered hash of the
answer and its expiry; the session only carries the row id. Redemption is a
conditional UPDATE on ``consumed``, so a challenge is single-use whatever the
outcome of the check, even when the client replays an old session cookie.
"""

from __future__ import annotations

import hashlib
import random
import secrets
from datetime import datetime, timedelta, timezone
from io import BytesIO

from flask import current_app, session
from PIL import Image, ImageDraw, ImageFont
from sqlalchemy import update

from db import db
from errors import InvalidCaptcha
from models.captcha_challenge import CaptchaChallenge

SESSION_KEY = "captcha"
ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"  # no 0/O, 1/I


def _random_text(length: int) -> str:
    return "".join(secrets.choice(ALPHABET) for _ in range(length))


def _hash_answer(answer: str) -> str:
    pepper = current_app.config["SECRET_KEY"]
    return hashlib.sha256((pepper + answer.strip().upper()).encode("utf-8")).hexdigest()


def _render_png(text: str) -> bytes:
    width, height = 30 * len(text) + 20, 50
    rng = random.Random()
    img = Image.new("RGB", (width, height), (246, 244, 238))
    draw = ImageDraw.Draw(img)
    font = ImageFont.load_default()

    for _ in range(6):
        draw.line(
            [(rng.randint(0, width), rng.randint(0, height)),
             (rng.randint(0, width), rng.randint(0, height))],
            fill=(rng.randint(120, 200),) * 3,
            width=1,
        )
    for i, ch in enumerate(text):
        draw.text(
            (12 + i * 30 + rng.randint(-3, 3), 18 + rng.randint(-6, 6)),
            ch,
            fill=(rng.randint(20, 90), rng.randint(20, 90), rng.randint(20, 90)),
            font=font,
        )

    buf = BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


def _now_utc() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def issue_captcha() -> bytes:
    """Mint a fresh challenge bound to the caller's session; returns the PNG."""
    now = _now_utc()
    text = _random_text(int(current_app.config["CAPTCHA_LENGTH"]))

    # Drop challenges nobody will redeem any more
    CaptchaChallenge.query.filter(CaptchaChallenge.expires_at < now).delete(synchronize_session=False)

    challenge = CaptchaChallenge(
        id=secrets.token_urlsafe(32),
        answer_hash=_hash_answer(text),
        expires_at=now + timedelta(seconds=int(current_app.config["CAPTCHA_TTL_SECONDS"])),
    )
    db.session.add(challenge)
    db.session.commit()

    session[SESSION_KEY] = challenge.id
    return _render_png(text)


def verify_captcha(answer: str | None) -> None:
    """Consume the session's challenge; raise InvalidCaptcha unless ``answer`` matches it."""
    challenge_id = session.pop(SESSION_KEY, None)
    challenge = db.session.get(CaptchaChallenge, challenge_id) if isinstance(challenge_id, str) else None
    if challenge is None:
        raise InvalidCaptcha()

    # Redeem before comparing: a replayed session cookie finds it consumed
    res = db.session.execute(
        update(CaptchaChallenge)
        .where(CaptchaChallenge.id == challenge.id, CaptchaChallenge.consumed.is_(False))
        .values(consumed=True)
    )
    db.session.commit()
    if res.rowcount != 1:
        current_app.logger.warning("[captcha] replayed challenge %s", challenge.id[:8])
        raise InvalidCaptcha()

    if challenge.expires_at <= _now_utc():
        raise InvalidCaptcha("Captcha expired, please try again")

    if not answer or not secrets.compare_digest(challenge.answer_hash, _hash_answer(answer)):
        raise InvalidCaptcha()
