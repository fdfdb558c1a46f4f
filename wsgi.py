# wsgi.py
import logging
import os

from app import create_app

app = create_app()

# Under gunicorn, send app.logger through gunicorn's handlers
_gunicorn_logger = logging.getLogger("gunicorn.error")
if _gunicorn_logger.handlers:
    app.logger.handlers = _gunicorn_logger.handlers
    app.logger.setLevel(_gunicorn_logger.level)

# Local dev only: `python wsgi.py`
if __name__ == "__main__":
    port = int(os.getenv("PORT", "8080"))
    app.run(host="0.0.0.0", port=port)
