# limiter.py
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

# one shared instance for the whole app; limits come from RATELIMIT_* config
limiter = Limiter(get_remote_address)
