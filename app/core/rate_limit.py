from slowapi import Limiter
from slowapi.util import get_remote_address

# Per-client-IP limiter; routes opt in with ``@limiter.limit(...)``
limiter = Limiter(key_func=get_remote_address)
