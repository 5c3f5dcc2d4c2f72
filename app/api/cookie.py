from fastapi.security import APIKeyCookie

from app.src.constants import COOKIE_NAME

# State token cookie, a missing cookie is reported by the validators as InvalidToken
cookie_state = APIKeyCookie(
    name=COOKIE_NAME, scheme_name="State token cookie", auto_error=False
)
