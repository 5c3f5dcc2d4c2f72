from datetime import datetime, timedelta, timezone
import jwt
from pydantic import ValidationError

from app.src import getters
from app.src.constants import JWT_ALGORITHM, JWT_SECRET, TOKEN_VALIDITY
from app.src.db import User
from app.src.schemas import Identity


def makeToken(user: User, validity: int = TOKEN_VALIDITY) -> str:
    """
    Sign a state token carrying the identity of the given user.

    Args:
        user (User): The authenticated account.
        validity (int): Token lifetime in seconds.

    Returns:
        str: The encoded JWT.
    """
    now = datetime.now(timezone.utc)
    payload = getters.identity(user).model_dump(mode="json", by_alias=True)
    payload["iat"] = now
    payload["exp"] = now + timedelta(seconds=validity)
    return jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALGORITHM)


def readToken(token: str) -> Identity | None:
    """
    Verify a state token and extract the identity it carries.

    Args:
        token (str): The encoded JWT taken from the cookie.

    Returns:
        Identity | None: The caller identity, or None if the token is expired,
        tampered with, or does not carry a well formed identity.
    """
    try:
        payload = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
        return Identity.model_validate(payload)
    except (jwt.InvalidTokenError, ValidationError):
        return None
