"""
Centralized exception handling for BusTrack API.

This module provides:
- Base APIException class extending FastAPI's HTTPException.
- Custom domain-specific exceptions with appropriate status codes and headers.
- Utility functions for formatting DB errors, logging, and routing exceptions.

Usage:
    - Raise specific exceptions in route handlers or services.
    - Use `handle()` to normalize raw exceptions (DB, Redis, Pydantic) into API-friendly responses.
"""

from traceback import format_exception
from logging import getLogger
from fastapi import status, HTTPException
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from psycopg2.errorcodes import UNIQUE_VIOLATION
from pydantic import ValidationError
from redis.exceptions import RedisError
from sqlalchemy import Column


# ---------------------------------------------------------------------------
# Utility functions
# ---------------------------------------------------------------------------
def formatIntegrityError(e: IntegrityError) -> str:
    """
    Format a database integrity error into a user-friendly message.

    PostgreSQL exposes the offending key through `diag.message_detail`,
    other drivers only through the message text.
    """
    diag = getattr(e.orig, "diag", None)
    errorMessage: str = getattr(diag, "message_detail", None) or str(e.orig)
    errorMessage = errorMessage.translate({ord(i): None for i in '\\"\\.\\(\\)'})
    errorMessage = errorMessage.replace("Key ", "For ")
    errorMessage = errorMessage.replace("=", " value ")
    return errorMessage


def integrityErrorCode(e: IntegrityError) -> str | None:
    """
    Return the SQLSTATE code of an integrity error.

    SQLite reports violations without SQLSTATE, so its unique violations are
    recognised by their message.
    """
    code = getattr(e.orig, "pgcode", None)
    if code is None and "UNIQUE constraint failed" in str(e.orig):
        code = UNIQUE_VIOLATION
    return code


def logException(e: Exception) -> None:
    """Log an exception with traceback using Uvicorn's error logger."""
    detail = str(format_exception(type(e), e, e.__traceback__))
    logger = getLogger("uvicorn.error")
    logger.error(detail)


# ---------------------------------------------------------------------------
# Base Exception
# ---------------------------------------------------------------------------
class APIException(HTTPException):
    """
    Base class for all application-specific exceptions.

    Provides default handling of status_code, detail, and headers.
    """

    status_code = status.HTTP_400_BAD_REQUEST
    detail = None
    headers = None

    def __init__(self, *args, **kwargs):
        kwargs.setdefault("status_code", self.status_code)
        kwargs.setdefault("detail", self.detail)
        kwargs.setdefault("headers", self.headers)
        super().__init__(*args, **kwargs)


# ---------------------------------------------------------------------------
# Exception handling entrypoint
# ---------------------------------------------------------------------------
def handle(e: Exception):
    """
    Normalize and re-raise exceptions as API-friendly errors.

    Converts raw exceptions from DB, Pydantic, Redis, etc. into
    corresponding APIException subclasses.
    """
    if isinstance(e, APIException):
        raise e
    if isinstance(e, IntegrityError):
        code = integrityErrorCode(e)
        if code == UNIQUE_VIOLATION:
            raise UniqueViolation(formatIntegrityError(e))
    if isinstance(e, ValidationError):
        raise PydanticError(detail=e.errors())
    if isinstance(e, RedisError):
        raise RedisDBError(detail=str(e))

    logException(e)
    if isinstance(e, SQLAlchemyError):
        raise DatabaseError()
    raise e


# ---------------------------------------------------------------------------
# Exception Classes
# ---------------------------------------------------------------------------
class PydanticError(APIException):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    headers = {"X-Error": "PydanticError"}

    def __init__(self, detail: str):
        super().__init__(detail=detail)


class UniqueViolation(APIException):
    status_code = status.HTTP_409_CONFLICT
    headers = {"X-Error": "UniqueViolation"}

    def __init__(self, detail: str):
        super().__init__(detail=detail)


class DuplicateValue(APIException):
    status_code = status.HTTP_409_CONFLICT
    headers = {"X-Error": "DuplicateValue"}

    def __init__(self, column_name: Column):
        detail = f"The {column_name.name} already exists"
        super().__init__(detail=detail)


class UnknownValue(APIException):
    status_code = status.HTTP_404_NOT_FOUND
    headers = {"X-Error": "UnknownValue"}

    def __init__(self, column_name: Column):
        detail = f"Invalid {column_name.name} is provided"
        super().__init__(detail=detail)


class InvalidValue(APIException):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    headers = {"X-Error": "InvalidValue"}

    def __init__(self, column_name: Column):
        detail = f"Invalid {column_name.name} is provided"
        super().__init__(detail=detail)


class InvalidCredentials(APIException):
    status_code = status.HTTP_401_UNAUTHORIZED
    detail = "Invalid username or password"
    headers = {"X-Error": "InvalidCredentials"}


class InactiveAccount(APIException):
    status_code = status.HTTP_412_PRECONDITION_FAILED
    detail = "The account is not in active status"
    headers = {"X-Error": "InactiveAccount"}


class InvalidToken(APIException):
    status_code = status.HTTP_401_UNAUTHORIZED
    detail = "Invalid token"
    headers = {"X-Error": "InvalidToken"}


class NoPermission(APIException):
    status_code = status.HTTP_403_FORBIDDEN
    detail = "This user has no permission to perform this action"
    headers = {"X-Error": "NoPermission"}


class InvalidIdentifier(APIException):
    status_code = status.HTTP_404_NOT_FOUND
    detail = "Invalid ID provided"
    headers = {"X-Error": "InvalidIdentifier"}


class InvalidStateTransition(APIException):
    status_code = status.HTTP_403_FORBIDDEN
    headers = {"X-Error": "InvalidStateTransition"}

    def __init__(self, column_name: Column):
        detail = f"The {column_name.name} cannot be set to the provided value"
        super().__init__(detail=detail)


class FinalizedSchedule(APIException):
    status_code = status.HTTP_403_FORBIDDEN
    headers = {"X-Error": "FinalizedSchedule"}

    def __init__(self, state_name: str):
        detail = f"The schedule is already {state_name.lower()}"
        super().__init__(detail=detail)


class InvalidOperator(APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    detail = "Cannot assign admin as bus operator"
    headers = {"X-Error": "InvalidOperator"}


class DataInUse(APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    headers = {"X-Error": "DataInUse"}

    def __init__(self, orm_class):
        detail = f"The {orm_class.__name__} is currently in use"
        super().__init__(detail=detail)


class MissingParameter(APIException):
    status_code = status.HTTP_406_NOT_ACCEPTABLE
    headers = {"X-Error": "MissingParameter"}

    def __init__(self, column_name: Column):
        detail = f"The {column_name.name} is missing"
        super().__init__(detail=detail)


class LockAcquireTimeout(APIException):
    status_code = status.HTTP_406_NOT_ACCEPTABLE
    headers = {"X-Error": "LockAcquireTimeout"}
    detail = "Lock acquisition timed out"


class DatabaseError(APIException):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    headers = {"X-Error": "DatabaseError"}
    detail = "Internal server error"


class RedisDBError(APIException):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    headers = {"X-Error": "RedisAPIError"}

    def __init__(self, detail: str):
        super().__init__(detail=detail)
