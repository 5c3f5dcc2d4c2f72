from fastapi import APIRouter, Depends, Response, status, Form
from pydantic import BaseModel, Field

from app.src.constants import (
    COOKIE_NAME,
    COOKIE_SECURE,
    REGEX_PASSWORD,
    TOKEN_VALIDITY,
)
from app.src.db import sessionMaker
from app.src import argon2, exceptions, getters, jwt, schemas
from app.src.loggers import logEvent
from app.src.functions import fuseExceptionResponses
from app.src.urls import URL_PASSWORD, URL_TOKEN

route_auth = APIRouter()


## Input Forms
class SignInForm(BaseModel):
    username: str = Field(Form(max_length=32))
    password: str = Field(Form(max_length=32))


class PasswordForm(BaseModel):
    username: str = Field(Form(max_length=32))
    previous_password: str = Field(Form(max_length=32))
    password: str = Field(Form(min_length=6, max_length=32, pattern=REGEX_PASSWORD))


## API endpoints [Auth]
@route_auth.post(
    URL_TOKEN,
    tags=["Authentication"],
    response_model=schemas.MessageResponse,
    responses=fuseExceptionResponses(
        [exceptions.InvalidCredentials(), exceptions.InactiveAccount()]
    ),
    description="""
    Signs in a user after validating the credentials.
    On success a signed state token is set as an `httpOnly` cookie, valid for TOKEN_VALIDITY seconds.
    Unknown usernames and wrong passwords are reported alike.
    Disabled accounts cannot sign in.
    Logs the sign in event for audit tracking.
    """,
)
async def sign_in(
    response: Response,
    fParam: SignInForm = Depends(),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        user = getters.user(fParam.username, session)
        if user is None:
            raise exceptions.InvalidCredentials()
        if not argon2.checkPassword(fParam.password, user.password):
            raise exceptions.InvalidCredentials()
        if not user.status:
            raise exceptions.InactiveAccount()

        response.set_cookie(
            key=COOKIE_NAME,
            value=jwt.makeToken(user),
            max_age=TOKEN_VALIDITY,
            httponly=True,
            secure=COOKIE_SECURE,
        )
        logEvent(getters.identity(user), request_info, {"action": "sign_in"})
        return {"message": "User signed in"}
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_auth.delete(
    URL_TOKEN,
    tags=["Authentication"],
    response_model=schemas.MessageResponse,
    description="""
    Signs out the current user by clearing the state token cookie.
    """,
)
async def sign_out(response: Response):
    response.delete_cookie(key=COOKIE_NAME, httponly=True, secure=COOKIE_SECURE)
    return {"message": "User signed out"}


@route_auth.patch(
    URL_PASSWORD,
    tags=["Authentication"],
    response_model=schemas.MessageResponse,
    status_code=status.HTTP_200_OK,
    responses=fuseExceptionResponses([exceptions.InvalidCredentials()]),
    description="""
    Replaces the password of a user, given the previous password.
    The new password is stored as an Argon2 hash.
    Logs the password change, the password itself is never logged.
    """,
)
async def reset_password(
    fParam: PasswordForm = Depends(),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        user = getters.user(fParam.username, session)
        if user is None:
            raise exceptions.InvalidCredentials()
        if not argon2.checkPassword(fParam.previous_password, user.password):
            raise exceptions.InvalidCredentials()

        user.password = argon2.makePassword(fParam.password)
        session.commit()

        logEvent(getters.identity(user), request_info, {"action": "password_reset"})
        return {"message": "Password updated"}
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()
