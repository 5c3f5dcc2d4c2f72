from datetime import datetime
from enum import IntEnum
from typing import Optional, List
from fastapi import APIRouter, Depends, Query, status, Form
from sqlalchemy.orm.session import Session
from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel, Field, EmailStr

from app.api.cookie import cookie_state
from app.src.constants import REGEX_PASSWORD, REGEX_USERNAME
from app.src.db import User, sessionMaker
from app.src import argon2, exceptions, validators, getters, schemas
from app.src.enums import Action, OrderIn, Resource, UserRole
from app.src.loggers import logEvent
from app.src.functions import enumStr, fuseExceptionResponses, updateIfChanged
from app.src.urls import URL_ACCOUNT

route_admin = APIRouter()


## Output Schema
class UserSchema(BaseModel):
    id: int
    username: str
    user_role: int
    first_name: str
    last_name: str
    email: str
    nic: str
    status: bool
    updated_on: Optional[datetime]
    created_on: datetime


class UserResponse(BaseModel):
    message: str
    user: UserSchema


## Input Forms
class CreateForm(BaseModel):
    username: str = Field(
        Form(min_length=3, max_length=30, pattern=REGEX_USERNAME)
    )
    password: str = Field(Form(min_length=6, max_length=32, pattern=REGEX_PASSWORD))
    user_role: UserRole = Field(Form(description=enumStr(UserRole)))
    first_name: str = Field(Form(max_length=64))
    last_name: str = Field(Form(max_length=64))
    email: EmailStr = Field(
        Form(max_length=256, description="Email in RFC 5322 format")
    )
    nic: str = Field(Form(min_length=10, max_length=12))
    status: bool = Field(Form(default=True))


class UpdateForm(BaseModel):
    username: str = Field(Form(max_length=32))
    password: str | None = Field(
        Form(min_length=6, max_length=32, pattern=REGEX_PASSWORD, default=None)
    )
    user_role: UserRole | None = Field(
        Form(description=enumStr(UserRole), default=None)
    )
    first_name: str | None = Field(Form(max_length=64, default=None))
    last_name: str | None = Field(Form(max_length=64, default=None))
    email: EmailStr | None = Field(
        Form(max_length=256, default=None, description="Email in RFC 5322 format")
    )
    nic: str | None = Field(Form(min_length=10, max_length=12, default=None))
    status: bool | None = Field(Form(default=None))


class DeleteForm(BaseModel):
    username: str = Field(Form(max_length=32))


## Query Parameters
class OrderBy(IntEnum):
    id = 1
    username = 2
    updated_on = 3
    created_on = 4


class QueryParams(BaseModel):
    # filters
    username: str | None = Field(Query(default=None))
    user_role: UserRole | None = Field(
        Query(default=None, description=enumStr(UserRole))
    )
    first_name: str | None = Field(Query(default=None))
    last_name: str | None = Field(Query(default=None))
    nic: str | None = Field(Query(default=None))
    status: bool | None = Field(Query(default=None))
    # Ordering
    order_by: OrderBy = Field(Query(default=OrderBy.id, description=enumStr(OrderBy)))
    order_in: OrderIn = Field(Query(default=OrderIn.DESC, description=enumStr(OrderIn)))
    # Pagination
    offset: int = Field(Query(default=0, ge=0))
    limit: int = Field(Query(default=20, gt=0, le=100))


## Function
def checkDuplicates(session: Session, fParam: CreateForm | UpdateForm, user_id=None):
    """Raise DuplicateValue when an identifying field belongs to another user."""
    for column in [User.username, User.email, User.nic]:
        value = getattr(fParam, column.key, None)
        if value is None:
            continue
        query = session.query(User.id).filter(column == value)
        if user_id is not None:
            query = query.filter(User.id != user_id)
        if query.first() is not None:
            raise exceptions.DuplicateValue(column)


def updateUser(user: User, fParam: UpdateForm):
    updateIfChanged(
        user,
        fParam,
        [
            User.user_role.key,
            User.first_name.key,
            User.last_name.key,
            User.email.key,
            User.nic.key,
            User.status.key,
        ],
    )
    if fParam.password is not None:
        user.password = argon2.makePassword(fParam.password)


def searchUser(session: Session, qParam: QueryParams) -> List[User]:
    query = session.query(User)

    # Filters
    if qParam.username is not None:
        query = query.filter(User.username == qParam.username)
    if qParam.user_role is not None:
        query = query.filter(User.user_role == qParam.user_role)
    if qParam.first_name is not None:
        query = query.filter(User.first_name == qParam.first_name)
    if qParam.last_name is not None:
        query = query.filter(User.last_name == qParam.last_name)
    if qParam.nic is not None:
        query = query.filter(User.nic == qParam.nic)
    if qParam.status is not None:
        query = query.filter(User.status == qParam.status)

    # Ordering
    orderingAttribute = getattr(User, OrderBy(qParam.order_by).name)
    if qParam.order_in == OrderIn.ASC:
        query = query.order_by(orderingAttribute.asc())
    else:
        query = query.order_by(orderingAttribute.desc())

    # Pagination
    query = query.offset(qParam.offset).limit(qParam.limit)
    return query.all()


## API endpoints [Admin]
@route_admin.post(
    URL_ACCOUNT,
    tags=["Account"],
    response_model=UserResponse,
    status_code=status.HTTP_201_CREATED,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.NoPermission(),
            exceptions.InvalidValue(User.user_role),
            exceptions.DuplicateValue(User.username),
        ]
    ),
    description="""
    Creates a new admin or bus operator account.
    Only admins can create accounts.
    The username, email and NIC must not be used by another account.
    The password is stored as an Argon2 hash and never returned.
    Logs the account creation activity.
    """,
)
async def create_user(
    fParam: CreateForm = Depends(),
    cookie=Depends(cookie_state),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        caller = validators.identity(cookie, UserRole.ADMIN)
        validators.permission(caller.user_role, Resource.USER, Action.CREATE)
        validators.assignableRole(fParam.user_role)
        checkDuplicates(session, fParam)

        user = User(
            username=fParam.username,
            password=argon2.makePassword(fParam.password),
            user_role=fParam.user_role,
            first_name=fParam.first_name,
            last_name=fParam.last_name,
            email=fParam.email,
            nic=fParam.nic,
            status=fParam.status,
        )
        session.add(user)
        session.commit()
        session.refresh(user)

        userData = jsonable_encoder(user, exclude={"password"})
        logEvent(caller, request_info, userData)
        return {"message": "User created", "user": userData}
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_admin.patch(
    URL_ACCOUNT,
    tags=["Account"],
    response_model=UserResponse,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.NoPermission(),
            exceptions.InvalidIdentifier(),
            exceptions.DuplicateValue(User.email),
        ]
    ),
    description="""
    Updates an existing account, identified by its username.
    Only admins can update accounts.
    Supports partial updates, ex:- enabling or disabling an account through `status` only.
    The email and NIC must not be used by another account.
    Changes are saved only if the account data has been modified.
    Logs the account updating activity.
    """,
)
async def update_user(
    fParam: UpdateForm = Depends(),
    cookie=Depends(cookie_state),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        caller = validators.identity(cookie, UserRole.ADMIN)
        validators.permission(caller.user_role, Resource.USER, Action.UPDATE)
        validators.assignableRole(fParam.user_role)

        user = getters.user(fParam.username, session)
        if user is None:
            raise exceptions.InvalidIdentifier()
        checkDuplicates(session, fParam, user.id)

        updateUser(user, fParam)
        haveUpdates = session.is_modified(user)
        if haveUpdates:
            session.commit()
            session.refresh(user)

        userData = jsonable_encoder(user, exclude={"password"})
        if haveUpdates:
            logEvent(caller, request_info, userData)
        return {"message": "User updated", "user": userData}
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_admin.delete(
    URL_ACCOUNT,
    tags=["Account"],
    response_model=schemas.MessageResponse,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.NoPermission(),
            exceptions.InvalidIdentifier(),
        ]
    ),
    description="""
    Deletes an existing account, identified by its username.
    Only admins can delete accounts.
    Buses operated by the account keep their operator username.
    Logs the account deletion activity.
    """,
)
async def delete_user(
    fParam: DeleteForm = Depends(),
    cookie=Depends(cookie_state),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        caller = validators.identity(cookie, UserRole.ADMIN)
        validators.permission(caller.user_role, Resource.USER, Action.DELETE)

        user = getters.user(fParam.username, session)
        if user is None:
            raise exceptions.InvalidIdentifier()

        session.delete(user)
        session.commit()
        logEvent(caller, request_info, jsonable_encoder(user, exclude={"password"}))
        return {"message": "User deleted"}
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_admin.get(
    URL_ACCOUNT,
    tags=["Account"],
    response_model=List[UserSchema],
    responses=fuseExceptionResponses(
        [exceptions.InvalidToken(), exceptions.NoPermission()]
    ),
    description="""
    Fetches a list of accounts.
    Only admins can list accounts.
    Supports filtering by username, role, names, NIC and status.
    Returns an empty list when nothing matches.
    """,
)
async def fetch_users(qParam: QueryParams = Depends(), cookie=Depends(cookie_state)):
    try:
        session = sessionMaker()
        caller = validators.identity(cookie, UserRole.ADMIN)
        validators.permission(caller.user_role, Resource.USER, Action.READ)

        return searchUser(session, qParam)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()
