from datetime import datetime
from enum import IntEnum
from typing import List, Optional
from fastapi import APIRouter, Depends, Query, status, Form
from sqlalchemy.orm.session import Session
from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel, Field

from app.api.cookie import cookie_state
from app.src.db import Schedule, sessionMaker
from app.src import exceptions, validators, getters, schemas
from app.src.enums import (
    Action,
    ConfirmationStatus,
    Day,
    OrderIn,
    Resource,
    UserRole,
)
from app.src.loggers import logEvent
from app.src.redis import acquireLock, releaseLock
from app.src.workflows import FINAL_CONFIRMATION_STATES, SCHEDULE_CONFIRMATION
from app.src.functions import (
    enumStr,
    fuseExceptionResponses,
    promoteToParent,
    updateIfChanged,
)
from app.src.urls import URL_SCHEDULE, URL_SCHEDULE_CONFIRMATION

route_admin = APIRouter()
route_operator = APIRouter()
route_commuter = APIRouter()


## Output Schema
class ScheduleSchema(BaseModel):
    id: int
    schedule_id: str
    bus_id: str
    route_number: str
    day: int
    distance: str
    confirmation_status: int
    updated_on: Optional[datetime]
    created_on: datetime


class ScheduleResponse(BaseModel):
    message: str
    schedule: ScheduleSchema


## Input Forms
class CreateForm(BaseModel):
    schedule_id: str = Field(Form(max_length=32))
    bus_id: str = Field(Form(max_length=32))
    route_number: str = Field(Form(max_length=32))
    day: Day = Field(Form(description=enumStr(Day)))
    distance: str = Field(Form(max_length=32))


class UpdateForm(BaseModel):
    schedule_id: str = Field(Form(max_length=32))
    bus_id: str | None = Field(Form(max_length=32, default=None))
    route_number: str | None = Field(Form(max_length=32, default=None))
    day: Day | None = Field(Form(description=enumStr(Day), default=None))
    distance: str | None = Field(Form(max_length=32, default=None))


class DeleteForm(BaseModel):
    schedule_id: str = Field(Form(max_length=32))


class ConfirmationForm(BaseModel):
    schedule_id: str = Field(Form(max_length=32))
    confirmation_status: ConfirmationStatus = Field(
        Form(description=enumStr(ConfirmationStatus))
    )


## Query Parameters
class OrderBy(IntEnum):
    id = 1
    schedule_id = 2
    day = 3
    updated_on = 4
    created_on = 5


class QueryParamsForCM(BaseModel):
    # filters
    schedule_id: str | None = Field(Query(default=None))
    bus_id: str | None = Field(Query(default=None))
    route_number: str | None = Field(Query(default=None))
    day: Day | None = Field(Query(default=None, description=enumStr(Day)))
    distance: str | None = Field(Query(default=None))
    # Ordering
    order_by: OrderBy = Field(Query(default=OrderBy.id, description=enumStr(OrderBy)))
    order_in: OrderIn = Field(Query(default=OrderIn.DESC, description=enumStr(OrderIn)))
    # Pagination
    offset: int = Field(Query(default=0, ge=0))
    limit: int = Field(Query(default=20, gt=0, le=100))


class QueryParams(QueryParamsForCM):
    confirmation_status: ConfirmationStatus | None = Field(
        Query(default=None, description=enumStr(ConfirmationStatus))
    )


## Function
def validateReferences(session: Session, fParam: CreateForm | UpdateForm):
    if fParam.bus_id is not None and getters.bus(fParam.bus_id, session) is None:
        raise exceptions.UnknownValue(Schedule.bus_id)
    if (
        fParam.route_number is not None
        and getters.route(fParam.route_number, session) is None
    ):
        raise exceptions.UnknownValue(Schedule.route_number)


def updateSchedule(schedule: Schedule, fParam: UpdateForm):
    updateIfChanged(
        schedule,
        fParam,
        [
            Schedule.bus_id.key,
            Schedule.route_number.key,
            Schedule.day.key,
            Schedule.distance.key,
        ],
    )


def searchSchedule(session: Session, qParam: QueryParams) -> List[Schedule]:
    query = session.query(Schedule)

    # Filters
    if qParam.schedule_id is not None:
        query = query.filter(Schedule.schedule_id == qParam.schedule_id)
    if qParam.bus_id is not None:
        query = query.filter(Schedule.bus_id == qParam.bus_id)
    if qParam.route_number is not None:
        query = query.filter(Schedule.route_number == qParam.route_number)
    if qParam.day is not None:
        query = query.filter(Schedule.day == qParam.day)
    if qParam.distance is not None:
        query = query.filter(Schedule.distance == qParam.distance)
    if qParam.confirmation_status is not None:
        query = query.filter(Schedule.confirmation_status == qParam.confirmation_status)

    # Ordering
    orderingAttribute = getattr(Schedule, OrderBy(qParam.order_by).name)
    if qParam.order_in == OrderIn.ASC:
        query = query.order_by(orderingAttribute.asc())
    else:
        query = query.order_by(orderingAttribute.desc())

    # Pagination
    query = query.offset(qParam.offset).limit(qParam.limit)
    return query.all()


## API endpoints [Admin]
@route_admin.post(
    URL_SCHEDULE,
    tags=["Schedule"],
    response_model=ScheduleResponse,
    status_code=status.HTTP_201_CREATED,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.NoPermission(),
            exceptions.UnknownValue(Schedule.bus_id),
            exceptions.DuplicateValue(Schedule.schedule_id),
        ]
    ),
    description="""
    Creates a new schedule of a bus on a route.
    Only admins can create schedules.
    The bus and the route must exist, the schedule ID must be unique.
    The schedule waits in PENDING status for the operator's confirmation.
    Logs the schedule creation activity.
    """,
)
async def create_schedule(
    fParam: CreateForm = Depends(),
    cookie=Depends(cookie_state),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        caller = validators.identity(cookie, UserRole.ADMIN)
        validators.permission(caller.user_role, Resource.SCHEDULE, Action.CREATE)

        if getters.schedule(fParam.schedule_id, session) is not None:
            raise exceptions.DuplicateValue(Schedule.schedule_id)
        validateReferences(session, fParam)

        schedule = Schedule(
            schedule_id=fParam.schedule_id,
            bus_id=fParam.bus_id,
            route_number=fParam.route_number,
            day=fParam.day,
            distance=fParam.distance,
            confirmation_status=ConfirmationStatus.PENDING,
        )
        session.add(schedule)
        session.commit()
        session.refresh(schedule)

        scheduleData = jsonable_encoder(schedule)
        logEvent(caller, request_info, scheduleData)
        return {"message": "Schedule created successfully", "schedule": scheduleData}
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_admin.patch(
    URL_SCHEDULE,
    tags=["Schedule"],
    response_model=ScheduleResponse,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.NoPermission(),
            exceptions.InvalidIdentifier(),
            exceptions.UnknownValue(Schedule.route_number),
        ]
    ),
    description="""
    Updates an existing schedule, identified by its schedule ID.
    Only admins can update schedules, the confirmation status is left to the operators.
    A new bus or route must exist.
    Changes are saved only if the schedule data has been modified.
    Logs the schedule updating activity.
    """,
)
async def update_schedule(
    fParam: UpdateForm = Depends(),
    cookie=Depends(cookie_state),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        caller = validators.identity(cookie, UserRole.ADMIN)
        validators.permission(caller.user_role, Resource.SCHEDULE, Action.UPDATE)

        schedule = getters.schedule(fParam.schedule_id, session)
        if schedule is None:
            raise exceptions.InvalidIdentifier()
        validateReferences(session, fParam)

        updateSchedule(schedule, fParam)
        haveUpdates = session.is_modified(schedule)
        if haveUpdates:
            session.commit()
            session.refresh(schedule)

        scheduleData = jsonable_encoder(schedule)
        if haveUpdates:
            logEvent(caller, request_info, scheduleData)
        return {"message": "Schedule updated successfully", "schedule": scheduleData}
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_admin.delete(
    URL_SCHEDULE,
    tags=["Schedule"],
    response_model=schemas.MessageResponse,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.NoPermission(),
            exceptions.InvalidIdentifier(),
        ]
    ),
    description="""
    Deletes an existing schedule, identified by its schedule ID.
    Only admins can delete schedules.
    Logs the schedule deletion activity.
    """,
)
async def delete_schedule(
    fParam: DeleteForm = Depends(),
    cookie=Depends(cookie_state),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        caller = validators.identity(cookie, UserRole.ADMIN)
        validators.permission(caller.user_role, Resource.SCHEDULE, Action.DELETE)

        schedule = getters.schedule(fParam.schedule_id, session)
        if schedule is None:
            raise exceptions.InvalidIdentifier()

        session.delete(schedule)
        session.commit()
        logEvent(caller, request_info, jsonable_encoder(schedule))
        return {"message": "Schedule deleted"}
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_admin.get(
    URL_SCHEDULE,
    tags=["Schedule"],
    response_model=List[ScheduleSchema],
    responses=fuseExceptionResponses(
        [exceptions.InvalidToken(), exceptions.NoPermission()]
    ),
    description="""
    Fetches a list of all schedules, in any confirmation status.
    Supports filtering by schedule ID, bus, route, day, distance and confirmation status.
    """,
)
async def fetch_schedules(
    qParam: QueryParams = Depends(), cookie=Depends(cookie_state)
):
    try:
        session = sessionMaker()
        caller = validators.identity(cookie, UserRole.ADMIN)
        validators.permission(caller.user_role, Resource.SCHEDULE, Action.READ)

        return searchSchedule(session, qParam)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


## API endpoints [Operator]
@route_operator.patch(
    URL_SCHEDULE_CONFIRMATION,
    tags=["Schedule"],
    response_model=ScheduleResponse,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.NoPermission(),
            exceptions.InvalidIdentifier(),
            exceptions.FinalizedSchedule(ConfirmationStatus.ACCEPTED.name),
            exceptions.InvalidStateTransition(Schedule.confirmation_status),
            exceptions.LockAcquireTimeout(),
        ]
    ),
    description="""
    Accepts or rejects a pending schedule, identified by its schedule ID.
    Only bus operators can confirm schedules.
    Accepted and rejected schedules are final and cannot be confirmed again.
    The schedule is locked while confirming, so concurrent decisions are serialized.
    Logs the confirmation activity.
    """,
)
async def confirm_schedule(
    fParam: ConfirmationForm = Depends(),
    cookie=Depends(cookie_state),
    request_info=Depends(getters.requestInfo),
):
    scheduleLock = None
    try:
        session = sessionMaker()
        caller = validators.identity(cookie, UserRole.BUS_OPERATOR)
        validators.permission(caller.user_role, Resource.SCHEDULE, Action.CONFIRM)

        scheduleLock = acquireLock(Schedule.__tablename__, fParam.schedule_id)
        schedule = getters.schedule(fParam.schedule_id, session)
        if schedule is None:
            raise exceptions.InvalidIdentifier()
        currentStatus = ConfirmationStatus(schedule.confirmation_status)
        if currentStatus in FINAL_CONFIRMATION_STATES:
            raise exceptions.FinalizedSchedule(currentStatus.name)
        validators.stateTransition(
            SCHEDULE_CONFIRMATION,
            currentStatus,
            fParam.confirmation_status,
            Schedule.confirmation_status,
        )

        schedule.confirmation_status = fParam.confirmation_status
        session.commit()
        session.refresh(schedule)

        scheduleData = jsonable_encoder(schedule)
        logEvent(caller, request_info, scheduleData)
        return {
            "message": "Confirmation status updated successfully",
            "schedule": scheduleData,
        }
    except Exception as e:
        exceptions.handle(e)
    finally:
        releaseLock(scheduleLock)
        session.close()


@route_operator.get(
    URL_SCHEDULE,
    tags=["Schedule"],
    response_model=List[ScheduleSchema],
    responses=fuseExceptionResponses(
        [exceptions.InvalidToken(), exceptions.NoPermission()]
    ),
    description="""
    Fetches a list of all schedules, in any confirmation status.
    Requires a valid bus operator state token.
    Supports filtering by schedule ID, bus, route, day, distance and confirmation status.
    """,
)
async def fetch_schedules(
    qParam: QueryParams = Depends(), cookie=Depends(cookie_state)
):
    try:
        session = sessionMaker()
        caller = validators.identity(cookie, UserRole.BUS_OPERATOR)
        validators.permission(caller.user_role, Resource.SCHEDULE, Action.READ)

        return searchSchedule(session, qParam)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


## API endpoints [Commuter]
@route_commuter.get(
    URL_SCHEDULE,
    tags=["Schedule"],
    response_model=List[ScheduleSchema],
    description="""
    Fetches a list of the accepted schedules.
    Open to everyone, no state token is needed.
    Supports filtering by schedule ID, bus, route, day and distance.
    """,
)
async def fetch_schedules(qParam: QueryParamsForCM = Depends()):
    try:
        session = sessionMaker()
        validators.permission(UserRole.COMMUTER, Resource.SCHEDULE, Action.READ)

        qParam = promoteToParent(
            qParam, QueryParams, confirmation_status=ConfirmationStatus.ACCEPTED
        )
        return searchSchedule(session, qParam)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()
