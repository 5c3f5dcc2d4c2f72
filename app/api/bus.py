from datetime import datetime, timezone
from enum import IntEnum
from typing import List, Optional
from fastapi import APIRouter, Depends, Query, status, Form
from sqlalchemy.orm.session import Session
from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel, Field

from app.api.cookie import cookie_state
from app.src.db import Bus, Route, Schedule, sessionMaker
from app.src import exceptions, validators, getters, schemas
from app.src.enums import Action, OrderIn, Resource, UserRole, WorkflowStatus
from app.src.constants import (
    MAX_LATITUDE,
    MAX_LONGITUDE,
    MIN_LATITUDE,
    MIN_LONGITUDE,
)
from app.src.loggers import logEvent
from app.src.redis import acquireLock, releaseLock
from app.src.workflows import BUS_WORKFLOW
from app.src.functions import (
    enumStr,
    fuseExceptionResponses,
    promoteToParent,
    updateIfChanged,
)
from app.src.urls import URL_BUS

route_admin = APIRouter()
route_operator = APIRouter()
route_commuter = APIRouter()


## Output Schema
class BusSchema(BaseModel):
    id: int
    bus_id: str
    bus_number: str
    operator_username: str
    route_id: str
    workflow_status: int
    latitude: Optional[float]
    longitude: Optional[float]
    location_updated_on: Optional[datetime]
    updated_on: Optional[datetime]
    created_on: datetime


class BusResponse(BaseModel):
    message: str
    bus: BusSchema


## Input Forms
class CreateFormForOP(BaseModel):
    bus_id: str = Field(Form(max_length=32))
    bus_number: str = Field(Form(max_length=32))
    route_id: str = Field(Form(max_length=32, description="Route number"))


class CreateFormForAD(CreateFormForOP):
    operator_username: str = Field(Form(max_length=32))
    workflow_status: WorkflowStatus = Field(
        Form(description=enumStr(WorkflowStatus), default=WorkflowStatus.PENDING)
    )


class UpdateFormForOP(BaseModel):
    bus_id: str = Field(Form(max_length=32))
    workflow_status: WorkflowStatus | None = Field(
        Form(description=enumStr(WorkflowStatus), default=None)
    )
    latitude: float | None = Field(
        Form(ge=MIN_LATITUDE, le=MAX_LATITUDE, default=None)
    )
    longitude: float | None = Field(
        Form(ge=MIN_LONGITUDE, le=MAX_LONGITUDE, default=None)
    )


class UpdateFormForAD(UpdateFormForOP):
    bus_number: str | None = Field(Form(max_length=32, default=None))
    operator_username: str | None = Field(Form(max_length=32, default=None))
    route_id: str | None = Field(
        Form(max_length=32, default=None, description="Route number")
    )


class DeleteForm(BaseModel):
    bus_id: str = Field(Form(max_length=32))


## Query Parameters
class OrderBy(IntEnum):
    id = 1
    bus_id = 2
    updated_on = 3
    created_on = 4


class QueryParamsForCM(BaseModel):
    # filters
    bus_id: str | None = Field(Query(default=None))
    bus_number: str | None = Field(Query(default=None))
    route_id: str | None = Field(Query(default=None))
    # Ordering
    order_by: OrderBy = Field(Query(default=OrderBy.id, description=enumStr(OrderBy)))
    order_in: OrderIn = Field(Query(default=OrderIn.DESC, description=enumStr(OrderIn)))
    # Pagination
    offset: int = Field(Query(default=0, ge=0))
    limit: int = Field(Query(default=20, gt=0, le=100))


class QueryParamsForOP(QueryParamsForCM):
    workflow_status: WorkflowStatus | None = Field(
        Query(default=None, description=enumStr(WorkflowStatus))
    )


class QueryParams(QueryParamsForOP):
    operator_username: str | None = Field(Query(default=None))


## Function
def validateOperator(session: Session, operator_username: str):
    operator = getters.user(operator_username, session)
    validators.busOperator(operator, Bus.operator_username)


def validateRoute(session: Session, route_id: str):
    if getters.route(route_id, session) is None:
        raise exceptions.UnknownValue(Bus.route_id)


def validateBusNumber(session: Session, bus_number: str, bus_id: str | None = None):
    query = session.query(Bus.id).filter(Bus.bus_number == bus_number)
    if bus_id is not None:
        query = query.filter(Bus.bus_id != bus_id)
    if query.first() is not None:
        raise exceptions.DuplicateValue(Bus.bus_number)


def updateLocation(bus: Bus, fParam: UpdateFormForOP):
    """Apply a location report, both coordinates are needed together."""
    if fParam.latitude is None and fParam.longitude is None:
        return
    if fParam.latitude is None:
        raise exceptions.MissingParameter(Bus.latitude)
    if fParam.longitude is None:
        raise exceptions.MissingParameter(Bus.longitude)
    bus.latitude = fParam.latitude
    bus.longitude = fParam.longitude
    bus.location_updated_on = datetime.now(timezone.utc)


def updateBus(bus: Bus, fParam: UpdateFormForAD):
    updateIfChanged(
        bus,
        fParam,
        [
            Bus.bus_number.key,
            Bus.operator_username.key,
            Bus.route_id.key,
        ],
    )


def removeSchedules(session: Session, bus_id: str) -> int:
    return (
        session.query(Schedule)
        .filter(Schedule.bus_id == bus_id)
        .delete(synchronize_session=False)
    )


def deleteBus(session: Session, bus: Bus) -> str:
    """
    Delete a bus, then the schedules of the bus.

    The two steps are committed separately. Once the bus is gone a failure
    while removing its schedules is logged and reported in the returned
    message instead of failing the request.
    """
    session.delete(bus)
    session.commit()
    try:
        removeSchedules(session, bus.bus_id)
        session.commit()
        return "Bus and associated schedules deleted successfully"
    except Exception as e:
        session.rollback()
        exceptions.logException(e)
        return "Bus deleted but failed to delete schedules"


def searchBus(session: Session, qParam: QueryParams) -> List[Bus]:
    query = session.query(Bus)

    # Filters
    if qParam.bus_id is not None:
        query = query.filter(Bus.bus_id == qParam.bus_id)
    if qParam.bus_number is not None:
        query = query.filter(Bus.bus_number == qParam.bus_number)
    if qParam.operator_username is not None:
        query = query.filter(Bus.operator_username == qParam.operator_username)
    if qParam.route_id is not None:
        query = query.filter(Bus.route_id == qParam.route_id)
    if qParam.workflow_status is not None:
        query = query.filter(Bus.workflow_status == qParam.workflow_status)

    # Ordering
    orderingAttribute = getattr(Bus, OrderBy(qParam.order_by).name)
    if qParam.order_in == OrderIn.ASC:
        query = query.order_by(orderingAttribute.asc())
    else:
        query = query.order_by(orderingAttribute.desc())

    # Pagination
    query = query.offset(qParam.offset).limit(qParam.limit)
    return query.all()


## API endpoints [Admin]
@route_admin.post(
    URL_BUS,
    tags=["Bus"],
    response_model=BusResponse,
    status_code=status.HTTP_201_CREATED,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.NoPermission(),
            exceptions.InvalidOperator(),
            exceptions.UnknownValue(Bus.route_id),
            exceptions.DuplicateValue(Bus.bus_id),
            exceptions.LockAcquireTimeout(),
        ]
    ),
    description="""
    Creates a new bus and assigns it to a bus operator and a route.
    Only admins can pick the operator and the initial workflow status, which defaults to PENDING.
    The operator must be an existing bus operator, the route must exist.
    The bus ID and the bus number must be unique.
    Logs the bus creation activity.
    """,
)
async def create_bus(
    fParam: CreateFormForAD = Depends(),
    cookie=Depends(cookie_state),
    request_info=Depends(getters.requestInfo),
):
    routeLock = None
    try:
        session = sessionMaker()
        caller = validators.identity(cookie, UserRole.ADMIN)
        validators.permission(caller.user_role, Resource.BUS, Action.CREATE)

        validateOperator(session, fParam.operator_username)
        routeLock = acquireLock(Route.__tablename__, fParam.route_id)
        validateRoute(session, fParam.route_id)
        if getters.bus(fParam.bus_id, session) is not None:
            raise exceptions.DuplicateValue(Bus.bus_id)
        validateBusNumber(session, fParam.bus_number)

        bus = Bus(
            bus_id=fParam.bus_id,
            bus_number=fParam.bus_number,
            operator_username=fParam.operator_username,
            route_id=fParam.route_id,
            workflow_status=fParam.workflow_status,
        )
        session.add(bus)
        session.commit()
        session.refresh(bus)

        busData = jsonable_encoder(bus)
        logEvent(caller, request_info, busData)
        return {"message": "Bus created successfully", "bus": busData}
    except Exception as e:
        exceptions.handle(e)
    finally:
        releaseLock(routeLock)
        session.close()


@route_admin.patch(
    URL_BUS,
    tags=["Bus"],
    response_model=BusResponse,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.NoPermission(),
            exceptions.InvalidIdentifier(),
            exceptions.InvalidOperator(),
            exceptions.UnknownValue(Bus.route_id),
            exceptions.DuplicateValue(Bus.bus_number),
            exceptions.MissingParameter(Bus.longitude),
            exceptions.LockAcquireTimeout(),
        ]
    ),
    description="""
    Updates an existing bus, identified by its bus ID.
    Admins can change any field and move the bus to any workflow status.
    A new operator or route is validated like on creation.
    A location update needs both latitude and longitude and stamps the report time.
    Changes are saved only if the bus data has been modified.
    Logs the bus updating activity.
    """,
)
async def update_bus(
    fParam: UpdateFormForAD = Depends(),
    cookie=Depends(cookie_state),
    request_info=Depends(getters.requestInfo),
):
    routeLock = None
    try:
        session = sessionMaker()
        caller = validators.identity(cookie, UserRole.ADMIN)
        validators.permission(caller.user_role, Resource.BUS, Action.UPDATE)

        bus = getters.bus(fParam.bus_id, session)
        if bus is None:
            raise exceptions.InvalidIdentifier()

        if fParam.operator_username is not None:
            validateOperator(session, fParam.operator_username)
        if fParam.route_id is not None:
            routeLock = acquireLock(Route.__tablename__, fParam.route_id)
            validateRoute(session, fParam.route_id)
        if fParam.bus_number is not None:
            validateBusNumber(session, fParam.bus_number, bus.bus_id)
        if fParam.workflow_status is not None:
            validators.stateTransition(
                BUS_WORKFLOW[UserRole.ADMIN],
                bus.workflow_status,
                fParam.workflow_status,
                Bus.workflow_status,
            )
            bus.workflow_status = fParam.workflow_status
        updateLocation(bus, fParam)
        updateBus(bus, fParam)

        haveUpdates = session.is_modified(bus)
        if haveUpdates:
            session.commit()
            session.refresh(bus)

        busData = jsonable_encoder(bus)
        if haveUpdates:
            logEvent(caller, request_info, busData)
        return {"message": "Bus updated successfully", "bus": busData}
    except Exception as e:
        exceptions.handle(e)
    finally:
        releaseLock(routeLock)
        session.close()


@route_admin.delete(
    URL_BUS,
    tags=["Bus"],
    response_model=schemas.MessageResponse,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.NoPermission(),
            exceptions.InvalidIdentifier(),
        ]
    ),
    description="""
    Deletes an existing bus, identified by its bus ID, along with its schedules.
    Only admins can delete any bus.
    The bus is removed first, if removing its schedules then fails the bus stays deleted
    and the response says so.
    Logs the bus deletion activity.
    """,
)
async def delete_bus(
    fParam: DeleteForm = Depends(),
    cookie=Depends(cookie_state),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        caller = validators.identity(cookie, UserRole.ADMIN)
        validators.permission(caller.user_role, Resource.BUS, Action.DELETE)

        bus = getters.bus(fParam.bus_id, session)
        if bus is None:
            raise exceptions.InvalidIdentifier()

        message = deleteBus(session, bus)
        logEvent(caller, request_info, jsonable_encoder(bus))
        return {"message": message}
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_admin.get(
    URL_BUS,
    tags=["Bus"],
    response_model=List[BusSchema],
    responses=fuseExceptionResponses(
        [exceptions.InvalidToken(), exceptions.NoPermission()]
    ),
    description="""
    Fetches a list of all buses, in any workflow status.
    Supports filtering by bus ID, bus number, operator, route and workflow status.
    """,
)
async def fetch_buses(qParam: QueryParams = Depends(), cookie=Depends(cookie_state)):
    try:
        session = sessionMaker()
        caller = validators.identity(cookie, UserRole.ADMIN)
        validators.permission(caller.user_role, Resource.BUS, Action.READ)

        return searchBus(session, qParam)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


## API endpoints [Operator]
@route_operator.post(
    URL_BUS,
    tags=["Bus"],
    response_model=BusResponse,
    status_code=status.HTTP_201_CREATED,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.NoPermission(),
            exceptions.UnknownValue(Bus.route_id),
            exceptions.DuplicateValue(Bus.bus_id),
            exceptions.LockAcquireTimeout(),
        ]
    ),
    description="""
    Registers a new bus operated by the caller.
    The operator is taken from the state token and the workflow status is always PENDING,
    the bus goes into service once an admin activates it.
    The route must exist, the bus ID and the bus number must be unique.
    Logs the bus creation activity.
    """,
)
async def create_bus(
    fParam: CreateFormForOP = Depends(),
    cookie=Depends(cookie_state),
    request_info=Depends(getters.requestInfo),
):
    routeLock = None
    try:
        session = sessionMaker()
        caller = validators.identity(cookie, UserRole.BUS_OPERATOR)
        validators.permission(caller.user_role, Resource.BUS, Action.CREATE)

        validateOperator(session, caller.username)
        routeLock = acquireLock(Route.__tablename__, fParam.route_id)
        validateRoute(session, fParam.route_id)
        if getters.bus(fParam.bus_id, session) is not None:
            raise exceptions.DuplicateValue(Bus.bus_id)
        validateBusNumber(session, fParam.bus_number)

        bus = Bus(
            bus_id=fParam.bus_id,
            bus_number=fParam.bus_number,
            operator_username=caller.username,
            route_id=fParam.route_id,
            workflow_status=WorkflowStatus.PENDING,
        )
        session.add(bus)
        session.commit()
        session.refresh(bus)

        busData = jsonable_encoder(bus)
        logEvent(caller, request_info, busData)
        return {"message": "Bus created successfully", "bus": busData}
    except Exception as e:
        exceptions.handle(e)
    finally:
        releaseLock(routeLock)
        session.close()


@route_operator.patch(
    URL_BUS,
    tags=["Bus"],
    response_model=BusResponse,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.NoPermission(),
            exceptions.InvalidIdentifier(),
            exceptions.InvalidStateTransition(Bus.workflow_status),
            exceptions.MissingParameter(Bus.longitude),
        ]
    ),
    description="""
    Updates a bus operated by the caller, identified by its bus ID.
    Operators can only withdraw an active bus (ACTIVE to INACTIVE), activation is reserved to admins.
    A location update needs both latitude and longitude and stamps the report time.
    Changes are saved only if the bus data has been modified.
    Logs the bus updating activity.
    """,
)
async def update_bus(
    fParam: UpdateFormForOP = Depends(),
    cookie=Depends(cookie_state),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        caller = validators.identity(cookie, UserRole.BUS_OPERATOR)
        scope = validators.permission(caller.user_role, Resource.BUS, Action.UPDATE)

        bus = getters.bus(fParam.bus_id, session)
        if bus is None:
            raise exceptions.InvalidIdentifier()
        validators.ownership(caller, bus, scope)

        if fParam.workflow_status is not None:
            validators.stateTransition(
                BUS_WORKFLOW[UserRole.BUS_OPERATOR],
                bus.workflow_status,
                fParam.workflow_status,
                Bus.workflow_status,
            )
            bus.workflow_status = fParam.workflow_status
        updateLocation(bus, fParam)

        haveUpdates = session.is_modified(bus)
        if haveUpdates:
            session.commit()
            session.refresh(bus)

        busData = jsonable_encoder(bus)
        if haveUpdates:
            logEvent(caller, request_info, busData)
        return {"message": "Bus updated successfully", "bus": busData}
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_operator.delete(
    URL_BUS,
    tags=["Bus"],
    response_model=schemas.MessageResponse,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.NoPermission(),
            exceptions.InvalidIdentifier(),
        ]
    ),
    description="""
    Deletes a bus operated by the caller, identified by its bus ID, along with its schedules.
    The bus is removed first, if removing its schedules then fails the bus stays deleted
    and the response says so.
    Logs the bus deletion activity.
    """,
)
async def delete_bus(
    fParam: DeleteForm = Depends(),
    cookie=Depends(cookie_state),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        caller = validators.identity(cookie, UserRole.BUS_OPERATOR)
        scope = validators.permission(caller.user_role, Resource.BUS, Action.DELETE)

        bus = getters.bus(fParam.bus_id, session)
        if bus is None:
            raise exceptions.InvalidIdentifier()
        validators.ownership(caller, bus, scope)

        message = deleteBus(session, bus)
        logEvent(caller, request_info, jsonable_encoder(bus))
        return {"message": message}
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_operator.get(
    URL_BUS,
    tags=["Bus"],
    response_model=List[BusSchema],
    responses=fuseExceptionResponses(
        [exceptions.InvalidToken(), exceptions.NoPermission()]
    ),
    description="""
    Fetches a list of the buses operated by the caller, in any workflow status.
    Supports filtering by bus ID, bus number, route and workflow status.
    """,
)
async def fetch_buses(
    qParam: QueryParamsForOP = Depends(), cookie=Depends(cookie_state)
):
    try:
        session = sessionMaker()
        caller = validators.identity(cookie, UserRole.BUS_OPERATOR)
        validators.permission(caller.user_role, Resource.BUS, Action.READ)

        qParam = promoteToParent(
            qParam, QueryParams, operator_username=caller.username
        )
        return searchBus(session, qParam)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


## API endpoints [Commuter]
@route_commuter.get(
    URL_BUS,
    tags=["Bus"],
    response_model=List[BusSchema],
    description="""
    Fetches a list of the buses in service, with their last reported location.
    Open to everyone, no state token is needed.
    Supports filtering by bus ID, bus number and route.
    """,
)
async def fetch_buses(qParam: QueryParamsForCM = Depends()):
    try:
        session = sessionMaker()
        validators.permission(UserRole.COMMUTER, Resource.BUS, Action.READ)

        qParam = promoteToParent(
            qParam, QueryParams, workflow_status=WorkflowStatus.ACTIVE
        )
        return searchBus(session, qParam)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()
