from datetime import datetime
from enum import IntEnum
from typing import List, Optional
from fastapi import APIRouter, Depends, Query, status, Form
from sqlalchemy.orm.session import Session
from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel, Field

from app.api.cookie import cookie_state
from app.src.db import Bus, Route, sessionMaker
from app.src import exceptions, validators, getters, schemas
from app.src.enums import Action, OrderIn, Resource, UserRole
from app.src.loggers import logEvent
from app.src.redis import acquireLock, releaseLock
from app.src.functions import (
    enumStr,
    fuseExceptionResponses,
    promoteToParent,
    updateIfChanged,
)
from app.src.urls import URL_ROUTE

route_admin = APIRouter()
route_operator = APIRouter()
route_commuter = APIRouter()


## Output Schema
class RouteSchema(BaseModel):
    id: int
    route_number: str
    route_name: str
    start_location: str
    end_location: str
    distance: str
    status: bool
    updated_on: Optional[datetime]
    created_on: datetime


class RouteResponse(BaseModel):
    message: str
    route: RouteSchema


## Input Forms
class CreateForm(BaseModel):
    route_number: str = Field(Form(max_length=32))
    route_name: str = Field(Form(max_length=128))
    start_location: str = Field(Form(max_length=128))
    end_location: str = Field(Form(max_length=128))
    distance: str = Field(Form(max_length=32))
    status: bool = Field(Form(default=True))


class UpdateForm(BaseModel):
    route_number: str = Field(Form(max_length=32))
    route_name: str | None = Field(Form(max_length=128, default=None))
    start_location: str | None = Field(Form(max_length=128, default=None))
    end_location: str | None = Field(Form(max_length=128, default=None))
    distance: str | None = Field(Form(max_length=32, default=None))
    status: bool | None = Field(Form(default=None))


class DeleteForm(BaseModel):
    route_number: str = Field(Form(max_length=32))


## Query Parameters
class OrderBy(IntEnum):
    id = 1
    route_number = 2
    updated_on = 3
    created_on = 4


class QueryParamsForCM(BaseModel):
    # filters
    route_number: str | None = Field(Query(default=None))
    route_name: str | None = Field(Query(default=None))
    start_location: str | None = Field(Query(default=None))
    end_location: str | None = Field(Query(default=None))
    # Ordering
    order_by: OrderBy = Field(Query(default=OrderBy.id, description=enumStr(OrderBy)))
    order_in: OrderIn = Field(Query(default=OrderIn.DESC, description=enumStr(OrderIn)))
    # Pagination
    offset: int = Field(Query(default=0, ge=0))
    limit: int = Field(Query(default=20, gt=0, le=100))


class QueryParams(QueryParamsForCM):
    status: bool | None = Field(Query(default=None))


## Function
def updateRoute(route: Route, fParam: UpdateForm):
    updateIfChanged(
        route,
        fParam,
        [
            Route.route_name.key,
            Route.start_location.key,
            Route.end_location.key,
            Route.distance.key,
            Route.status.key,
        ],
    )


def searchRoute(session: Session, qParam: QueryParams) -> List[Route]:
    query = session.query(Route)

    # Filters
    if qParam.route_number is not None:
        query = query.filter(Route.route_number == qParam.route_number)
    if qParam.route_name is not None:
        query = query.filter(Route.route_name == qParam.route_name)
    if qParam.start_location is not None:
        query = query.filter(Route.start_location == qParam.start_location)
    if qParam.end_location is not None:
        query = query.filter(Route.end_location == qParam.end_location)
    if qParam.status is not None:
        query = query.filter(Route.status == qParam.status)

    # Ordering
    orderingAttribute = getattr(Route, OrderBy(qParam.order_by).name)
    if qParam.order_in == OrderIn.ASC:
        query = query.order_by(orderingAttribute.asc())
    else:
        query = query.order_by(orderingAttribute.desc())

    # Pagination
    query = query.offset(qParam.offset).limit(qParam.limit)
    return query.all()


## API endpoints [Admin]
@route_admin.post(
    URL_ROUTE,
    tags=["Route"],
    response_model=RouteResponse,
    status_code=status.HTTP_201_CREATED,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.NoPermission(),
            exceptions.DuplicateValue(Route.route_number),
        ]
    ),
    description="""
    Creates a new route.
    Only admins can create routes.
    The route number must be unique.
    Logs the route creation activity.
    """,
)
async def create_route(
    fParam: CreateForm = Depends(),
    cookie=Depends(cookie_state),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        caller = validators.identity(cookie, UserRole.ADMIN)
        validators.permission(caller.user_role, Resource.ROUTE, Action.CREATE)

        if getters.route(fParam.route_number, session) is not None:
            raise exceptions.DuplicateValue(Route.route_number)

        route = Route(
            route_number=fParam.route_number,
            route_name=fParam.route_name,
            start_location=fParam.start_location,
            end_location=fParam.end_location,
            distance=fParam.distance,
            status=fParam.status,
        )
        session.add(route)
        session.commit()
        session.refresh(route)

        routeData = jsonable_encoder(route)
        logEvent(caller, request_info, routeData)
        return {"message": "Route created", "route": routeData}
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_admin.patch(
    URL_ROUTE,
    tags=["Route"],
    response_model=RouteResponse,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.NoPermission(),
            exceptions.InvalidIdentifier(),
        ]
    ),
    description="""
    Updates an existing route, identified by its route number.
    Only admins can update routes.
    Supports partial updates, ex:- taking a route out of service through `status` only.
    Changes are saved only if the route data has been modified.
    Logs the route updating activity.
    """,
)
async def update_route(
    fParam: UpdateForm = Depends(),
    cookie=Depends(cookie_state),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        caller = validators.identity(cookie, UserRole.ADMIN)
        validators.permission(caller.user_role, Resource.ROUTE, Action.UPDATE)

        route = getters.route(fParam.route_number, session)
        if route is None:
            raise exceptions.InvalidIdentifier()

        updateRoute(route, fParam)
        haveUpdates = session.is_modified(route)
        if haveUpdates:
            session.commit()
            session.refresh(route)

        routeData = jsonable_encoder(route)
        if haveUpdates:
            logEvent(caller, request_info, routeData)
        return {"message": "Route updated", "route": routeData}
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_admin.delete(
    URL_ROUTE,
    tags=["Route"],
    response_model=schemas.MessageResponse,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.NoPermission(),
            exceptions.InvalidIdentifier(),
            exceptions.DataInUse(Route),
            exceptions.LockAcquireTimeout(),
        ]
    ),
    description="""
    Deletes an existing route, identified by its route number.
    Only admins can delete routes.
    A route assigned to any bus cannot be deleted.
    The route is locked while checking, so no bus can be assigned to it meanwhile.
    Logs the route deletion activity.
    """,
)
async def delete_route(
    fParam: DeleteForm = Depends(),
    cookie=Depends(cookie_state),
    request_info=Depends(getters.requestInfo),
):
    routeLock = None
    try:
        session = sessionMaker()
        caller = validators.identity(cookie, UserRole.ADMIN)
        validators.permission(caller.user_role, Resource.ROUTE, Action.DELETE)

        routeLock = acquireLock(Route.__tablename__, fParam.route_number)
        route = getters.route(fParam.route_number, session)
        if route is None:
            raise exceptions.InvalidIdentifier()
        bus = session.query(Bus.id).filter(Bus.route_id == route.route_number).first()
        if bus is not None:
            raise exceptions.DataInUse(Route)

        session.delete(route)
        session.commit()
        logEvent(caller, request_info, jsonable_encoder(route))
        return {"message": "Route deleted"}
    except Exception as e:
        exceptions.handle(e)
    finally:
        releaseLock(routeLock)
        session.close()


@route_admin.get(
    URL_ROUTE,
    tags=["Route"],
    response_model=List[RouteSchema],
    responses=fuseExceptionResponses(
        [exceptions.InvalidToken(), exceptions.NoPermission()]
    ),
    description="""
    Fetches a list of all routes, in service or not.
    Supports filtering by route number, name, locations and status.
    """,
)
async def fetch_routes(qParam: QueryParams = Depends(), cookie=Depends(cookie_state)):
    try:
        session = sessionMaker()
        caller = validators.identity(cookie, UserRole.ADMIN)
        validators.permission(caller.user_role, Resource.ROUTE, Action.READ)

        return searchRoute(session, qParam)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


## API endpoints [Operator]
@route_operator.get(
    URL_ROUTE,
    tags=["Route"],
    response_model=List[RouteSchema],
    responses=fuseExceptionResponses(
        [exceptions.InvalidToken(), exceptions.NoPermission()]
    ),
    description="""
    Fetches a list of all routes, in service or not.
    Requires a valid bus operator state token.
    Supports filtering by route number, name, locations and status.
    """,
)
async def fetch_routes(qParam: QueryParams = Depends(), cookie=Depends(cookie_state)):
    try:
        session = sessionMaker()
        caller = validators.identity(cookie, UserRole.BUS_OPERATOR)
        validators.permission(caller.user_role, Resource.ROUTE, Action.READ)

        return searchRoute(session, qParam)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


## API endpoints [Commuter]
@route_commuter.get(
    URL_ROUTE,
    tags=["Route"],
    response_model=List[RouteSchema],
    description="""
    Fetches a list of the routes in service.
    Open to everyone, no state token is needed.
    Supports filtering by route number, name and locations.
    """,
)
async def fetch_routes(qParam: QueryParamsForCM = Depends()):
    try:
        session = sessionMaker()
        validators.permission(UserRole.COMMUTER, Resource.ROUTE, Action.READ)

        qParam = promoteToParent(qParam, QueryParams, status=True)
        return searchRoute(session, qParam)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()
