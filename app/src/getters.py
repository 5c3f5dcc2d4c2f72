from fastapi import Request
from sqlalchemy.orm.session import Session

from app.src import schemas
from app.src.db import Bus, Route, Schedule, User


def requestInfo(request: Request) -> schemas.RequestInfo:
    """
    Extract metadata about the incoming request.

    Args:
        request (Request): FastAPI request object.

    Returns:
        schemas.RequestInfo: Pydantic model containing:
            - method (str): HTTP method (GET, POST, etc.).
            - path (str): Path portion of the request URL.
            - app_id (int): Application ID from app state.
    """
    return schemas.RequestInfo(
        method=request.method,
        path=request.url.path,
        app_id=request.scope["app"].state.id,
    )


def user(username: str, session: Session) -> User | None:
    """Fetch a user by username."""
    return session.query(User).filter(User.username == username).first()


def route(route_number: str, session: Session) -> Route | None:
    """Fetch a route by its route number."""
    return session.query(Route).filter(Route.route_number == route_number).first()


def bus(bus_id: str, session: Session) -> Bus | None:
    """Fetch a bus by its public bus ID."""
    return session.query(Bus).filter(Bus.bus_id == bus_id).first()


def schedule(schedule_id: str, session: Session) -> Schedule | None:
    """Fetch a schedule by its public schedule ID."""
    return session.query(Schedule).filter(Schedule.schedule_id == schedule_id).first()


def identity(user: User) -> schemas.Identity:
    """Build the identity carried in the state token of a user."""
    return schemas.Identity(
        username=user.username,
        user_role=user.user_role,
        first_name=user.first_name,
        last_name=user.last_name,
        email=user.email,
        nic=user.nic,
    )
