"""Seeding helpers and API clients for the tests."""

from fastapi.testclient import TestClient

from app.main import app
from app.src import argon2
from app.src.constants import COOKIE_NAME
from app.src.db import Bus, Route, Schedule, User
from app.src.enums import ConfirmationStatus, Day, WorkflowStatus
from app.src.jwt import makeToken

PASSWORD = "password"


def addUser(session, username, role, **kwargs):
    user = User(
        username=username,
        password=argon2.makePassword(PASSWORD),
        user_role=role,
        first_name=kwargs.get("first_name", username.capitalize()),
        last_name=kwargs.get("last_name", "Tester"),
        email=kwargs.get("email", f"{username}@bustrack.com"),
        nic=kwargs.get("nic", f"{username[:8]:0>10}"),
        status=kwargs.get("status", True),
    )
    session.add(user)
    session.commit()
    return user


def addRoute(session, route_number="138", status=True):
    route = Route(
        route_number=route_number,
        route_name=f"Route {route_number}",
        start_location="Pettah",
        end_location="Kottawa",
        distance="22km",
        status=status,
    )
    session.add(route)
    session.commit()
    return route


def addBus(
    session,
    bus_id="B001",
    operator_username="operator",
    route_id="138",
    workflow_status=WorkflowStatus.PENDING,
):
    bus = Bus(
        bus_id=bus_id,
        bus_number=f"NB-{bus_id}",
        operator_username=operator_username,
        route_id=route_id,
        workflow_status=workflow_status,
    )
    session.add(bus)
    session.commit()
    return bus


def addSchedule(
    session,
    schedule_id="S001",
    bus_id="B001",
    route_number="138",
    confirmation_status=ConfirmationStatus.PENDING,
):
    schedule = Schedule(
        schedule_id=schedule_id,
        bus_id=bus_id,
        route_number=route_number,
        day=Day.MONDAY,
        distance="22km",
        confirmation_status=confirmation_status,
    )
    session.add(schedule)
    session.commit()
    return schedule


def clientFor(user=None):
    """API client carrying the state token of `user`, anonymous when None."""
    cookies = {COOKIE_NAME: makeToken(user)} if user is not None else None
    return TestClient(app, cookies=cookies)
