import argparse
from http import HTTPStatus
from requests import Session as HTTPSession

from app.src import argon2
from app.src.enums import ConfirmationStatus, Day, UserRole, WorkflowStatus
from app.src.urls import (
    URL_TOKEN,
    URL_ACCOUNT,
    URL_ROUTE,
    URL_BUS,
    URL_SCHEDULE,
    URL_SCHEDULE_CONFIRMATION,
)
from app.src.db import User, sessionMaker, engine, ORMbase


# ----------------------------------- Project Setup -------------------------------------------#
def removeTables():
    ORMbase.metadata.drop_all(engine)
    print("* All tables deleted")


def createTables():
    ORMbase.metadata.create_all(engine)
    print("* All tables created")


def initDB():
    session = sessionMaker()
    admin = User(
        username="admin",
        password=argon2.makePassword("password"),
        user_role=UserRole.ADMIN,
        first_name="BusTrack",
        last_name="Admin",
        email="admin@bustrack.com",
        nic="000000000V",
    )
    session.add(admin)
    session.commit()
    print("* Initialization completed")
    session.close()


def call(client: HTTPSession, method: str, URL: str, status_code=HTTPStatus.OK, **kwargs):
    response = client.request(method, URL, **kwargs)
    assert response.status_code == status_code, response.text
    return response


def signIn(baseURL: str, username: str, password: str) -> HTTPSession:
    client = HTTPSession()
    credentials = {"username": username, "password": password}
    call(client, "POST", baseURL + "/auth" + URL_TOKEN, data=credentials)
    return client


def testDB():
    # Base URL
    BASE_URL = "http://127.0.0.1:8080"
    ADMIN_URL = BASE_URL + "/admin"
    OPERATOR_URL = BASE_URL + "/operator"

    admin = signIn(BASE_URL, "admin", "password")
    print("* Signed in as admin")

    # Create operator account
    operatorData = {
        "username": "operator",
        "password": "password",
        "user_role": UserRole.BUS_OPERATOR.value,
        "first_name": "BusTrack",
        "last_name": "Operator",
        "email": "operator@bustrack.com",
        "nic": "000000001V",
    }
    call(admin, "POST", ADMIN_URL + URL_ACCOUNT, HTTPStatus.CREATED, data=operatorData)
    print("* Created operator account")

    # Create route
    routeData = {
        "route_number": "138",
        "route_name": "Pettah - Kottawa",
        "start_location": "Pettah",
        "end_location": "Kottawa",
        "distance": "22km",
    }
    call(admin, "POST", ADMIN_URL + URL_ROUTE, HTTPStatus.CREATED, data=routeData)
    print("* Created route")

    # Register and approve a bus
    operator = signIn(BASE_URL, "operator", "password")
    busData = {"bus_id": "B001", "bus_number": "NB-1234", "route_id": "138"}
    call(operator, "POST", OPERATOR_URL + URL_BUS, HTTPStatus.CREATED, data=busData)
    approval = {"bus_id": "B001", "workflow_status": WorkflowStatus.ACTIVE.value}
    call(admin, "PATCH", ADMIN_URL + URL_BUS, data=approval)
    print("* Created and activated bus")

    # Create and accept a schedule
    scheduleData = {
        "schedule_id": "S001",
        "bus_id": "B001",
        "route_number": "138",
        "day": Day.MONDAY.value,
        "distance": "22km",
    }
    call(admin, "POST", ADMIN_URL + URL_SCHEDULE, HTTPStatus.CREATED, data=scheduleData)
    confirmation = {
        "schedule_id": "S001",
        "confirmation_status": ConfirmationStatus.ACCEPTED.value,
    }
    call(operator, "PATCH", OPERATOR_URL + URL_SCHEDULE_CONFIRMATION, data=confirmation)
    print("* Created and accepted schedule")


# Setup database
if __name__ == "__main__":
    parser = argparse.ArgumentParser()
    # remove tables
    parser.add_argument("-rm", action="store_true", help="remove tables")
    parser.add_argument("-cr", action="store_true", help="create tables")
    parser.add_argument("-init", action="store_true", help="initialize DB")
    parser.add_argument("-test", action="store_true", help="add test data")
    args = parser.parse_args()

    if args.cr:
        createTables()
    if args.init:
        initDB()
    if args.test:
        testDB()
    if args.rm:
        removeTables()
