"""Test bus registration, the bus workflow and the schedule cascade."""

import pytest
from fastapi import status
from sqlalchemy.exc import SQLAlchemyError

from app.api import bus as bus_api
from app.src.db import Bus, Schedule
from app.src.enums import UserRole, WorkflowStatus

from helpers import addBus, addRoute, addSchedule, addUser

ADMIN_URL = "/admin/bus"
OPERATOR_URL = "/operator/bus"
COMMUTER_URL = "/commuter/bus"


@pytest.fixture
def route(session):
    return addRoute(session, "R1")


@pytest.fixture
def new_bus():
    return {
        "bus_id": "B1",
        "bus_number": "NB-1234",
        "route_id": "R1",
        "operator_username": "operator",
    }


class TestCreateBus:
    def test_operator_registers_pending_bus(self, operator_client, route, events):
        """Test the operator and status are forced whatever the form carries."""
        response = operator_client.post(
            OPERATOR_URL,
            data={
                "bus_id": "B1",
                "bus_number": "NB-1234",
                "route_id": "R1",
                "operator_username": "other",
                "workflow_status": WorkflowStatus.ACTIVE.value,
            },
        )

        assert response.status_code == status.HTTP_201_CREATED
        body = response.json()
        assert body["message"] == "Bus created successfully"
        assert body["bus"]["operator_username"] == "operator"
        assert body["bus"]["workflow_status"] == WorkflowStatus.PENDING
        assert events[-1]["bus_id"] == "B1"

    def test_admin_assigns_operator(self, admin_client, operator, route, new_bus):
        new_bus["workflow_status"] = WorkflowStatus.ACTIVE.value

        response = admin_client.post(ADMIN_URL, data=new_bus)

        assert response.status_code == status.HTTP_201_CREATED
        assert response.json()["bus"]["operator_username"] == "operator"
        assert response.json()["bus"]["workflow_status"] == WorkflowStatus.ACTIVE

    def test_admin_default_status(self, admin_client, operator, route, new_bus):
        response = admin_client.post(ADMIN_URL, data=new_bus)

        assert response.json()["bus"]["workflow_status"] == WorkflowStatus.PENDING

    def test_unknown_operator(self, admin_client, route, new_bus):
        new_bus["operator_username"] = "ghost"

        response = admin_client.post(ADMIN_URL, data=new_bus)

        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.headers["X-Error"] == "UnknownValue"

    def test_admin_is_not_an_operator(self, admin_client, route, new_bus):
        new_bus["operator_username"] = "admin"

        response = admin_client.post(ADMIN_URL, data=new_bus)

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.headers["X-Error"] == "InvalidOperator"

    def test_unknown_route(self, admin_client, operator, new_bus):
        response = admin_client.post(ADMIN_URL, data=new_bus)

        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.json()["detail"] == "Invalid route_id is provided"

    @pytest.mark.parametrize(
        "column, value", [("bus_id", "B001"), ("bus_number", "NB-B001")]
    )
    def test_duplicate(self, admin_client, operator, route, new_bus, session, column, value):
        addBus(session, route_id="R1")
        new_bus[column] = value

        response = admin_client.post(ADMIN_URL, data=new_bus)

        assert response.status_code == status.HTTP_409_CONFLICT
        assert response.json()["detail"] == f"The {column} already exists"

    def test_route_locked(self, operator_client, route, fake_redis, session):
        fake_redis.held.add("lock:route:R1")

        response = operator_client.post(
            OPERATOR_URL, data={"bus_id": "B1", "bus_number": "N1", "route_id": "R1"}
        )

        assert response.status_code == status.HTTP_406_NOT_ACCEPTABLE
        assert session.query(Bus).count() == 0

    def test_lock_released(self, operator_client, route, fake_redis):
        operator_client.post(
            OPERATOR_URL, data={"bus_id": "B1", "bus_number": "N1", "route_id": "R1"}
        )

        assert fake_redis.held == set()


class TestBusWorkflow:
    """Test the activation flow between operators and admins."""

    def test_activation_needs_admin(self, operator_client, admin_client, route, session):
        """Test an operator can withdraw a bus only after an admin activated it."""
        operator_client.post(
            OPERATOR_URL, data={"bus_id": "B1", "bus_number": "N1", "route_id": "R1"}
        )
        inactive = {"bus_id": "B1", "workflow_status": WorkflowStatus.INACTIVE.value}

        response = operator_client.patch(OPERATOR_URL, data=inactive)
        assert response.status_code == status.HTTP_403_FORBIDDEN
        assert response.headers["X-Error"] == "InvalidStateTransition"

        response = admin_client.patch(
            ADMIN_URL, data={"bus_id": "B1", "workflow_status": WorkflowStatus.ACTIVE.value}
        )
        assert response.status_code == status.HTTP_200_OK
        assert response.json()["bus"]["workflow_status"] == WorkflowStatus.ACTIVE

        response = operator_client.patch(OPERATOR_URL, data=inactive)
        assert response.status_code == status.HTTP_200_OK
        assert response.json()["message"] == "Bus updated successfully"

        bus = session.query(Bus).filter(Bus.bus_id == "B1").one()
        assert bus.workflow_status == WorkflowStatus.INACTIVE

    def test_operator_cannot_reactivate(self, operator_client, operator, route, session):
        addBus(session, "B1", route_id="R1", workflow_status=WorkflowStatus.INACTIVE)

        response = operator_client.patch(
            OPERATOR_URL,
            data={"bus_id": "B1", "workflow_status": WorkflowStatus.ACTIVE.value},
        )

        assert response.status_code == status.HTTP_403_FORBIDDEN

    @pytest.mark.parametrize("old", list(WorkflowStatus))
    def test_admin_moves_freely(self, admin_client, operator, route, session, old):
        bus = addBus(session, "B1", route_id="R1", workflow_status=old)

        response = admin_client.patch(
            ADMIN_URL,
            data={"bus_id": "B1", "workflow_status": WorkflowStatus.PENDING.value},
        )

        assert response.status_code == status.HTTP_200_OK
        session.refresh(bus)
        assert bus.workflow_status == WorkflowStatus.PENDING


class TestUpdateBus:
    def test_foreign_bus(self, other_operator_client, operator, route, session):
        addBus(session, "B1", route_id="R1", workflow_status=WorkflowStatus.ACTIVE)

        response = other_operator_client.patch(
            OPERATOR_URL,
            data={"bus_id": "B1", "workflow_status": WorkflowStatus.INACTIVE.value},
        )

        assert response.status_code == status.HTTP_403_FORBIDDEN
        assert response.headers["X-Error"] == "NoPermission"

    def test_location_report(self, operator_client, operator, route, session):
        bus = addBus(session, "B1", route_id="R1", workflow_status=WorkflowStatus.ACTIVE)

        response = operator_client.patch(
            OPERATOR_URL, data={"bus_id": "B1", "latitude": 6.9271, "longitude": 79.8612}
        )

        assert response.status_code == status.HTTP_200_OK
        body = response.json()["bus"]
        assert body["latitude"] == pytest.approx(6.9271)
        assert body["longitude"] == pytest.approx(79.8612)
        assert body["location_updated_on"] is not None
        session.refresh(bus)
        assert bus.workflow_status == WorkflowStatus.ACTIVE

    def test_half_location(self, operator_client, operator, route, session):
        addBus(session, "B1", route_id="R1")

        response = operator_client.patch(
            OPERATOR_URL, data={"bus_id": "B1", "latitude": 6.9271}
        )

        assert response.status_code == status.HTTP_406_NOT_ACCEPTABLE
        assert response.json()["detail"] == "The longitude is missing"

    @pytest.mark.parametrize(
        "latitude, longitude", [(91, 79.8), (-91, 79.8), (6.9, 181), (6.9, -181)]
    )
    def test_location_out_of_range(
        self, operator_client, operator, route, session, latitude, longitude
    ):
        addBus(session, "B1", route_id="R1")

        response = operator_client.patch(
            OPERATOR_URL,
            data={"bus_id": "B1", "latitude": latitude, "longitude": longitude},
        )

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

    def test_unknown_bus(self, operator_client):
        response = operator_client.patch(
            OPERATOR_URL, data={"bus_id": "B9", "latitude": 6.9, "longitude": 79.8}
        )

        assert response.status_code == status.HTTP_404_NOT_FOUND

    def test_admin_reassigns(self, admin_client, operator, other_operator, route, session):
        bus = addBus(session, "B1", route_id="R1")
        addRoute(session, "R2")

        response = admin_client.patch(
            ADMIN_URL,
            data={"bus_id": "B1", "operator_username": "other", "route_id": "R2"},
        )

        assert response.status_code == status.HTTP_200_OK
        session.refresh(bus)
        assert bus.operator_username == "other"
        assert bus.route_id == "R2"

    def test_admin_unknown_route(self, admin_client, operator, route, session):
        addBus(session, "B1", route_id="R1")

        response = admin_client.patch(ADMIN_URL, data={"bus_id": "B1", "route_id": "R9"})

        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.headers["X-Error"] == "UnknownValue"

    def test_admin_operator_is_admin(self, admin_client, operator, route, session):
        addBus(session, "B1", route_id="R1")

        response = admin_client.patch(
            ADMIN_URL, data={"bus_id": "B1", "operator_username": "admin"}
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_admin_duplicate_bus_number(self, admin_client, operator, route, session):
        addBus(session, "B1", route_id="R1")
        addBus(session, "B2", route_id="R1")

        response = admin_client.patch(
            ADMIN_URL, data={"bus_id": "B1", "bus_number": "NB-B2"}
        )

        assert response.status_code == status.HTTP_409_CONFLICT

    def test_admin_keeps_bus_number(self, admin_client, operator, route, session):
        addBus(session, "B1", route_id="R1")

        response = admin_client.patch(
            ADMIN_URL, data={"bus_id": "B1", "bus_number": "NB-B1"}
        )

        assert response.status_code == status.HTTP_200_OK


class TestDeleteBus:
    @pytest.fixture
    def schedules(self, operator, route, session):
        addBus(session, "B1", route_id="R1")
        addBus(session, "B2", route_id="R1")
        for number in range(3):
            addSchedule(session, f"S{number}", bus_id="B1", route_number="R1")
        addSchedule(session, "S9", bus_id="B2", route_number="R1")

    def test_cascade(self, admin_client, schedules, session):
        response = admin_client.request("DELETE", ADMIN_URL, data={"bus_id": "B1"})

        assert response.status_code == status.HTTP_200_OK
        assert response.json() == {
            "message": "Bus and associated schedules deleted successfully"
        }
        assert session.query(Bus).filter(Bus.bus_id == "B1").count() == 0
        assert session.query(Schedule).filter(Schedule.bus_id == "B1").count() == 0
        assert session.query(Schedule).filter(Schedule.bus_id == "B2").count() == 1

    def test_schedule_removal_fails(self, admin_client, schedules, session, monkeypatch):
        """Test the bus stays deleted when its schedules cannot be removed."""

        def failingRemoval(session, bus_id):
            raise SQLAlchemyError("schedule table unavailable")

        monkeypatch.setattr(bus_api, "removeSchedules", failingRemoval)

        response = admin_client.request("DELETE", ADMIN_URL, data={"bus_id": "B1"})

        assert response.status_code == status.HTTP_200_OK
        assert response.json() == {"message": "Bus deleted but failed to delete schedules"}
        assert session.query(Bus).filter(Bus.bus_id == "B1").count() == 0
        assert session.query(Schedule).filter(Schedule.bus_id == "B1").count() == 3

    def test_operator_deletes_own_bus(self, operator_client, schedules, session):
        response = operator_client.request("DELETE", OPERATOR_URL, data={"bus_id": "B1"})

        assert response.status_code == status.HTTP_200_OK
        assert session.query(Bus).count() == 1

    def test_operator_cannot_delete_foreign_bus(
        self, other_operator_client, schedules, session
    ):
        response = other_operator_client.request(
            "DELETE", OPERATOR_URL, data={"bus_id": "B1"}
        )

        assert response.status_code == status.HTTP_403_FORBIDDEN
        assert session.query(Bus).count() == 2
        assert session.query(Schedule).count() == 4

    def test_unknown_bus(self, admin_client):
        response = admin_client.request("DELETE", ADMIN_URL, data={"bus_id": "B9"})

        assert response.status_code == status.HTTP_404_NOT_FOUND


class TestFetchBuses:
    @pytest.fixture
    def fleet(self, operator, other_operator, route, session):
        addBus(session, "B1", route_id="R1", workflow_status=WorkflowStatus.ACTIVE)
        addBus(session, "B2", route_id="R1", workflow_status=WorkflowStatus.PENDING)
        addBus(
            session,
            "B3",
            operator_username="other",
            route_id="R1",
            workflow_status=WorkflowStatus.ACTIVE,
        )

    def test_admin_sees_all(self, admin_client, fleet):
        response = admin_client.get(ADMIN_URL)

        assert {bus["bus_id"] for bus in response.json()} == {"B1", "B2", "B3"}

    def test_admin_filters_by_operator(self, admin_client, fleet):
        response = admin_client.get(ADMIN_URL, params={"operator_username": "other"})

        assert [bus["bus_id"] for bus in response.json()] == ["B3"]

    def test_operator_sees_own_buses(self, operator_client, fleet):
        response = operator_client.get(OPERATOR_URL)

        assert {bus["bus_id"] for bus in response.json()} == {"B1", "B2"}

    def test_operator_status_filter(self, operator_client, fleet):
        response = operator_client.get(
            OPERATOR_URL, params={"workflow_status": WorkflowStatus.PENDING.value}
        )

        assert [bus["bus_id"] for bus in response.json()] == ["B2"]

    def test_commuter_sees_active_buses(self, anonymous_client, fleet):
        response = anonymous_client.get(COMMUTER_URL)

        assert response.status_code == status.HTTP_200_OK
        assert {bus["bus_id"] for bus in response.json()} == {"B1", "B3"}

    def test_commuter_cannot_see_pending(self, anonymous_client, fleet):
        response = anonymous_client.get(
            COMMUTER_URL, params={"workflow_status": WorkflowStatus.PENDING.value}
        )

        assert {bus["bus_id"] for bus in response.json()} == {"B1", "B3"}

    def test_disabled_operator_keeps_buses(self, admin_client, session, route):
        """Test buses are listed whatever the state of their operator account."""
        addUser(session, "retired", UserRole.BUS_OPERATOR, status=False)
        addBus(session, "B7", operator_username="retired", route_id="R1")

        response = admin_client.get(ADMIN_URL, params={"operator_username": "retired"})

        assert [bus["bus_id"] for bus in response.json()] == ["B7"]
