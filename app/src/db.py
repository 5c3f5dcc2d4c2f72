from sqlalchemy import (
    TEXT,
    Boolean,
    Column,
    DateTime,
    Float,
    Integer,
    String,
    create_engine,
    func,
)
from sqlalchemy.orm import declarative_base, sessionmaker

from app.src.constants import DB_URL
from app.src.enums import ConfirmationStatus, WorkflowStatus


# Global DBMS variables
engine = create_engine(url=DB_URL, echo=False)
sessionMaker = sessionmaker(bind=engine, expire_on_commit=False)
ORMbase = declarative_base()


# ----------------------------------- Account DB Models ---------------------------------------#
class User(ORMbase):
    """
    Represents a system account, either an administrator or a bus operator.

    Commuters never own an account, they use the public API anonymously.

    Columns:
        id (Integer):
            Primary key. Unique identifier for the user.

        username (String(32)):
            Unique name used for login and as the reference key from `bus.operator_username`.
            Alphanumeric only, 3-30 characters long.
            Must not be null and unique.

        password (TEXT):
            Argon2 hash of the account password.
            Plaintext should never be stored here.

        user_role (Integer):
            Mapped from the `UserRole` enum.
            Only `ADMIN` and `BUS_OPERATOR` are assignable.

        first_name (TEXT):
            Given name of the user.

        last_name (TEXT):
            Family name of the user.

        email (String(256)):
            Contact email address in RFC 5322 format.
            Must be unique.

        nic (String(12)):
            National identity card number, 10-12 characters long.
            Must be unique.

        status (Boolean):
            Whether the account is enabled. Disabled accounts cannot sign in.

        updated_on (DateTime):
            Timestamp automatically updated whenever the account is modified.

        created_on (DateTime):
            Timestamp of when the account was created.
    """

    __tablename__ = "user"

    id = Column(Integer, primary_key=True)
    username = Column(String(32), nullable=False, unique=True)
    password = Column(TEXT, nullable=False)
    user_role = Column(Integer, nullable=False)
    first_name = Column(TEXT, nullable=False)
    last_name = Column(TEXT, nullable=False)
    email = Column(String(256), nullable=False, unique=True)
    nic = Column(String(12), nullable=False, unique=True)
    status = Column(Boolean, nullable=False, default=True)
    # Metadata
    updated_on = Column(DateTime(timezone=True), onupdate=func.now())
    created_on = Column(DateTime(timezone=True), nullable=False, default=func.now())


# ----------------------------------- Transport DB Models -------------------------------------#
class Route(ORMbase):
    """
    Represents a bus route between two locations.

    Columns:
        id (Integer):
            Primary key. Unique identifier for the route.

        route_number (String(32)):
            Public route number, used as the reference key from buses and schedules.
            Must be non-null and unique.

        route_name (String(128)):
            Descriptive name of the route.

        start_location (String(128)):
            Name of the location where the route starts.

        end_location (String(128)):
            Name of the location where the route ends.

        distance (String(32)):
            Free-form route length, ex:- "12km".

        status (Boolean):
            Whether the route is in service. Only routes in service are visible to commuters.

        updated_on (DateTime):
            Timestamp automatically updated when the route record is modified.

        created_on (DateTime):
            Timestamp indicating when the route was initially created.
    """

    __tablename__ = "route"

    id = Column(Integer, primary_key=True)
    route_number = Column(String(32), nullable=False, unique=True)
    route_name = Column(String(128), nullable=False)
    start_location = Column(String(128), nullable=False)
    end_location = Column(String(128), nullable=False)
    distance = Column(String(32), nullable=False)
    status = Column(Boolean, nullable=False, default=True)
    # Metadata
    updated_on = Column(DateTime(timezone=True), onupdate=func.now())
    created_on = Column(DateTime(timezone=True), nullable=False, default=func.now())


class Bus(ORMbase):
    """
    Represents a bus operated by a bus operator on a route.

    References to the operator and the route are plain lookup keys, they are
    validated by the API layer and not enforced as foreign keys.

    Columns:
        id (Integer):
            Primary key. Unique identifier for the record.

        bus_id (String(32)):
            Public bus identifier, used as the reference key from schedules.
            Must be non-null and unique.

        bus_number (String(32)):
            Vehicle registration number.
            Must be non-null and unique.

        operator_username (String(32)):
            `user.username` of the bus operator who owns the bus.
            Indexed for ownership scoped lookups.

        route_id (String(32)):
            `route.route_number` of the route the bus is assigned to.
            Indexed for the route deletion check.

        workflow_status (Integer):
            Mapped from the `WorkflowStatus` enum.
            Defaults to `WorkflowStatus.PENDING`.

        latitude (Float):
            Last reported latitude, within [-90, 90].

        longitude (Float):
            Last reported longitude, within [-180, 180].

        location_updated_on (DateTime):
            Timestamp of the last location report.

        updated_on (DateTime):
            Timestamp automatically updated whenever the record is modified.

        created_on (DateTime):
            Timestamp indicating when the bus record was initially created.
    """

    __tablename__ = "bus"

    id = Column(Integer, primary_key=True)
    bus_id = Column(String(32), nullable=False, unique=True)
    bus_number = Column(String(32), nullable=False, unique=True)
    operator_username = Column(String(32), nullable=False, index=True)
    route_id = Column(String(32), nullable=False, index=True)
    workflow_status = Column(Integer, nullable=False, default=WorkflowStatus.PENDING)
    # Live location
    latitude = Column(Float)
    longitude = Column(Float)
    location_updated_on = Column(DateTime(timezone=True))
    # Metadata
    updated_on = Column(DateTime(timezone=True), onupdate=func.now())
    created_on = Column(DateTime(timezone=True), nullable=False, default=func.now())


class Schedule(ORMbase):
    """
    Represents a weekly trip of a bus on a route, pending the operator's confirmation.

    Columns:
        id (Integer):
            Primary key. Unique identifier for the record.

        schedule_id (String(32)):
            Public schedule identifier.
            Must be non-null and unique.

        bus_id (String(32)):
            `bus.bus_id` of the assigned bus.
            Schedules of a deleted bus are removed along with it.

        route_number (String(32)):
            `route.route_number` of the route served.

        day (Integer):
            Mapped from the `Day` enum.

        distance (String(32)):
            Free-form trip length, ex:- "5km".

        confirmation_status (Integer):
            Mapped from the `ConfirmationStatus` enum.
            Defaults to `ConfirmationStatus.PENDING`.
            `ACCEPTED` and `REJECTED` are final.

        updated_on (DateTime):
            Timestamp automatically updated whenever the schedule is modified.

        created_on (DateTime):
            Timestamp when the schedule was created.
    """

    __tablename__ = "schedule"

    id = Column(Integer, primary_key=True)
    schedule_id = Column(String(32), nullable=False, unique=True)
    bus_id = Column(String(32), nullable=False, index=True)
    route_number = Column(String(32), nullable=False)
    day = Column(Integer, nullable=False)
    distance = Column(String(32), nullable=False)
    confirmation_status = Column(
        Integer, nullable=False, default=ConfirmationStatus.PENDING
    )
    # Metadata
    updated_on = Column(DateTime(timezone=True), onupdate=func.now())
    created_on = Column(DateTime(timezone=True), nullable=False, default=func.now())
