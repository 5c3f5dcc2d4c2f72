from enum import IntEnum


class AppID(IntEnum):
    AUTH = 1
    ADMIN = 2
    OPERATOR = 3
    COMMUTER = 4


class OrderIn(IntEnum):
    ASC = 1
    DESC = 2


class UserRole(IntEnum):
    ADMIN = 1
    BUS_OPERATOR = 2
    # Implicit role of unauthenticated public callers, never stored
    COMMUTER = 3


class WorkflowStatus(IntEnum):
    PENDING = 1
    ACTIVE = 2
    INACTIVE = 3


class ConfirmationStatus(IntEnum):
    PENDING = 1
    ACCEPTED = 2
    REJECTED = 3


class Day(IntEnum):
    MONDAY = 1
    TUESDAY = 2
    WEDNESDAY = 3
    THURSDAY = 4
    FRIDAY = 5
    SATURDAY = 6
    SUNDAY = 7


class Resource(IntEnum):
    USER = 1
    ROUTE = 2
    BUS = 3
    SCHEDULE = 4


class Action(IntEnum):
    CREATE = 1
    UPDATE = 2
    DELETE = 3
    READ = 4
    CONFIRM = 5


class Scope(IntEnum):
    ANY = 1
    OWN = 2
    PUBLIC = 3
