from fastapi import FastAPI
from app.api import token, user, route, bus, schedule
from app.src.enums import AppID


# ------------------------------------------------------
# Create separate FastAPI apps for each user domain
# ------------------------------------------------------
app_auth = FastAPI(title="Auth APP")
app_admin = FastAPI(title="Admin APP")
app_operator = FastAPI(title="Operator APP")
app_commuter = FastAPI(title="Commuter APP")

# Tag each app with its AppID
app_auth.state.id = AppID.AUTH
app_admin.state.id = AppID.ADMIN
app_operator.state.id = AppID.OPERATOR
app_commuter.state.id = AppID.COMMUTER


# ------------------------------------------------------
# Auth routers
# ------------------------------------------------------
app_auth.include_router(token.route_auth)


# ------------------------------------------------------
# Admin routers
# ------------------------------------------------------
app_admin.include_router(user.route_admin)
app_admin.include_router(route.route_admin)
app_admin.include_router(bus.route_admin)
app_admin.include_router(schedule.route_admin)


# ------------------------------------------------------
# Operator routers
# ------------------------------------------------------
app_operator.include_router(route.route_operator)
app_operator.include_router(bus.route_operator)
app_operator.include_router(schedule.route_operator)


# ------------------------------------------------------
# Commuter routers
# ------------------------------------------------------
app_commuter.include_router(route.route_commuter)
app_commuter.include_router(bus.route_commuter)
app_commuter.include_router(schedule.route_commuter)
