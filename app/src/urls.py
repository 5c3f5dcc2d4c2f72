"""
API Endpoint URL Constants

This module defines the URL paths used throughout the application
for accessing the accounts and the transport resources.

These URLs are relative paths, they are prefixed by the mount point of the
application serving them (`/auth`, `/admin`, `/operator` or `/commuter`).
"""

# -------------------------------
# Authentication
# -------------------------------
URL_TOKEN = "/account/token"
URL_PASSWORD = "/account/password"

# -------------------------------
# Account
# -------------------------------
URL_ACCOUNT = "/account"

# -------------------------------
# Transport
# -------------------------------
URL_ROUTE = "/route"
URL_BUS = "/bus"
URL_SCHEDULE = "/schedule"
URL_SCHEDULE_CONFIRMATION = "/schedule/confirmation"
