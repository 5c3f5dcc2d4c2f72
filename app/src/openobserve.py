import base64, json, requests
from logging import getLogger
from requests import Response

from app.src.constants import (
    OPENOBSERVE_ENABLED,
    OPENOBSERVE_HOST,
    OPENOBSERVE_ORG,
    OPENOBSERVE_PASSWORD,
    OPENOBSERVE_PORT,
    OPENOBSERVE_PROTOCOL,
    OPENOBSERVE_STREAM,
    OPENOBSERVE_TIMEOUT,
    OPENOBSERVE_USERNAME,
)

# Prepare Basic Auth credentials
credentials = base64.b64encode(
    bytes(OPENOBSERVE_USERNAME + ":" + OPENOBSERVE_PASSWORD, "utf-8")
).decode("utf-8")

# Default headers for all requests
headers = {"Content-type": "application/json", "Authorization": "Basic " + credentials}

# Construct OpenObserve endpoint URL
openobserve_host = f"{OPENOBSERVE_PROTOCOL}://{OPENOBSERVE_HOST}:{OPENOBSERVE_PORT}"
openobserve_url = f"{openobserve_host}/api/{OPENOBSERVE_ORG}/{OPENOBSERVE_STREAM}/_json"

logger = getLogger("uvicorn.error")


def logEvent(eventData: dict) -> Response | None:
    """
    Send an audit event to the configured OpenObserve instance.

    The event is serialized as JSON and posted to the stream's ingestion API
    using Basic authentication. An unreachable log server must not fail the
    request that already succeeded, so transport errors are only reported to
    the local error log.

    Args:
        eventData (dict): The event to be sent.
            Example:
                {
                    "_method": "PATCH",
                    "_path": "/operator/bus",
                    "_app_id": 3,
                    "_username": "op1",
                }

    Returns:
        requests.Response | None: The API response, or None when ingestion is
        disabled or the server could not be reached.
    """
    if not OPENOBSERVE_ENABLED:
        return None
    try:
        return requests.post(
            openobserve_url,
            headers=headers,
            data=json.dumps(eventData, default=str),
            timeout=OPENOBSERVE_TIMEOUT,
        )
    except requests.RequestException as e:
        logger.warning(f"OpenObserve ingestion failed: {e}")
        return None
