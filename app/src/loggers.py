from app.src import openobserve
from app.src.schemas import Identity, RequestInfo


def logEvent(identity: Identity, requestInfo: RequestInfo, data: dict) -> None:
    """
    Log an event to OpenObserve with request and user context.

    Args:
        identity (Identity): Identity of the authenticated caller.
        requestInfo (RequestInfo): Metadata about the current request.
        data (dict): Additional event-specific details to include in the log.

    Notes:
        - Automatically attaches `_app_id`, `_method`, `_path`, `_username`
          and `_user_role`.
        - Callers must strip secrets (password hashes) from `data`.
    """
    logDetails = {
        "_method": requestInfo.method,
        "_path": requestInfo.path,
        "_app_id": requestInfo.app_id,
        "_username": identity.username,
        "_user_role": int(identity.user_role),
    }
    logDetails.update(data)
    openobserve.logEvent(logDetails)
