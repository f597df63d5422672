import logging

from chat_proxy import CORS_HEADERS, preflight_response, utc_timestamp
from config import ProxyConfig
from observability import Observability


def _presence(value) -> str:
    return "present" if value else "missing"


def handle_diagnostic(method: str, path: str, config: ProxyConfig, obs: Observability):
    """Report request details and which credentials are configured."""
    if method == "OPTIONS":
        return preflight_response()

    record = obs.start_request("diagnostic")
    try:
        body = {
            "status": "ok",
            "message": "Diagnostic endpoint is operational",
            "request": {"method": method, "path": path},
            "environment": {
                "deployment": config.environment,
                "prokerala_client_id": _presence(config.client_id),
                "prokerala_client_secret": _presence(config.client_secret),
                "together_api_key": _presence(config.chat_api_key),
                "cloud_logging": "enabled" if obs.cloud_logger is not None else "disabled",
            },
            "timestamp": utc_timestamp(),
        }
        status = 200
    except Exception as e:
        obs.fail(record, e)
        body = {
            "status": "error",
            "message": "An error occurred in the diagnostic endpoint",
            "error": str(e),
        }
        status = 500

    obs.log(record, logging.DEBUG, "Diagnostic served")
    obs.finish(record, status)
    return body, status, CORS_HEADERS
