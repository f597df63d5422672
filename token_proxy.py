import logging

import requests

import upstream
from config import ProxyConfig
from errors import AuthenticationError, ConfigurationError, MethodNotAllowed, ProxyError
from observability import Observability, redact


def handle_token_request(method: str, config: ProxyConfig, obs: Observability):
    """Exchange the configured client credentials for an access token.

    Returns a Flask response tuple ``(body, status)``. Upstream error
    responses are passed through with their own status and body.
    """
    record = obs.start_request("prokerala-token")
    try:
        if method != "POST":
            raise MethodNotAllowed("Only POST requests are supported")

        obs.log(
            record, logging.INFO, "Resolved credentials",
            client_id_present=bool(config.client_id),
            client_id_prefix=redact(config.client_id),
            client_secret_present=bool(config.client_secret),
        )
        if not config.client_id or not config.client_secret:
            raise ConfigurationError(
                "Prokerala client credentials are not configured",
                details={
                    "clientIdExists": bool(config.client_id),
                    "clientSecretExists": bool(config.client_secret),
                },
            )
        record.mark("config")

        response = upstream.request_access_token(
            config.token_url,
            config.client_id,
            config.client_secret,
            timeout=config.token_timeout_seconds,
        )
        record.mark("upstream")
        obs.finish(record, 200)
        return upstream.response_body(response), 200

    except ConfigurationError as e:
        obs.fail(record, e)
        obs.finish(record, e.status)
        body = e.to_dict()
        body["error"] = "Missing API credentials"
        return body, e.status

    except ProxyError as e:
        obs.fail(record, e)
        obs.finish(record, e.status)
        return e.to_dict(), e.status

    except requests.RequestException as e:
        record.mark("upstream")
        if e.response is not None:
            status = e.response.status_code
            obs.fail(record, e, upstream_status=status)
            obs.finish(record, status)
            return upstream.response_body(e.response), status

        error = AuthenticationError(
            str(e),
            suggestion="Check that the Prokerala credentials are set in the deployment environment.",
        )
        obs.fail(record, e)
        obs.finish(record, error.status)
        return error.to_dict(), error.status
