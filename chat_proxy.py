import json
import math
import logging
import traceback
from datetime import datetime, timezone

import requests

import upstream
from config import ChatLimits, ProxyConfig
from errors import (
    ConfigurationError,
    HealthDegraded,
    InvalidRequest,
    MethodNotAllowed,
    ProxyError,
    RequestTooLarge,
    UpstreamError,
    UpstreamTimeout,
)
from observability import Observability, RequestRecord, redact

CORS_HEADERS = {
    'Access-Control-Allow-Credentials': 'true',
    'Access-Control-Allow-Origin': '*',
    'Access-Control-Allow-Methods': 'GET,OPTIONS,PATCH,DELETE,POST,PUT',
    'Access-Control-Allow-Headers': (
        'X-CSRF-Token, X-Requested-With, Accept, Accept-Version, Content-Length, '
        'Content-MD5, Content-Type, Date, X-Api-Version, Authorization'
    ),
    'Access-Control-Max-Age': '86400',
}

HEALTH_MARKERS = ("/health", "/ping")
STACK_LINES = 10


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def is_health_path(path: str) -> bool:
    return any(marker in (path or "") for marker in HEALTH_MARKERS)


def preflight_response():
    return "", 204, CORS_HEADERS


def _is_number(value) -> bool:
    """Finite, non-negative JSON number."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    if isinstance(value, float) and not math.isfinite(value):
        return False
    return value >= 0


def validate_body(body) -> dict:
    """Check the request has the shape of a chat-completion request."""
    if not isinstance(body, dict):
        raise InvalidRequest("Request body is missing or is not a JSON object")
    if not body.get("model"):
        raise InvalidRequest('The "model" parameter is required')

    messages = body.get("messages")
    if not isinstance(messages, list) or not messages:
        raise InvalidRequest('The "messages" parameter must be a non-empty array')

    for name in ("max_tokens", "temperature"):
        value = body.get(name)
        if value is not None and not _is_number(value):
            raise InvalidRequest(f'The "{name}" parameter must be a non-negative number')
    return body


def estimate_tokens(messages: list) -> int:
    """Approximate token count: total characters of message content."""
    total = 0
    for message in messages:
        content = message.get("content") if isinstance(message, dict) else None
        if content is None:
            continue
        if isinstance(content, str):
            total += len(content)
        else:
            total += len(json.dumps(content))
    return total


def check_size(body: dict, limits: ChatLimits) -> int:
    """Reject requests likely to run past the invocation deadline."""
    estimate = estimate_tokens(body["messages"])
    requested = body.get("max_tokens")

    if estimate > limits.max_estimated_tokens:
        raise RequestTooLarge(
            "Request is too large to process within the time limit. Please shorten your messages.",
            estimated_tokens=estimate,
            limit=limits.max_estimated_tokens,
        )
    if requested is not None and requested > limits.max_requested_tokens:
        raise RequestTooLarge(
            "Requested max_tokens is too large to process within the time limit.",
            max_tokens=requested,
            limit=limits.max_requested_tokens,
        )
    return estimate


def build_payload(body: dict, limits: ChatLimits) -> dict:
    """Copy of the caller's body with output length and temperature bounded."""
    payload = dict(body)

    requested = body.get("max_tokens")
    if requested is None:
        requested = limits.default_max_tokens
    payload["max_tokens"] = min(requested, limits.max_tokens_cap)

    if body.get("temperature") is None:
        payload["temperature"] = limits.default_temperature
    return payload


def _failure_body(error: ProxyError, record: RequestRecord) -> dict:
    body = error.to_dict()
    body["request_id"] = record.request_id
    body["_debug"] = record.to_debug()
    return body


def _is_timeout(error: requests.RequestException) -> bool:
    # HTTP errors carry the reason phrase ("Gateway Timeout") in their message
    if error.response is not None:
        return False
    return isinstance(error, requests.Timeout) or "timeout" in str(error).lower()


def _error_code(error: Exception):
    """errno of the first OS-level error wrapped inside a transport failure."""
    pending = [error]
    seen = set()
    while pending:
        current = pending.pop(0)
        if current is None or id(current) in seen:
            continue
        seen.add(id(current))

        errno = getattr(current, "errno", None)
        if errno is not None:
            return errno

        pending.append(getattr(current, "reason", None))
        pending.extend(arg for arg in getattr(current, "args", ()) if isinstance(arg, BaseException))
        pending.append(current.__cause__ if isinstance(current, BaseException) else None)
        pending.append(current.__context__ if isinstance(current, BaseException) else None)
    return None


def _truncated_stack(error: Exception) -> list:
    lines = traceback.format_exception(type(error), error, error.__traceback__)
    return "".join(lines).splitlines()[-STACK_LINES:]


def classify_upstream_failure(error: requests.RequestException, config: ProxyConfig) -> ProxyError:
    """Map a failed upstream call onto the proxy's error types."""
    if _is_timeout(error):
        timeout_ms = int(config.limits.upstream_timeout_seconds * 1000)
        return UpstreamTimeout(
            f"The chat completion API did not respond within {timeout_ms}ms",
            timeout_ms=timeout_ms,
        )

    if error.response is not None:
        status = error.response.status_code
        data = upstream.response_body(error.response)
        upstream_error = data.get("error") if isinstance(data, dict) else None

        if isinstance(upstream_error, dict):
            message = upstream_error.get("message") or str(error)
        elif upstream_error:
            message = str(upstream_error)
        else:
            message = str(error)

        failure = UpstreamError(message, status=status)
        if upstream_error:
            failure.error = upstream_error
        return failure

    details = {"name": type(error).__name__, "code": _error_code(error)}
    if not config.is_production:
        details["stack"] = _truncated_stack(error)
    return UpstreamError("Failed to reach the chat completion API", **details)


def health_check(config: ProxyConfig, obs: Observability):
    """Report whether the proxy is able to serve chat requests.

    Degraded configuration is reported with HTTP 200 and ``status: "error"``;
    only a failure of the check itself returns 500.
    """
    record = obs.start_request("together-chat-health")
    try:
        timestamp = utc_timestamp()
        api_key = config.chat_api_key
        if not api_key:
            raise HealthDegraded("API key is not configured", api_key_available=False)
        if len(api_key) < config.limits.min_api_key_length:
            raise HealthDegraded("API key appears to be invalid (too short)", api_key_available=True)

        obs.log(record, logging.INFO, "Health check passed", api_key_prefix=redact(api_key))
        body = {
            "status": "ok",
            "message": "Service is operational",
            "api_key_available": True,
            "timestamp": timestamp,
        }
        status = 200

    except HealthDegraded as e:
        obs.log(record, logging.WARNING, f"Health check degraded: {e.message}")
        body = {"status": "error", "error": e.message, "message": e.message, "timestamp": timestamp}
        body.update(e.details)
        status = e.status

    except Exception as e:
        obs.fail(record, e)
        body = {"status": "error", "message": "Health check failed", "error": str(e)}
        status = 500

    obs.finish(record, status)
    return body, status, CORS_HEADERS


def handle_chat_request(method, path, body, query, config: ProxyConfig, obs: Observability):
    """Validate, bound and forward a chat-completion request.

    Returns a Flask response tuple ``(body, status, headers)``; every
    response carries the CORS headers.
    """
    if is_health_path(path):
        return health_check(config, obs)
    if method == "OPTIONS":
        return preflight_response()

    limits = config.limits
    record = obs.start_request("together-chat")
    try:
        if method != "POST":
            raise MethodNotAllowed("Only POST requests are supported for the chat endpoint")

        validate_body(body)
        estimate = check_size(body, limits)
        record.mark("validate")
        obs.log(
            record, logging.INFO, "Request validated",
            model=body["model"], messages=len(body["messages"]), estimated_tokens=estimate,
        )

        if (query or {}).get("test_mode") == "true":
            obs.finish(record, 200)
            return {
                "status": "success",
                "message": "Test mode - no API call made",
                "request_received": {
                    "model": body["model"],
                    "message_count": len(body["messages"]),
                },
            }, 200, CORS_HEADERS

        if not config.chat_api_key:
            raise ConfigurationError("API key is not configured")
        record.mark("config")

        payload = build_payload(body, limits)
        response = upstream.post_chat_completion(
            config.chat_url,
            config.chat_api_key,
            payload,
            timeout=limits.upstream_timeout_seconds,
        )
        record.mark("upstream")

        result = upstream.response_body(response)
        record.mark("respond")
        if isinstance(result, dict):
            result = dict(result, _debug=record.to_debug())
        obs.finish(record, 200)
        return result, 200, CORS_HEADERS

    except ProxyError as e:
        failure = e

    except requests.RequestException as e:
        record.mark("upstream")
        obs.fail(record, e)
        failure = classify_upstream_failure(e, config)

    except Exception as e:
        failure = UpstreamError(str(e) or "An unexpected error occurred", error_type=type(e).__name__)
        failure.error = "Server error"
        if not config.is_production:
            failure.details["stack"] = _truncated_stack(e)

    if record.error is None:
        obs.fail(record, failure)
    body = _failure_body(failure, record)
    if isinstance(failure, UpstreamTimeout):
        body["elapsed_ms"] = record.elapsed_ms()
    obs.finish(record, failure.status)
    return body, failure.status, CORS_HEADERS
