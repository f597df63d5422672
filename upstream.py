import logging

import requests

logger = logging.getLogger(__name__)


def request_access_token(
    token_url: str,
    client_id: str,
    client_secret: str,
    timeout: float = None,
) -> requests.Response:
    """
    Exchanges client credentials for an access token with a single
    ``client_credentials`` grant.

    Raises ``requests.HTTPError`` (with ``.response`` set) when the token
    endpoint answers with a failure status, and other
    ``requests.RequestException`` subclasses when no answer arrives.
    """
    logger.info(f"Requesting access token from {token_url}")
    response = requests.post(
        token_url,
        data={
            "grant_type": "client_credentials",
            "client_id": client_id,
            "client_secret": client_secret,
        },
        headers={"Content-Type": "application/x-www-form-urlencoded"},
        timeout=timeout,
    )
    response.raise_for_status()
    logger.info(f"Token endpoint responded with {response.status_code}")
    return response


def post_chat_completion(
    chat_url: str,
    api_key: str,
    payload: dict,
    timeout: float,
) -> requests.Response:
    """Forward a chat-completion payload. One attempt, bounded by ``timeout``."""
    logger.info(
        f"Forwarding chat completion: model={payload.get('model')}, "
        f"messages={len(payload.get('messages', []))}, timeout={timeout}s"
    )
    response = requests.post(
        chat_url,
        json=payload,
        headers={
            "Content-Type": "application/json",
            "Authorization": f"Bearer {api_key}",
        },
        timeout=timeout,
    )
    response.raise_for_status()
    return response


def response_body(response: requests.Response):
    """Decoded JSON body, or the raw text when the body is not JSON."""
    try:
        return response.json()
    except ValueError:
        return response.text
