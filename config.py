import os
import logging
from dataclasses import dataclass, field
from typing import Mapping, Optional, Sequence

logger = logging.getLogger(__name__)

PROKERALA_TOKEN_URL = "https://api.prokerala.com/token"
TOGETHER_CHAT_URL = "https://api.together.xyz/v1/chat/completions"

CLIENT_ID_VARS = (
    "VITE_PROKERALA_CLIENT_ID",
    "PROKERALA_CLIENT_ID",
    "NEXT_PUBLIC_PROKERALA_CLIENT_ID",
)
CLIENT_SECRET_VARS = (
    "VITE_PROKERALA_CLIENT_SECRET",
    "PROKERALA_CLIENT_SECRET",
    "NEXT_PUBLIC_PROKERALA_CLIENT_SECRET",
)
CHAT_API_KEY_VARS = ("TOGETHER_API_KEY", "VITE_TOGETHER_API_KEY")
ENVIRONMENT_VARS = ("VERCEL_ENV", "APP_ENV")


@dataclass(frozen=True)
class ChatLimits:
    """Tunables for the chat proxy's size checks and parameter bounds."""

    # Characters of message content, used as a rough token count
    max_estimated_tokens: int = 10000
    max_requested_tokens: int = 1000
    max_tokens_cap: int = 800
    default_max_tokens: int = 500
    default_temperature: float = 0.3
    # Kept below the platform's invocation deadline
    upstream_timeout_seconds: float = 8.0
    min_api_key_length: int = 20


@dataclass(frozen=True)
class ProxyConfig:
    client_id: Optional[str] = None
    client_secret: Optional[str] = None
    chat_api_key: Optional[str] = None
    environment: str = "development"
    cloud_logging_enabled: bool = False
    token_url: str = PROKERALA_TOKEN_URL
    chat_url: str = TOGETHER_CHAT_URL
    # None leaves the HTTP client's default in place
    token_timeout_seconds: Optional[float] = None
    limits: ChatLimits = field(default_factory=ChatLimits)

    @property
    def is_production(self) -> bool:
        return self.environment == "production"


def first_set(environ: Mapping[str, str], names: Sequence[str]) -> Optional[str]:
    """Return the first non-empty value among the given variable names."""
    for name in names:
        value = environ.get(name)
        if value:
            return value
    return None


def load_config(environ: Optional[Mapping[str, str]] = None) -> ProxyConfig:
    """Resolve the environment into a ProxyConfig. Called once at startup."""
    if environ is None:
        environ = os.environ

    flag = environ.get("CLOUD_LOGGING_ENABLED", "").strip().lower()

    return ProxyConfig(
        client_id=first_set(environ, CLIENT_ID_VARS),
        client_secret=first_set(environ, CLIENT_SECRET_VARS),
        chat_api_key=first_set(environ, CHAT_API_KEY_VARS),
        environment=first_set(environ, ENVIRONMENT_VARS) or "development",
        cloud_logging_enabled=flag in ("1", "true", "yes"),
    )


def validate_environment(config: ProxyConfig) -> list:
    """Log which credentials are missing. Returns their names, never raises."""
    required = {
        "PROKERALA_CLIENT_ID": config.client_id,
        "PROKERALA_CLIENT_SECRET": config.client_secret,
        "TOGETHER_API_KEY": config.chat_api_key,
    }

    missing = [name for name, value in required.items() if not value]
    if missing:
        logger.warning(f"Missing environment variables: {', '.join(missing)}")
    else:
        logger.info("All required environment variables are set")

    logger.info(f"Running in {config.environment} environment")
    return missing
