"""Secure secret loading for production deployment."""
from pathlib import Path
import os
from typing import Optional, Tuple

from ..config import settings


def get_secret(secret_name: str, env_fallback: Optional[str] = None, required: bool = True) -> Optional[str]:
    """
    Load secret from Podman/Docker mount or environment variable.

    Priority:
    1. /run/secrets/{secret_name} (Podman/Docker secret mount)
    2. Environment variable (dev convenience)

    Args:
        secret_name: Name of the secret (e.g., 'openai_api_key')
        env_fallback: Environment variable name to check if secret file not found
        required: Raise when the secret is missing instead of returning None

    Returns:
        Secret value or None if not found and not required

    Raises:
        ValueError: If a required secret is not found in either location
    """
    secret_path = Path(f"/run/secrets/{secret_name}")
    if secret_path.exists():
        try:
            return secret_path.read_text().strip()
        except IOError as e:
            raise ValueError(f"Secret file exists but cannot be read: {secret_path}") from e

    if env_fallback:
        value = os.getenv(env_fallback)
        if value:
            return value

    if not required:
        return None

    raise ValueError(
        f"Secret '{secret_name}' not found. "
        f"Expected at {secret_path} or env var {env_fallback}"
    )


def get_openai_key() -> str:
    """Get OpenAI API key from settings or secure storage."""
    if settings.openai_api_key:
        return settings.openai_api_key
    return get_secret("openai_api_key", "OPENAI_API_KEY")  # type: ignore[return-value]


def get_reddit_credentials() -> Tuple[Optional[str], Optional[str]]:
    """Reddit app credentials; (None, None) means use the public endpoints."""
    client_id = settings.reddit_client_id or get_secret(
        "reddit_client_id", "REDDIT_CLIENT_ID", required=False
    )
    client_secret = settings.reddit_client_secret or get_secret(
        "reddit_client_secret", "REDDIT_CLIENT_SECRET", required=False
    )
    return client_id, client_secret
