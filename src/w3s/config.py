"""Configuration loading and API token storage."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path

import keyring
from keyring.errors import KeyringError

from w3s.constants import KEYRING_KEY, KEYRING_SERVICE, TOKEN_ENV_VAR
from w3s.exceptions import NoTokenError
from w3s.models import UploadConfig

logger = logging.getLogger(__name__)

CONFIG_DIR = Path.home() / ".w3s"
DEFAULT_CONFIG_PATH = CONFIG_DIR / "config.json"

# JSON types accepted for each config file key
_FIELD_TYPES: dict[str, tuple[type, ...]] = {
    "endpoint": (str,),
    "chunk_size_mb": (int,),
    "max_concurrent_uploads": (int,),
    "cleanup": (bool,),
    "skip_chunking": (bool,),
    "timeout_seconds": (int, float, type(None)),
    "carbites_bin": (str,),
    "ipfs_car_bin": (str,),
    "split_strategy": (str,),
}


def get_token() -> str | None:
    """Get the web3.storage token: system keyring first, then ``W3S_TOKEN``.

    Returns:
        The token, or ``None`` if it is not configured anywhere.
    """
    try:
        token = keyring.get_password(KEYRING_SERVICE, KEYRING_KEY)
    except KeyringError as exc:
        logger.warning("Could not read token from keyring: %s", exc)
        token = None
    if token:
        return token

    token = os.environ.get(TOKEN_ENV_VAR)
    if token:
        return token
    return None


def require_token() -> str:
    """Like :func:`get_token` but raise when no token is found.

    Raises:
        NoTokenError: With actionable setup instructions.
    """
    token = get_token()
    if token is None:
        raise NoTokenError(
            "No API token set.\n"
            "Set it with: w3s token YOUR_TOKEN\n"
            f"Or: export {TOKEN_ENV_VAR}=your-token"
        )
    return token


def set_token(token: str) -> None:
    """Persist *token* in the system keyring.

    Raises:
        ValueError: If *token* is empty or whitespace.
    """
    if not token or not token.strip():
        raise ValueError("API token cannot be empty")
    keyring.set_password(KEYRING_SERVICE, KEYRING_KEY, token.strip())
    logger.debug("Stored token in keyring service %s", KEYRING_SERVICE)


def delete_token() -> bool:
    """Remove the stored token. Returns ``False`` if none was stored."""
    if not keyring.get_password(KEYRING_SERVICE, KEYRING_KEY):
        return False
    keyring.delete_password(KEYRING_SERVICE, KEYRING_KEY)
    return True


def mask_token(token: str) -> str:
    """Mask all but the first 8 characters of *token*."""
    if len(token) > 8:
        return token[:8] + "*" * (len(token) - 8)
    return token[:2] + "*" * max(1, len(token) - 2)


def load_upload_config(config_path: Path | None = None) -> UploadConfig:
    """Load ``put-car`` configuration from JSON, falling back to defaults.

    Reads ``~/.w3s/config.json`` when *config_path* is ``None``. A missing
    file yields an ``UploadConfig`` with defaults. Unknown keys are ignored.
    The token always comes from :func:`get_token`, never from the file.

    Args:
        config_path: Optional explicit path to a JSON config file.

    Returns:
        UploadConfig populated from file + keyring.

    Raises:
        FileNotFoundError: If an explicit *config_path* does not exist.
        ValueError: If the file is not a JSON object or a value has the
            wrong type.
    """
    explicit = config_path is not None
    if config_path is None:
        config_path = DEFAULT_CONFIG_PATH

    data: dict = {}
    if config_path.exists():
        with open(config_path) as f:
            data = json.load(f)
    elif explicit:
        raise FileNotFoundError(f"Config file not found: {config_path}")

    if not isinstance(data, dict):
        raise ValueError(
            f"Config file {config_path} must contain a JSON object, "
            f"got {type(data).__name__}"
        )

    # Build kwargs from JSON data, only including recognised fields
    kwargs = {k: v for k, v in data.items() if k in _FIELD_TYPES}
    for key, value in kwargs.items():
        _check_type(key, value, config_path)
    ignored = sorted(set(data) - set(_FIELD_TYPES))
    if ignored:
        logger.warning("Ignoring unknown config keys in %s: %s", config_path, ", ".join(ignored))

    config = UploadConfig(**kwargs)
    config.token = get_token()
    return config


def _check_type(key: str, value: object, config_path: Path) -> None:
    expected = _FIELD_TYPES[key]
    # bool is an int subclass; only the bool fields take true/false
    if isinstance(value, bool) and bool not in expected:
        ok = False
    else:
        ok = isinstance(value, expected)
    if not ok:
        names = " or ".join(
            "null" if t is type(None) else t.__name__ for t in expected
        )
        raise ValueError(
            f"Invalid value for {key!r} in {config_path}: expected {names}, "
            f"got {value!r}"
        )
