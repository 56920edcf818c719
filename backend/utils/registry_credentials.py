"""
Registry Credentials Utility

Reads registry credentials from the Docker CLI config file (the same
~/.docker/config.json the Docker daemon client uses after `docker login`).
Only Docker Hub credentials are ever looked up, and only so the registry
token request gets the higher authenticated pull rate limit.
"""

import base64
import binascii
import json
import logging
from typing import Optional, Dict

from updates.types import CredentialStrategy, RegistryTarget

logger = logging.getLogger(__name__)

# Keys `docker login` has written for Docker Hub over the years
DOCKER_HUB_AUTH_KEYS = (
    "https://index.docker.io/v1/",
    "registry-1.docker.io",
    "docker.io",
)


def _decode_auth_entry(entry) -> Optional[Dict[str, str]]:
    """
    Decode one "auths" entry into {username, password}.

    Entries are either {"auth": base64("user:pass")} or carry explicit
    username/password fields.
    """
    if not isinstance(entry, dict):
        return None

    encoded = entry.get("auth")
    if encoded:
        try:
            decoded = base64.b64decode(encoded).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError, ValueError):
            logger.debug("Ignoring undecodable Docker config auth entry")
            return None
        username, sep, password = decoded.partition(":")
        if not sep or not username:
            return None
        return {"username": username, "password": password}

    username = entry.get("username")
    password = entry.get("password")
    if username and password:
        return {"username": username, "password": password}
    return None


def load_docker_hub_credentials(config_path: str) -> Optional[Dict[str, str]]:
    """
    Get Docker Hub credentials from a Docker CLI config file.

    Args:
        config_path: Path to config.json

    Returns:
        Dict with {username, password} if found, None otherwise.
        Missing or malformed files yield None, never an exception.
    """
    try:
        with open(config_path, "r", encoding="utf-8") as f:
            config = json.load(f)
    except FileNotFoundError:
        return None
    except (OSError, ValueError) as e:
        logger.debug(f"Could not read Docker config {config_path}: {e}")
        return None

    if not isinstance(config, dict):
        return None
    auths = config.get("auths")
    if not isinstance(auths, dict):
        return None

    for key in DOCKER_HUB_AUTH_KEYS:
        creds = _decode_auth_entry(auths.get(key))
        if creds:
            logger.debug(f"Using Docker Hub credentials from {config_path}")
            return creds

    return None


def get_registry_credentials(target: RegistryTarget, config_path: str) -> Optional[Dict[str, str]]:
    """
    Credentials to send on the token request for target, if any.

    Examples:
        nginx → docker_hub strategy → lookup in config.json
        ghcr.io/user/app → no strategy → None
    """
    if target.credential_strategy != CredentialStrategy.DOCKER_HUB:
        return None
    return load_docker_hub_credentials(config_path)


def encode_basic_auth(auth: Dict[str, str]) -> str:
    """
    Encode username:password as Basic authentication header.

    Returns:
        Basic auth header string (e.g., "Basic dXNlcjpwYXNz")
    """
    credentials = f"{auth['username']}:{auth['password']}"
    encoded = base64.b64encode(credentials.encode()).decode()
    return f"Basic {encoded}"
