"""Module for resolving repository credentials from secrets."""

import base64
import binascii
from dataclasses import dataclass, field
import logging
from typing import Any

import yaml

from gitops_subscriber.client import Client
from gitops_subscriber.exceptions import CredentialError, ObjectNotFoundError
from gitops_subscriber.manifest import Channel

_LOGGER = logging.getLogger(__name__)

USER_KEY = "user"
"""Key of the git user id in the secret."""

PASSWORD_KEY = "password"
"""Key of the git password or personal access token in the secret."""


@dataclass
class Auth:
    """Authentication credentials."""

    username: str
    password: str = field(repr=False)


def _secret_value(secret: dict[str, Any], key: str) -> str:
    """Return a decoded value of the secret, preferring stringData."""
    name = (secret.get("metadata") or {}).get("name")
    if (string_data := secret.get("stringData")) and key in string_data:
        value = str(string_data[key])
    elif (data := secret.get("data")) and key in data:
        try:
            value = base64.b64decode(data[key], validate=True).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError) as err:
            raise CredentialError(
                f"Secret {name} contains an invalid value for {key}"
            ) from err
    else:
        raise CredentialError(f"Secret {name} does not contain {key}")
    # Values may be stored as quoted YAML strings
    try:
        loaded = yaml.safe_load(value)
    except yaml.YAMLError:
        return value
    return loaded if isinstance(loaded, str) else value


def get_auth_from_secret(secret: dict[str, Any]) -> Auth:
    """Return the username and password from the secret."""
    return Auth(
        username=_secret_value(secret, USER_KEY),
        password=_secret_value(secret, PASSWORD_KEY),
    )


async def resolve_credentials(client: Client, channel: Channel) -> Auth | None:
    """Return the credentials referenced by the channel, if any."""
    if channel.secret_ref is None:
        return None
    namespace = channel.secret_ref.namespace or channel.namespace
    try:
        secret = await client.get_secret(namespace, channel.secret_ref.name)
    except ObjectNotFoundError as err:
        raise CredentialError(
            f"Unable to get secret {namespace}/{channel.secret_ref.name} for channel {channel.namespaced_name}"
        ) from err
    _LOGGER.debug("Resolved credentials for channel %s", channel.namespaced_name)
    return get_auth_from_secret(secret)
