"""Secret lookup for credentials kept out of the TOML file."""

from __future__ import annotations

import os

ENV_PREFIX = "env:"


def env_reference_name(value: str | None) -> str | None:
    """Variable named by an ``env:VAR_NAME`` value, ``None`` for anything else."""

    if value is None or not value.startswith(ENV_PREFIX):
        return None
    return value[len(ENV_PREFIX) :].strip() or None


def resolve_env_reference(value: str | None, *, required: bool = True) -> str | None:
    """Return the secret behind ``value``.

    ``env:INFLUX_PASSWORD`` is looked up in ``os.environ``; plain strings and
    ``None`` come back as they are. A reference to an unset or empty variable
    raises :class:`EnvironmentError` unless ``required`` is false, in which
    case the credential is treated as absent.
    """

    name = env_reference_name(value)
    if name is None:
        return value

    secret = os.environ.get(name, "")
    if not secret and required:
        raise EnvironmentError(f"InfluxDB credential variable '{name}' is not set or empty")
    return secret or None


__all__ = ["ENV_PREFIX", "env_reference_name", "resolve_env_reference"]
