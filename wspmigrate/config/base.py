"""Shared configuration base model and TOML loader."""

from __future__ import annotations

import tomllib
from pathlib import Path
from typing import TypeVar

from pydantic import BaseModel, ConfigDict

T = TypeVar("T", bound="BaseConfig")


class BaseConfig(BaseModel):
    """Base class for every configuration block."""

    model_config = ConfigDict(extra="forbid", validate_assignment=True)


def load_config(config_cls: type[T], path: Path) -> T:
    """Load ``path`` as TOML and validate it against ``config_cls``.

    Raises :class:`FileNotFoundError` when the file does not exist,
    :class:`ValueError` when it is not valid TOML and
    :class:`pydantic.ValidationError` when the content does not fit the model.
    """

    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {path}")
    try:
        with path.open("rb") as fh:
            data = tomllib.load(fh)
    except tomllib.TOMLDecodeError as exc:
        raise ValueError(f"Invalid TOML in {path}: {exc}") from exc
    return config_cls.model_validate(data)


__all__ = ["BaseConfig", "load_config"]
