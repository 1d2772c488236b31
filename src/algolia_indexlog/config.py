"""Runtime configuration for algolia_indexlog.

Configuration comes from keyword arguments or from ``INDEXLOG_*``
environment variables (the CLI loads a ``.env`` file into the environment
first):

=============================  ===============================  ===========
Variable                       Field                            Default
=============================  ===============================  ===========
INDEXLOG_ENABLED               enabled                          true
INDEXLOG_BACKEND               backend (sql, memory, http)      sql
INDEXLOG_DATABASE_URL          database_url                     sqlite:///indexlog.sqlite
INDEXLOG_ENDPOINT              endpoint                         (none)
INDEXLOG_TOKEN                 token                            (none)
INDEXLOG_SOURCE                source                           hostname
INDEXLOG_BUFFER_SIZE           buffer_size                      50 (25 for http)
INDEXLOG_RACE_WINDOW_SECONDS   race_window_seconds              10
INDEXLOG_TTL_DAYS              ttl_days                         7
INDEXLOG_ECHO                  echo                             false
=============================  ===============================  ===========

Race window trade-off: a short window misses slow races (two runs a
minute apart still overwrite each other's records), a long one reports
legitimately independent runs that happened to touch the same item. The
window is a knob, not a derived constant.
"""

from __future__ import annotations

import os
import socket
from datetime import timedelta
from typing import Literal

from pydantic import BaseModel, Field, model_validator

from algolia_indexlog.constants import (
    DEFAULT_BUFFER_SIZE,
    DEFAULT_HTTP_BUFFER_SIZE,
    DEFAULT_RACE_WINDOW_SECONDS,
    DEFAULT_TTL_DAYS,
)

__all__ = ["ENV_PREFIX", "IndexLogConfig"]

ENV_PREFIX = "INDEXLOG_"


class IndexLogConfig(BaseModel):
    """
    Configuration for event ingestion and storage.

    Examples
    --------
    >>> config = IndexLogConfig(database_url="sqlite:///:memory:")
    >>> config.effective_buffer_size
    50
    >>> IndexLogConfig(backend="http", endpoint="https://logs.example.com").effective_buffer_size
    25
    """

    enabled: bool = True
    backend: Literal["sql", "memory", "http"] = "sql"
    database_url: str = "sqlite:///indexlog.sqlite"
    endpoint: str | None = None
    token: str | None = None
    source: str = Field(default_factory=socket.gethostname)
    buffer_size: int | None = Field(None, ge=1)
    race_window_seconds: float = Field(DEFAULT_RACE_WINDOW_SECONDS, gt=0)
    ttl_days: int = Field(DEFAULT_TTL_DAYS, ge=1)
    echo: bool = False

    @model_validator(mode="after")
    def _check_endpoint(self) -> IndexLogConfig:
        if self.backend == "http" and not self.endpoint:
            msg = "backend 'http' requires an endpoint"
            raise ValueError(msg)
        return self

    @property
    def effective_buffer_size(self) -> int:
        """Flush threshold; the HTTP backend ships smaller batches."""
        if self.buffer_size is not None:
            return self.buffer_size
        if self.backend == "http":
            return DEFAULT_HTTP_BUFFER_SIZE
        return DEFAULT_BUFFER_SIZE

    @property
    def race_window(self) -> timedelta:
        return timedelta(seconds=self.race_window_seconds)

    @property
    def ttl(self) -> timedelta:
        return timedelta(days=self.ttl_days)

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None, **overrides) -> IndexLogConfig:
        """
        Build configuration from ``INDEXLOG_*`` environment variables.

        Parameters
        ----------
        environ : dict[str, str], optional
            Mapping to read instead of ``os.environ``
        **overrides
            Field values that take precedence over the environment

        Returns
        -------
        IndexLogConfig
            Validated configuration

        Raises
        ------
        pydantic.ValidationError
            If a variable holds an invalid value
        """
        environ = os.environ if environ is None else environ
        values = {}
        for name in cls.model_fields:
            raw = environ.get(f"{ENV_PREFIX}{name.upper()}")
            if raw is not None and raw != "":
                values[name] = raw
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls.model_validate(values)
