"""Minimal InfluxDB 1.x HTTP API client."""

from __future__ import annotations

import time
from typing import Any, Sequence

import requests
from loguru import logger

from wspmigrate.config.migration import InfluxConnectionConfig
from wspmigrate.config.utils import resolve_env_reference


class InfluxClientError(RuntimeError):
    """Raised when the InfluxDB API rejects a request or stays unreachable."""


class InfluxClient:
    """Client for the ``/query`` and ``/write`` endpoints of InfluxDB 1.x."""

    def __init__(
        self,
        base_url: str = "http://localhost:8086",
        *,
        username: str | None = None,
        password: str | None = None,
        timeout: float = 30.0,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        session: requests.Session | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.session = session or requests.Session()
        self.session.headers.update({"User-Agent": "wspmigrate/0.1"})
        if username:
            self.session.auth = (username, password or "")

    @classmethod
    def from_config(cls, config: InfluxConnectionConfig) -> "InfluxClient":
        return cls(
            config.base_url,
            username=config.username,
            password=resolve_env_reference(config.password),
            timeout=config.timeout,
            max_retries=config.max_retries,
            retry_delay=config.retry_delay,
        )

    def close(self) -> None:
        self.session.close()

    def __enter__(self) -> "InfluxClient":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def create_database(self, name: str) -> None:
        logger.info("Creating database {}", name)
        self.query(f'CREATE DATABASE "{name}"')

    def query(self, statement: str, database: str | None = None) -> list[dict[str, Any]]:
        """Run an InfluxQL statement and return its rows as column-keyed dicts."""

        params = {"q": statement}
        if database:
            params["db"] = database
        response = self._request("POST", "/query", params=params)
        payload = response.json()
        if "error" in payload:
            raise InfluxClientError(f"Query '{statement}' failed: {payload['error']}")

        rows: list[dict[str, Any]] = []
        for result in payload.get("results", []):
            if "error" in result:
                raise InfluxClientError(f"Query '{statement}' failed: {result['error']}")
            for series in result.get("series", []):
                columns = series.get("columns", [])
                for values in series.get("values", []):
                    rows.append(dict(zip(columns, values)))
        logger.debug("Query '{}' returned {} rows", statement, len(rows))
        return rows

    def write(
        self,
        lines: Sequence[str],
        database: str,
        *,
        precision: str = "s",
        retention_policy: str | None = None,
    ) -> None:
        """Write line protocol ``lines`` to ``database``."""

        if not lines:
            return
        params = {"db": database, "precision": precision}
        if retention_policy:
            params["rp"] = retention_policy
        body = "\n".join(lines).encode("utf-8")
        self._request("POST", "/write", params=params, data=body)
        logger.debug("Wrote {} points to {}", len(lines), database)

    def _request(self, method: str, path: str, **kwargs: Any) -> requests.Response:
        """Make HTTP request with retries; client errors are not retried."""
        url = f"{self.base_url}{path}"
        last_error: Exception | None = None
        for attempt in range(1, self.max_retries + 1):
            try:
                response = self.session.request(method, url, timeout=self.timeout, **kwargs)
                response.raise_for_status()
                return response
            except requests.HTTPError as exc:
                status = exc.response.status_code if exc.response is not None else None
                if status is not None and 400 <= status < 500:
                    detail = exc.response.text.strip() if exc.response is not None else ""
                    raise InfluxClientError(f"{method} {path} rejected ({status}): {detail}") from exc
                last_error = exc
            except requests.RequestException as exc:
                last_error = exc
            logger.warning(
                "Request {} {} failed (attempt {}/{}): {}",
                method,
                path,
                attempt,
                self.max_retries,
                last_error,
            )
            if attempt < self.max_retries:
                time.sleep(self.retry_delay)
        raise InfluxClientError(f"{method} {path} failed after {self.max_retries} attempts: {last_error}")


__all__ = ["InfluxClient", "InfluxClientError"]
