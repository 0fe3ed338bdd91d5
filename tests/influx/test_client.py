from __future__ import annotations

from unittest.mock import Mock, patch

import pytest
import requests

from wspmigrate.config import InfluxConnectionConfig
from wspmigrate.influx import InfluxClient, InfluxClientError


def _response(status: int = 200, payload: dict | None = None, text: str = "") -> Mock:
    response = Mock(spec=requests.Response)
    response.status_code = status
    response.text = text
    response.json.return_value = payload or {}
    if status >= 400:
        response.raise_for_status.side_effect = requests.HTTPError(f"{status}", response=response)
    else:
        response.raise_for_status.return_value = None
    return response


@pytest.fixture
def session() -> Mock:
    mock = Mock(spec=requests.Session)
    mock.headers = {}
    return mock


@pytest.fixture
def client(session: Mock) -> InfluxClient:
    return InfluxClient("http://influx:8086/", max_retries=2, retry_delay=0, session=session)


def test_query_flattens_series_rows(client: InfluxClient, session: Mock) -> None:
    session.request.return_value = _response(
        payload={
            "results": [
                {
                    "series": [
                        {
                            "name": "migrated",
                            "columns": ["id", "database", "start_time"],
                            "values": [[1, "migrated", "2020-01-01T00:00:00Z"], [2, "other", "x"]],
                        }
                    ]
                }
            ]
        }
    )

    rows = client.query("SHOW SHARD GROUPS")

    assert rows == [
        {"id": 1, "database": "migrated", "start_time": "2020-01-01T00:00:00Z"},
        {"id": 2, "database": "other", "start_time": "x"},
    ]
    session.request.assert_called_once_with(
        "POST",
        "http://influx:8086/query",
        timeout=30.0,
        params={"q": "SHOW SHARD GROUPS"},
    )


def test_query_raises_on_statement_error(client: InfluxClient, session: Mock) -> None:
    session.request.return_value = _response(payload={"results": [{"error": "database not found"}]})

    with pytest.raises(InfluxClientError, match="database not found"):
        client.query('DROP MEASUREMENT "x"', "missing")


def test_create_database_quotes_name(client: InfluxClient, session: Mock) -> None:
    session.request.return_value = _response(payload={"results": [{}]})

    client.create_database("migrated")

    assert session.request.call_args.kwargs["params"] == {"q": 'CREATE DATABASE "migrated"'}


def test_write_posts_line_protocol(client: InfluxClient, session: Mock) -> None:
    session.request.return_value = _response(204)

    client.write(["load value=1.0 100", "load value=2.0 200"], "migrated", retention_policy="autogen")

    args, kwargs = session.request.call_args
    assert args == ("POST", "http://influx:8086/write")
    assert kwargs["params"] == {"db": "migrated", "precision": "s", "rp": "autogen"}
    assert kwargs["data"] == b"load value=1.0 100\nload value=2.0 200"


def test_write_without_lines_is_a_noop(client: InfluxClient, session: Mock) -> None:
    client.write([], "migrated")

    session.request.assert_not_called()


def test_server_errors_are_retried(client: InfluxClient, session: Mock) -> None:
    session.request.side_effect = [_response(503), _response(204)]

    with patch("wspmigrate.influx.client.time.sleep") as sleep:
        client.write(["load value=1.0 100"], "migrated")

    assert session.request.call_count == 2
    sleep.assert_called_once_with(0)


def test_connection_errors_exhaust_retries(client: InfluxClient, session: Mock) -> None:
    session.request.side_effect = requests.ConnectionError("refused")

    with pytest.raises(InfluxClientError, match="after 2 attempts"):
        client.write(["load value=1.0 100"], "migrated")

    assert session.request.call_count == 2


def test_client_errors_are_not_retried(client: InfluxClient, session: Mock) -> None:
    session.request.return_value = _response(400, text='{"error":"unable to parse"}')

    with pytest.raises(InfluxClientError, match="rejected \\(400\\)"):
        client.write(["bogus"], "migrated")

    assert session.request.call_count == 1


def test_from_config_resolves_password(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("INFLUX_PASSWORD", "s3cret")
    config = InfluxConnectionConfig(host="http://db", port=8087, username="admin", password="env:INFLUX_PASSWORD")

    client = InfluxClient.from_config(config)

    assert client.base_url == "http://db:8087"
    assert client.session.auth == ("admin", "s3cret")
    client.close()
