"""InfluxDB destination: HTTP API client and TSM file encoder."""

from wspmigrate.influx.client import InfluxClient, InfluxClientError
from wspmigrate.influx.lineprotocol import format_point
from wspmigrate.influx.tsm import TSMWriteError, TSMWriter

__all__ = ["InfluxClient", "InfluxClientError", "TSMWriteError", "TSMWriter", "format_point"]
