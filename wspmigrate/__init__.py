"""Whisper to InfluxDB migration toolkit.

The command line entry point lives in :mod:`wspmigrate.cli`; the pipeline
itself is importable from :mod:`wspmigrate.migration`.
"""

__all__: list[str] = []
