"""Access to the legacy whisper archives being migrated."""

from wspmigrate.legacy.reader import (
    SourceReadError,
    WhisperInfo,
    describe,
    find_whisper_files,
    read_points,
)

__all__ = ["SourceReadError", "WhisperInfo", "describe", "find_whisper_files", "read_points"]
