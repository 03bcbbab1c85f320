"""Data models for the configuration cache."""

from dataclasses import dataclass
from pathlib import Path
from typing import Any


@dataclass
class CacheEntry:
    """Parsed configuration for one resolved file path.

    Attributes:
        source_path: Resolved path of the configuration file.
        value: The parsed value returned to callers.
        mtime_ns: Modification time observed before the file was read.
        valid: False once a change has been detected; the next load re-parses.
    """

    source_path: Path
    value: Any
    mtime_ns: int
    valid: bool = True
