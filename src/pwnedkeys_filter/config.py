"""
Configuration for creating and opening filter files.
"""
from dataclasses import asdict, dataclass
from typing import Optional
import json

from pwnedkeys_filter.parameters import FilterParameters, filter_parameters


LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass
class FilterConfig:
    """Settings for a filter data file."""

    path: str = "pwnedkeys.pkbf"

    # Geometry: either derived from capacity and target rate...
    entries: Optional[int] = None
    fp_rate: Optional[float] = None
    # ...or given explicitly.
    hash_count: Optional[int] = None
    hash_length: Optional[int] = None

    # Seconds to wait for the file lock; None waits forever
    lock_timeout: Optional[float] = None

    # Logging
    log_level: str = "INFO"

    @classmethod
    def from_file(cls, path: str) -> "FilterConfig":
        """Load configuration from a JSON file."""
        with open(path, "r") as f:
            data = json.load(f)
        return cls(**data)

    def to_file(self, path: str):
        """Save configuration to a JSON file."""
        with open(path, "w") as f:
            json.dump(asdict(self), f, indent=2)

    def validate(self) -> bool:
        """Validate configuration parameters."""
        if (self.entries is None) != (self.fp_rate is None):
            raise ValueError("entries and fp_rate must be set together")

        if self.entries is not None and self.hash_count is not None:
            raise ValueError("Set either entries/fp_rate or hash_count/hash_length, not both")

        if (self.hash_count is None) != (self.hash_length is None):
            raise ValueError("hash_count and hash_length must be set together")

        if self.entries is not None and self.entries < 1:
            raise ValueError(f"entries must be positive")

        if self.fp_rate is not None and not (0.0 < self.fp_rate < 1.0):
            raise ValueError(f"fp_rate must be between 0.0 and 1.0")

        if self.hash_count is not None and not (1 <= self.hash_count <= 255):
            raise ValueError(f"Invalid hash_count: {self.hash_count}")

        if self.hash_length is not None and not (1 <= self.hash_length <= 255):
            raise ValueError(f"Invalid hash_length: {self.hash_length}")

        if self.lock_timeout is not None and self.lock_timeout < 0:
            raise ValueError(f"lock_timeout must not be negative")

        if self.log_level.upper() not in LOG_LEVELS:
            raise ValueError(f"Invalid log_level: {self.log_level}")

        return True

    def parameters(self) -> Optional[FilterParameters]:
        """
        Resolve the geometry to create a filter with.

        Returns:
            Explicit or derived parameters, or None if the configuration
            specifies neither
        """
        self.validate()
        if self.hash_count is not None:
            return FilterParameters(self.hash_count, self.hash_length)
        if self.entries is not None:
            return filter_parameters(self.entries, self.fp_rate)
        return None
