"""Exception types for the memory benchmark."""

from typing import Optional


class MemoryBenchError(Exception):
    """Base class for all benchmark errors."""


class ConfigurationError(MemoryBenchError):
    """Invalid run or strategy parameters. Raised before any job starts."""


class ModelCallError(MemoryBenchError):
    """The external model call failed (network, throttling, malformed response)."""

    def __init__(self, message: str, model_id: Optional[str] = None):
        super().__init__(message)
        self.model_id = model_id
