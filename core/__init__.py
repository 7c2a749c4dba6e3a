"""Shared data model for the memory benchmark."""

from core.models import (
    Role,
    Message,
    ModelResponse,
    ModelClient,
    StoreEntry,
    StepMetrics,
    ResultRecord,
    JobFailure,
    RunManifest,
)
from core.exceptions import (
    MemoryBenchError,
    ConfigurationError,
    ModelCallError,
)

__all__ = [
    # Enums
    "Role",
    # Data models
    "Message",
    "ModelResponse",
    "ModelClient",
    "StoreEntry",
    "StepMetrics",
    "ResultRecord",
    "JobFailure",
    "RunManifest",
    # Errors
    "MemoryBenchError",
    "ConfigurationError",
    "ModelCallError",
]
