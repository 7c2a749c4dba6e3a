"""External model clients for the memory benchmark."""

from agents.bedrock_client import BedrockClient

__all__ = [
    "BedrockClient",
]
