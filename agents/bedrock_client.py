"""AWS Bedrock client wrapper for LLM interactions."""

import asyncio
import json
import logging
import time
from typing import Optional, Dict, Any, List
import boto3
from botocore.config import Config
from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    TokenRetrievalError,
    CredentialRetrievalError,
)

from config import get_settings
from core.exceptions import ModelCallError
from core.models import Message, ModelResponse

logger = logging.getLogger(__name__)


class BedrockClient:
    """
    AWS Bedrock client for Claude model interactions.

    Handles authentication, request formatting, and response parsing.
    Every call reports its token usage so strategies can account for the
    overhead of delegation and summarization. Instances are independent:
    build one per model configuration and pass it to whatever needs it.
    """

    # Token/credential expiry related exceptions
    TOKEN_EXPIRY_ERRORS = (
        'ExpiredToken',
        'ExpiredTokenException',
        'TokenRefreshRequired',
        'InvalidIdentityToken',
        'UnauthorizedException',
        'AccessDeniedException'
    )

    def __init__(
        self,
        model_id: Optional[str] = None,
        region: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        timeout_seconds: Optional[int] = None
    ):
        """
        Initialize Bedrock client.

        Args:
            model_id: Bedrock model ID (defaults to config)
            region: AWS region (defaults to config)
            temperature: Sampling temperature (defaults to config)
            max_tokens: Maximum tokens in response (defaults to config)
            timeout_seconds: Read timeout for a single call (defaults to config)
        """
        settings = get_settings()

        self.model_id = model_id or settings.bedrock_model_id
        self.region = region or settings.aws_region
        self.temperature = temperature if temperature is not None else settings.model_temperature
        self.max_tokens = max_tokens or settings.max_tokens
        self.timeout_seconds = timeout_seconds or settings.model_timeout_seconds
        self.profile = settings.aws_profile

        self._client = None
        self._create_client()

        logger.info(f"Initialized Bedrock client for {self.model_id} in {self.region}")

    def _create_client(self):
        """Create a fresh boto3 client with new credentials."""
        # Clear any cached credentials by creating a new session
        session = boto3.Session(profile_name=self.profile) if self.profile else boto3.Session()

        config = Config(
            region_name=self.region,
            read_timeout=self.timeout_seconds,
            retries={"max_attempts": 3, "mode": "adaptive"}
        )

        self._client = session.client(
            "bedrock-runtime",
            config=config
        )

        logger.debug("Created new Bedrock client with fresh credentials")

    def _is_token_expiry_error(self, error: Exception) -> bool:
        """Check if the error is related to token/credential expiry."""
        if isinstance(error, (TokenRetrievalError, CredentialRetrievalError)):
            return True

        if isinstance(error, ClientError):
            error_code = error.response.get('Error', {}).get('Code', '')
            if error_code in self.TOKEN_EXPIRY_ERRORS:
                return True

        error_str = str(error).lower()
        return any(x in error_str for x in ['expiredtoken', 'token expired', 'credential', 'unauthorized'])

    def _refresh_and_retry(self):
        """Refresh credentials by recreating the client."""
        logger.warning("Token/credential expiry detected, refreshing client...")
        self._create_client()

    def _build_body(self, messages: List[Message], system_prompt: Optional[str]) -> Dict[str, Any]:
        body = {
            "anthropic_version": "bedrock-2023-05-31",
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
            "messages": [m.to_dict() for m in messages]
        }
        if system_prompt:
            body["system"] = system_prompt
        return body

    def _invoke_sync(self, body: Dict[str, Any]) -> Dict[str, Any]:
        """Blocking Bedrock call with one credential refresh on token expiry."""
        max_retries = 2

        for attempt in range(max_retries):
            try:
                response = self._client.invoke_model(
                    modelId=self.model_id,
                    body=json.dumps(body)
                )
                return json.loads(response["body"].read())

            except (ClientError, BotoCoreError) as e:
                if self._is_token_expiry_error(e) and attempt < max_retries - 1:
                    logger.warning(f"Token expiry detected on attempt {attempt + 1}, refreshing credentials...")
                    self._refresh_and_retry()
                    continue
                logger.error(f"Bedrock invocation failed: {e}")
                raise ModelCallError(str(e), model_id=self.model_id) from e

        raise ModelCallError("Bedrock invocation failed after credential refresh", model_id=self.model_id)

    async def chat(
        self,
        messages: List[Message],
        system_prompt: Optional[str] = None
    ) -> ModelResponse:
        """
        Send a conversation to the model.

        Args:
            messages: Ordered user/assistant messages
            system_prompt: Optional system prompt

        Returns:
            Response text with input/output token counts and latency
        """
        body = self._build_body(messages, system_prompt)
        start = time.perf_counter()

        # boto3 is blocking; run it off the event loop so jobs overlap
        response_body = await asyncio.to_thread(self._invoke_sync, body)
        latency_ms = (time.perf_counter() - start) * 1000

        try:
            if "content" in response_body:
                text = "".join(
                    block.get("text", "")
                    for block in response_body["content"]
                    if block.get("type", "text") == "text"
                )
            else:
                text = response_body["completion"]
        except (KeyError, TypeError) as e:
            raise ModelCallError(f"Malformed Bedrock response: {e}", model_id=self.model_id) from e

        usage = response_body.get("usage", {})
        return ModelResponse(
            text=text,
            input_tokens=usage.get("input_tokens", 0),
            output_tokens=usage.get("output_tokens", 0),
            latency_ms=latency_ms
        )

    async def invoke(
        self,
        prompt: str,
        system_prompt: Optional[str] = None
    ) -> ModelResponse:
        """Single-prompt convenience wrapper around ``chat``."""
        return await self.chat([Message(role="user", content=prompt)], system_prompt=system_prompt)
