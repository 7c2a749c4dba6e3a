"""Rolling conversation summarizer backed by the external model."""

import logging
from typing import List, Dict, Any, Optional
from dataclasses import dataclass, field

from core.models import Message, ModelClient, ModelResponse
from .delegation import format_transcript

logger = logging.getLogger(__name__)


SUMMARIZER_SYSTEM_PROMPT = (
    "You are a precise summarizer. Preserve all specific facts, numbers, names, "
    "and state changes. Never generalize away details."
)

SUMMARIZATION_PROMPT = """Summarize the following conversation history into a concise summary that preserves ALL key facts, numbers, names, decisions, and state changes. Be precise and do not lose any specific details.

{text}"""


@dataclass
class ConversationSummarizer:
    """
    LLM-based summarizer that folds older messages into a running summary.
    """

    client: ModelClient
    _summaries_generated: int = field(default=0, init=False)
    _total_input_tokens: int = field(default=0, init=False)
    _total_output_tokens: int = field(default=0, init=False)

    async def summarize(
        self,
        messages: List[Message],
        previous_summary: Optional[str] = None
    ) -> ModelResponse:
        """
        Summarize messages, folding in the previous summary when there is one.

        Args:
            messages: Messages leaving the verbatim window
            previous_summary: Summary produced by the last cycle

        Returns:
            The model response; ``text`` is the cleaned summary
        """
        transcript = format_transcript(messages)
        if previous_summary:
            text = f"Previous summary:\n{previous_summary}\n\nNew messages:\n{transcript}"
        else:
            text = transcript

        response = await self.client.invoke(
            SUMMARIZATION_PROMPT.format(text=text),
            system_prompt=SUMMARIZER_SYSTEM_PROMPT
        )
        response.text = self._clean_summary(response.text)

        self._total_input_tokens += response.input_tokens
        self._total_output_tokens += response.output_tokens
        self._summaries_generated += 1

        logger.info(f"Generated summary: {response.text[:100]}...")
        return response

    def _clean_summary(self, summary: str) -> str:
        """Clean up the LLM-generated summary."""
        summary = summary.strip()

        # Remove common prefixes
        prefixes = ["Summary:", "summary:", "Here's the summary:", "The summary is:"]
        for prefix in prefixes:
            if summary.startswith(prefix):
                summary = summary[len(prefix):].strip()

        return summary

    def get_stats(self) -> Dict[str, Any]:
        """Get summarization statistics."""
        return {
            "summaries_generated": self._summaries_generated,
            "total_input_tokens": self._total_input_tokens,
            "total_output_tokens": self._total_output_tokens,
            "avg_summary_tokens": (
                self._total_output_tokens / self._summaries_generated
                if self._summaries_generated > 0 else 0
            )
        }

    def reset_stats(self):
        """Reset statistics counters."""
        self._summaries_generated = 0
        self._total_input_tokens = 0
        self._total_output_tokens = 0
