"""Anthropic API client with streaming, rate limiting and error handling."""

import asyncio
import json
import time
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Literal, TypeVar

import tiktoken
from anthropic import APIConnectionError, APIStatusError, AsyncAnthropic
from limits import parse
from limits.storage import MemoryStorage
from limits.strategies import MovingWindowRateLimiter
from pydantic import BaseModel

from moodmix.config import get_settings
from moodmix.exceptions import ModelError
from moodmix.models.chat import Message, TextPart, ToolInvocationPart
from moodmix.models.events import Finish, ModelEvent, TextDelta, ToolCallDelta, ToolCallEnd, ToolCallStart
from moodmix.models.llm import LLMToolDefinition
from moodmix.utils.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

STOP_REASONS = {
    "end_turn": "stop",
    "stop_sequence": "stop",
    "tool_use": "tool-calls",
    "max_tokens": "length",
}


class AnthropicMessage(BaseModel):
    """Message format for Anthropic API."""

    role: Literal["user", "assistant"]
    content: str | list[dict[str, Any]]


class AnthropicTool(BaseModel):
    """Tool definition for Anthropic API."""

    name: str
    description: str
    input_schema: dict[str, Any]


@dataclass
class AnthropicConfig:
    """Configuration for Anthropic API client."""

    model: str = "claude-sonnet-4-20250514"
    max_tokens: int = 2048
    temperature: float = 0.7
    max_retries: int = 3
    retry_delay: float = 1.0

    # Token limits for validation and truncation
    max_message_tokens: int = 4000  # Maximum tokens per individual user message
    max_conversation_tokens: int = 200000
    token_headroom: int = 4000  # Reserve tokens for response


class AnthropicRateLimiter:
    """Moving-window rate limiter for requests and tokens."""

    def __init__(self, requests_per_minute: int = 50, tokens_per_minute: int = 40_000):
        """Initialize rate limiter.

        Args:
            requests_per_minute: Maximum requests per minute
            tokens_per_minute: Maximum tokens per minute
        """
        self.storage = MemoryStorage()
        self.limiter = MovingWindowRateLimiter(self.storage)

        self.request_limit = parse(f"{requests_per_minute}/minute")
        self.token_limit = parse(f"{tokens_per_minute}/minute")

    async def check_rate_limit(self, estimated_tokens: int, identifier: str = "anthropic") -> None:
        """Wait until the request fits within the request and token limits."""
        logger.debug(f"Checking rate limit for {estimated_tokens} tokens, identifier: {identifier}")

        if not self.limiter.hit(self.request_limit, identifier):
            await self._wait_for_reset(self.request_limit, identifier, "Request")

        token_identifier = f"{identifier}_tokens"
        if not self.limiter.hit(self.token_limit, token_identifier, cost=estimated_tokens):
            await self._wait_for_reset(self.token_limit, token_identifier, "Token")

    async def _wait_for_reset(self, limit, identifier: str, label: str) -> None:
        window_stats = self.limiter.get_window_stats(limit, identifier)
        if not window_stats:
            return
        wait_time = max(0.0, window_stats.reset_time - time.time())
        if wait_time > 0:
            logger.warning(f"{label} rate limit exceeded, waiting {wait_time:.2f}s")
            await asyncio.sleep(wait_time)


def _tool_result_content(part: ToolInvocationPart) -> str:
    if part.state == "output-error" and part.error is not None:
        if part.error.details:
            return f"{part.error.message}: {json.dumps(part.error.details)}"
        return part.error.message
    if isinstance(part.output, str):
        return part.output
    return json.dumps(part.output)


def _assistant_messages(message: Message) -> list[AnthropicMessage]:
    """Split an assistant message into tool_use / tool_result round trips.

    Text that follows a tool call belongs to the next model step, so the
    pending tool results are flushed as a user message before it.
    """
    converted: list[AnthropicMessage] = []
    blocks: list[dict[str, Any]] = []
    results: list[dict[str, Any]] = []

    for part in message.parts:
        if isinstance(part, TextPart):
            if results:
                converted.append(AnthropicMessage(role="assistant", content=blocks))
                converted.append(AnthropicMessage(role="user", content=results))
                blocks, results = [], []
            if part.text:
                blocks.append({"type": "text", "text": part.text})
        elif part.is_terminal:
            blocks.append({"type": "tool_use", "id": part.tool_call_id, "name": part.tool_name, "input": part.input})
            results.append(
                {
                    "type": "tool_result",
                    "tool_use_id": part.tool_call_id,
                    "content": _tool_result_content(part),
                    "is_error": part.state == "output-error",
                }
            )

    if blocks:
        converted.append(AnthropicMessage(role="assistant", content=blocks))
    if results:
        converted.append(AnthropicMessage(role="user", content=results))
    return converted


def to_anthropic_messages(messages: list[Message]) -> tuple[list[AnthropicMessage], str]:
    """Convert a conversation history to Anthropic API messages.

    Returns:
        The API messages, with consecutive same-role messages merged, and the
        text of any system messages (to be appended to the system prompt)
    """
    converted: list[AnthropicMessage] = []
    system_notes: list[str] = []

    for message in messages:
        if message.role == "system":
            if message.text:
                system_notes.append(message.text)
        elif message.role == "assistant":
            converted.extend(_assistant_messages(message))
        elif message.text:
            converted.append(AnthropicMessage(role="user", content=[{"type": "text", "text": message.text}]))

    merged: list[AnthropicMessage] = []
    for message in converted:
        if merged and merged[-1].role == message.role:
            merged[-1] = AnthropicMessage(role=message.role, content=[*merged[-1].content, *message.content])
        else:
            merged.append(message)

    return merged, "\n\n".join(system_notes)


class AnthropicClient:
    """Streams model steps from the Anthropic Messages API."""

    tokenizer: tiktoken.Encoding | None = None
    rate_limiter: AnthropicRateLimiter = AnthropicRateLimiter()

    def __init__(self, api_key: str | None = None, config: AnthropicConfig | None = None):
        """Initialize Anthropic client.

        Args:
            api_key: Anthropic API key (defaults to ANTHROPIC_API_KEY from settings)
            config: Client configuration
        """
        anthropic_api_key = api_key or get_settings().anthropic_api_key
        if not anthropic_api_key:
            raise ValueError("ANTHROPIC_API_KEY environment variable is required")

        self.api_key = anthropic_api_key
        self.client = AsyncAnthropic(api_key=self.api_key)
        self.config = config or AnthropicConfig()

        try:
            # Close approximation for Claude
            self.tokenizer = tiktoken.encoding_for_model("gpt-4")
        except Exception:
            self.tokenizer = None

    async def stream(
        self,
        system_prompt: str,
        messages: list[Message],
        tools: list[LLMToolDefinition],
    ) -> AsyncIterator[ModelEvent]:
        """Stream one model step over the given history.

        Args:
            system_prompt: System prompt for Claude
            messages: Conversation history
            tools: Tools the model may call

        Yields:
            Model events, ending with a ``Finish`` event
        """
        api_messages, system_notes = to_anthropic_messages(messages)
        if system_notes:
            system_prompt = f"{system_prompt}\n\n{system_notes}"
        api_tools = [AnthropicTool(**tool.model_dump()) for tool in tools]

        truncated = self.truncate_conversation(api_messages, system_prompt, api_tools)
        estimated_tokens = self._estimate_tokens(truncated, system_prompt)
        logger.debug(f"Estimated tokens: {estimated_tokens}")
        await self.rate_limiter.check_rate_limit(estimated_tokens)

        request_params: dict[str, Any] = {
            "model": self.config.model,
            "max_tokens": self.config.max_tokens,
            "temperature": self.config.temperature,
            "system": system_prompt,
            "messages": [msg.model_dump() for msg in truncated],
            "stream": True,
        }
        if api_tools:
            request_params["tools"] = [tool.model_dump() for tool in api_tools]

        logger.debug(f"Streaming from {self.config.model} with {len(truncated)} messages, {len(api_tools)} tools")
        raw_stream = await self._request_with_retries(lambda: self.client.messages.create(**request_params))

        async for event in self.map_stream_events(raw_stream):
            yield event

    @staticmethod
    async def map_stream_events(raw_events: AsyncIterator[Any]) -> AsyncIterator[ModelEvent]:
        """Translate raw Messages API stream events into model events."""
        tool_blocks: dict[int, dict[str, Any]] = {}
        finish_reason = "stop"

        async for event in raw_events:
            if event.type == "content_block_start":
                block = event.content_block
                if block.type == "tool_use":
                    tool_blocks[event.index] = {"id": block.id, "input": block.input, "streamed": False}
                    yield ToolCallStart(tool_call_id=block.id, tool_name=block.name)
                elif block.type == "text" and block.text:
                    yield TextDelta(delta=block.text)

            elif event.type == "content_block_delta":
                delta = event.delta
                if delta.type == "text_delta":
                    yield TextDelta(delta=delta.text)
                elif delta.type == "input_json_delta" and event.index in tool_blocks:
                    tool_blocks[event.index]["streamed"] = True
                    yield ToolCallDelta(tool_call_id=tool_blocks[event.index]["id"], input_delta=delta.partial_json)

            elif event.type == "content_block_stop":
                tool = tool_blocks.pop(event.index, None)
                if tool is not None:
                    # Input arrives whole in content_block_start when nothing was streamed
                    preset = None if tool["streamed"] else (tool["input"] or {})
                    yield ToolCallEnd(tool_call_id=tool["id"], input=preset)

            elif event.type == "message_delta":
                if event.delta.stop_reason:
                    finish_reason = STOP_REASONS.get(event.delta.stop_reason, event.delta.stop_reason)

        yield Finish(finish_reason=finish_reason)

    async def _request_with_retries(self, call: Callable[[], Awaitable[T]]) -> T:
        """Open an Anthropic request, retrying rate limits and transient failures."""
        for attempt in range(self.config.max_retries):
            last_attempt = attempt == self.config.max_retries - 1
            try:
                return await call()

            except APIStatusError as e:
                if e.status_code == 429 and not last_attempt:
                    retry_after = int(e.response.headers.get("retry-after", 60))
                    if retry_after < 120:
                        logger.warning(f"Rate limited by Anthropic, retrying in {retry_after}s")
                        await asyncio.sleep(retry_after)
                        continue
                elif e.status_code >= 500 and not last_attempt:
                    logger.warning(f"Anthropic server error {e.status_code}, retrying (attempt {attempt + 1})")
                    await asyncio.sleep(self.config.retry_delay * (2**attempt))
                    continue

                raise ModelError(f"Anthropic request failed: {e.message}", status_code=e.status_code) from e

            except APIConnectionError as e:
                if not last_attempt:
                    logger.warning(f"Connection to Anthropic failed, retrying (attempt {attempt + 1})")
                    await asyncio.sleep(self.config.retry_delay * (2**attempt))
                    continue
                raise ModelError(f"Could not reach Anthropic: {e}") from e

        raise ModelError(f"Failed to complete request after {self.config.max_retries} attempts")

    def _message_text(self, message: AnthropicMessage) -> str:
        if isinstance(message.content, str):
            return message.content

        text = ""
        for block in message.content:
            if block.get("type") == "text":
                text += block["text"]
            elif block.get("type") == "tool_use":
                text += block["name"] + json.dumps(block["input"])
            elif block.get("type") == "tool_result":
                text += str(block["content"])
        return text

    def _estimate_tokens(self, messages: list[AnthropicMessage], system_prompt: str) -> int:
        """Estimate token count for rate limiting."""
        text_content = system_prompt + "".join(self._message_text(message) for message in messages)
        return self.estimate_message_tokens(text_content)

    def estimate_message_tokens(self, message: str) -> int:
        """Estimate token count for a single message.

        Args:
            message: Message content

        Returns:
            Estimated token count
        """
        try:
            return len(self.tokenizer.encode(message)) if self.tokenizer else len(message) // 4
        except Exception:
            # Fallback: roughly 4 characters per token
            return len(message) // 4

    def validate_message_tokens(self, message: str) -> None:
        """Validate that a message doesn't exceed token limits.

        Raises:
            ValueError: If message exceeds token limit
        """
        token_count = self.estimate_message_tokens(message)
        if token_count > self.config.max_message_tokens:
            raise ValueError(
                f"Message exceeds token limit: {token_count} tokens > {self.config.max_message_tokens} limit"
            )

    def truncate_conversation(
        self, messages: list[AnthropicMessage], system_prompt: str, tools: list[AnthropicTool] | None = None
    ) -> list[AnthropicMessage]:
        """Truncate conversation from the beginning to fit within token limits.

        The result always starts with a user message, and never with a
        tool_result whose tool_use was truncated away.

        Args:
            messages: Conversation messages
            system_prompt: System prompt
            tools: Available tools

        Returns:
            Truncated message list that fits within limits
        """
        if not messages:
            return messages

        available_tokens = self.config.max_conversation_tokens - self.config.token_headroom
        system_tokens = self.estimate_message_tokens(system_prompt)

        tool_tokens = 0
        if tools:
            tool_content = "".join(tool.name + tool.description + str(tool.input_schema) for tool in tools)
            tool_tokens = self.estimate_message_tokens(tool_content)

        available_tokens -= system_tokens + tool_tokens

        truncated_messages: list[AnthropicMessage] = []
        current_tokens = 0

        for message in reversed(messages):
            message_tokens = self.estimate_message_tokens(self._message_text(message))
            if current_tokens + message_tokens > available_tokens:
                break
            truncated_messages.insert(0, message)
            current_tokens += message_tokens

        if len(truncated_messages) < len(messages):
            truncated_messages = self._trim_leading(truncated_messages)
            logger.warning(
                f"Truncated conversation from {len(messages)} to {len(truncated_messages)} messages "
                f"to fit within {available_tokens} token limit"
            )

        return truncated_messages

    def _trim_leading(self, messages: list[AnthropicMessage]) -> list[AnthropicMessage]:
        while messages:
            first = messages[0]
            if first.role == "assistant":
                messages = messages[1:]
                continue
            if isinstance(first.content, list):
                kept = [block for block in first.content if block.get("type") != "tool_result"]
                if not kept:
                    messages = messages[1:]
                    continue
                if len(kept) != len(first.content):
                    messages = [AnthropicMessage(role="user", content=kept), *messages[1:]]
            break
        return messages


def has_api_key() -> bool:
    """Whether an Anthropic API key is configured."""
    return bool(get_settings().anthropic_api_key)


_anthropic_client: AnthropicClient | None = None


def get_anthropic_client() -> AnthropicClient:
    """Get or create Anthropic client instance."""
    global _anthropic_client
    if _anthropic_client is None:
        settings = get_settings()
        _anthropic_client = AnthropicClient(
            api_key=settings.anthropic_api_key,
            config=AnthropicConfig(model=settings.model, max_tokens=settings.max_tokens),
        )
    return _anthropic_client
