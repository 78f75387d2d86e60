from __future__ import annotations

import base64
import logging
import time
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence, Tuple, Union

import httpx
from pydantic_ai import Agent, BinaryContent
from pydantic_ai.exceptions import ModelAPIError, ModelHTTPError, UnexpectedModelBehavior
from pydantic_ai.models import Model

from .config import Settings
from .errors import ErrorKind

logger = logging.getLogger(__name__)

ANTHROPIC_VERSION = "2023-06-01"

SCHEMA_TIMEOUT_SECONDS = 300.0
VISION_TIMEOUT_SECONDS = 90.0


class Provider(str, Enum):
    CLAUDE = "claude"
    GOOGLE = "google"
    OPENAI = "openai"

    @classmethod
    def parse(cls, value: Union[str, "Provider"]) -> "Provider":
        if isinstance(value, Provider):
            return value
        try:
            return cls(value.strip().lower())
        except ValueError:
            allowed = ", ".join(p.value for p in cls)
            raise ValueError(f"Unknown AI provider '{value}'. Expected one of: {allowed}") from None


@dataclass(frozen=True)
class TextBlock:
    text: str

    def to_wire(self) -> Dict[str, Any]:
        return {"type": "text", "text": self.text}

    def to_user_content(self) -> Any:
        return self.text


@dataclass(frozen=True)
class ImageBlock:
    data: bytes
    media_type: str = "image/png"

    wire_type = "image"

    def to_wire(self) -> Dict[str, Any]:
        return {
            "type": self.wire_type,
            "source": {
                "type": "base64",
                "media_type": self.media_type,
                "data": base64.b64encode(self.data).decode("ascii"),
            },
        }

    def to_user_content(self) -> Any:
        return BinaryContent(data=self.data, media_type=self.media_type)

    @property
    def encoded_size(self) -> int:
        # base64 inflates by 4/3, rounded up to whole quads
        return 4 * ((len(self.data) + 2) // 3)


@dataclass(frozen=True)
class DocumentBlock(ImageBlock):
    media_type: str = "application/pdf"

    wire_type = "document"


ContentBlock = Union[TextBlock, ImageBlock, DocumentBlock]


@dataclass(frozen=True)
class ModelRequest:
    """
    One multimodal request: instructions first, then attachments.

    Frozen; every attempt serializes its own payload from it.
    """

    blocks: Tuple[ContentBlock, ...]
    model: str
    max_tokens: int
    timeout_seconds: float

    def payload(self) -> Dict[str, Any]:
        return {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "messages": [
                {"role": "user", "content": [block.to_wire() for block in self.blocks]},
            ],
        }

    @property
    def attachment_count(self) -> int:
        return sum(1 for block in self.blocks if isinstance(block, ImageBlock))

    @property
    def payload_megabytes(self) -> float:
        size = sum(block.encoded_size for block in self.blocks if isinstance(block, ImageBlock))
        return size / (1024.0 * 1024.0)


def build_request(
    prompt: str,
    attachments: Sequence[ImageBlock],
    *,
    model: str,
    max_tokens: int,
    timeout_seconds: float,
) -> ModelRequest:
    blocks: List[ContentBlock] = [TextBlock(prompt)]
    blocks.extend(attachments)
    return ModelRequest(
        blocks=tuple(blocks),
        model=model,
        max_tokens=max_tokens,
        timeout_seconds=timeout_seconds,
    )


@dataclass(frozen=True)
class ModelResponse:
    success: bool
    text: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    message: Optional[str] = None
    status_code: Optional[int] = None
    attempts: int = 1
    connection_reset: bool = False

    @classmethod
    def rejected(cls, message: str, status_code: Optional[int] = None) -> "ModelResponse":
        return cls(
            success=False,
            error_kind=ErrorKind.UPSTREAM_REJECTED,
            message=message,
            status_code=status_code,
        )


class ModelInvoker(Protocol):
    model_name: str

    def invoke(self, request: ModelRequest) -> ModelResponse:
        ...


class TransientModelError(Exception):
    """Transport-level failure: nothing came back from the model endpoint."""

    def __init__(self, message: str, connection_reset: bool = False):
        super().__init__(message)
        self.connection_reset = connection_reset


def _is_connection_reset(exc: BaseException) -> bool:
    current: Optional[BaseException] = exc
    seen = set()
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        if isinstance(current, (httpx.ReadError, httpx.WriteError, httpx.RemoteProtocolError)):
            return True
        if "reset" in str(current).lower():
            return True
        current = current.__cause__ or current.__context__
    return False


class RetryingInvoker:
    """
    Bounded retry around a single model call.

    Only TransientModelError is retried. Anything the endpoint actually answered,
    error statuses included, is returned on the spot.
    """

    max_attempts = 2
    retry_delay_seconds = 2.0

    model_name: str

    def __init__(self, sleep: Callable[[float], None] = time.sleep):
        self._sleep = sleep

    def _send(self, request: ModelRequest) -> ModelResponse:
        raise NotImplementedError

    def invoke(self, request: ModelRequest) -> ModelResponse:
        last_error: Optional[TransientModelError] = None
        for attempt in range(1, self.max_attempts + 1):
            logger.info(
                "Calling %s (attempt %s/%s)", request.model, attempt, self.max_attempts
            )
            try:
                response = self._send(request)
            except TransientModelError as exc:
                last_error = exc
                if attempt < self.max_attempts:
                    logger.warning(
                        "Connection error on attempt %s, retrying in %sms: %s",
                        attempt,
                        int(self.retry_delay_seconds * 1000),
                        exc,
                    )
                    self._sleep(self.retry_delay_seconds)
                continue
            return replace(response, attempts=attempt)

        logger.error("All %s attempts to reach %s failed", self.max_attempts, request.model)
        return ModelResponse(
            success=False,
            error_kind=ErrorKind.TRANSIENT_NETWORK,
            message=str(last_error),
            attempts=self.max_attempts,
            connection_reset=bool(last_error and last_error.connection_reset),
        )


def first_text_block(body: Any) -> Optional[str]:
    if not isinstance(body, dict):
        return None
    content = body.get("content")
    if not isinstance(content, list):
        return None
    for block in content:
        if isinstance(block, dict) and isinstance(block.get("text"), str):
            return block["text"]
    return None


def upstream_message(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if isinstance(error, str):
            return error
    return resp.text[:500] or resp.reason_phrase


class AnthropicInvoker(RetryingInvoker):
    """Messages API client speaking the content-block wire format directly."""

    def __init__(
        self,
        api_key: str,
        api_url: str,
        model_name: str,
        transport: httpx.BaseTransport | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        super().__init__(sleep=sleep)
        self._api_key = api_key
        self._api_url = api_url
        self.model_name = model_name
        self._transport = transport

    def _headers(self) -> Dict[str, str]:
        return {
            "content-type": "application/json",
            "x-api-key": self._api_key,
            "anthropic-version": ANTHROPIC_VERSION,
        }

    def _send(self, request: ModelRequest) -> ModelResponse:
        payload = request.payload()
        try:
            with httpx.Client(timeout=request.timeout_seconds, transport=self._transport) as client:
                resp = client.post(self._api_url, json=payload, headers=self._headers())
        except httpx.TransportError as exc:
            raise TransientModelError(
                str(exc) or type(exc).__name__, connection_reset=_is_connection_reset(exc)
            ) from exc

        if resp.is_error:
            message = upstream_message(resp)
            logger.error("Model API responded HTTP %s: %s", resp.status_code, message)
            return ModelResponse.rejected(message, status_code=resp.status_code)

        try:
            body = resp.json()
        except ValueError:
            return ModelResponse.rejected("Model API returned a non-JSON body", resp.status_code)

        text = first_text_block(body)
        if text is None:
            return ModelResponse.rejected("Model API response has no text content", resp.status_code)

        logger.info("Received response from %s", request.model)
        return ModelResponse(success=True, text=text, status_code=resp.status_code)


class PydanticAIInvoker(RetryingInvoker):
    """
    Provider-agnostic variant built on a pydanticAI agent.

    `model` is anything pydanticAI accepts, e.g. "google-gla:gemini-1.5-pro",
    "openai:gpt-4o" or a Model instance.
    """

    def __init__(
        self,
        model: Union[str, Model],
        sleep: Callable[[float], None] = time.sleep,
    ):
        super().__init__(sleep=sleep)
        self._model = model
        self.model_name = model if isinstance(model, str) else model.model_name

    def _send(self, request: ModelRequest) -> ModelResponse:
        agent: Agent[None, str] = Agent(self._model)
        inputs = [block.to_user_content() for block in request.blocks]
        try:
            # pydanticAI agents are async-first; run_sync blocks for the pipeline.
            result = agent.run_sync(
                inputs,
                model_settings={
                    "max_tokens": request.max_tokens,
                    "timeout": request.timeout_seconds,
                },
            )
        except (httpx.TransportError, TimeoutError) as exc:
            raise TransientModelError(
                str(exc) or type(exc).__name__, connection_reset=_is_connection_reset(exc)
            ) from exc
        except ModelHTTPError as exc:
            logger.error("Model API responded HTTP %s: %s", exc.status_code, exc.body)
            return ModelResponse.rejected(str(exc.body or exc), status_code=exc.status_code)
        except ModelAPIError as exc:
            # Provider SDKs wrap connection and timeout failures in ModelAPIError.
            raise TransientModelError(
                str(exc) or type(exc).__name__, connection_reset=_is_connection_reset(exc)
            ) from exc
        except UnexpectedModelBehavior as exc:
            return ModelResponse.rejected(f"Unexpected model behaviour: {exc}")

        return ModelResponse(success=True, text=str(result.output))


def build_invoker(
    provider: Provider,
    settings: Settings,
    *,
    transport: httpx.BaseTransport | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> ModelInvoker:
    if provider is Provider.CLAUDE:
        return AnthropicInvoker(
            api_key=settings.anthropic_api_key,
            api_url=settings.anthropic_api_url,
            model_name=settings.anthropic_model,
            transport=transport,
            sleep=sleep,
        )
    if provider is Provider.GOOGLE:
        return PydanticAIInvoker(settings.google_model, sleep=sleep)
    return PydanticAIInvoker(settings.openai_model, sleep=sleep)


def build_invokers(settings: Settings) -> Dict[Provider, ModelInvoker]:
    return {provider: build_invoker(provider, settings) for provider in Provider}
