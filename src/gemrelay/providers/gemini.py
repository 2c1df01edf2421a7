"""Google Gemini provider.

Uses the google-genai SDK. The SDK client is created lazily on first use and
guarded by an asyncio.Lock so concurrent first calls share one client. SDK
errors are classified here, once, into the closed ErrorKind set.
"""

import asyncio
import logging
import os
from typing import Any

import httpx
from google import genai
from google.genai import errors, types

from gemrelay.constants import API_KEY_ENV_VAR, USER_AGENT
from gemrelay.exceptions import (
    RETRYABLE_ERROR_KINDS,
    AuthenticationError,
    ConfigurationError,
    ErrorKind,
    FatalProviderError,
    ProviderError,
    RequestAbortedError,
    TransientProviderError,
)
from gemrelay.models.config import LLMConfig
from gemrelay.providers.base import (
    Candidate,
    Content,
    FunctionCall,
    LLMProvider,
    Part,
    ProviderRequest,
    ProviderResponse,
    UsageCounters,
)
from gemrelay.providers.factory import ProviderRegistry
from gemrelay.retry import abortable

logger = logging.getLogger(__name__)

# Gemini calls the assistant role "model"
SDK_ROLES = {"assistant": "model"}

# Fallback when the error payload carries no RPC status name
HTTP_STATUS_KINDS = {
    400: ErrorKind.INVALID_ARGUMENT,
    401: ErrorKind.UNAUTHENTICATED,
    403: ErrorKind.PERMISSION_DENIED,
    404: ErrorKind.NOT_FOUND,
    409: ErrorKind.ABORTED,
    429: ErrorKind.RESOURCE_EXHAUSTED,
    499: ErrorKind.CANCELLED,
    500: ErrorKind.INTERNAL,
    503: ErrorKind.UNAVAILABLE,
    504: ErrorKind.DEADLINE_EXCEEDED,
}

INVALID_KEY_REASON = "API_KEY_INVALID"
INVALID_KEY_MESSAGE = "API key not valid"

SAFETY_SETTINGS = [
    types.SafetySetting(
        category=category,
        threshold=types.HarmBlockThreshold.BLOCK_MEDIUM_AND_ABOVE,
    )
    for category in (
        types.HarmCategory.HARM_CATEGORY_HARASSMENT,
        types.HarmCategory.HARM_CATEGORY_HATE_SPEECH,
        types.HarmCategory.HARM_CATEGORY_DANGEROUS_CONTENT,
    )
]


def error_kind(status: str | None, code: int | None) -> ErrorKind:
    """Map an RPC status name (preferred) or HTTP code to an ErrorKind."""
    if status:
        try:
            return ErrorKind(status.upper())
        except ValueError:
            pass
    if code is not None:
        return HTTP_STATUS_KINDS.get(code, ErrorKind.UNKNOWN)
    return ErrorKind.UNKNOWN


def _error_reasons(payload: Any) -> set[str]:
    """Collect ``reason`` fields from a google.rpc error payload."""
    if not isinstance(payload, dict):
        return set()
    error = payload.get("error", payload)
    details = error.get("details") if isinstance(error, dict) else None
    return {
        detail["reason"]
        for detail in details or []
        if isinstance(detail, dict) and "reason" in detail
    }


def classify_error(error: Exception) -> ProviderError:
    """Convert an SDK or transport exception into a classified ProviderError.

    Args:
        error: Exception raised while calling the provider.

    Returns:
        AuthenticationError for a rejected key, TransientProviderError for
        kinds on the retry allow-list, FatalProviderError otherwise.
    """
    if isinstance(error, ProviderError):
        return error

    if isinstance(error, errors.APIError):
        kind = error_kind(error.status, error.code)
        message = error.message or str(error)
        if (
            kind == ErrorKind.UNAUTHENTICATED
            or INVALID_KEY_REASON in _error_reasons(error.details)
            or INVALID_KEY_MESSAGE in message
        ):
            return AuthenticationError(message, ErrorKind.UNAUTHENTICATED)
    elif isinstance(error, (httpx.TimeoutException, TimeoutError)):
        kind = ErrorKind.DEADLINE_EXCEEDED
        message = str(error) or "Request timed out"
    elif isinstance(error, (httpx.TransportError, ConnectionError)):
        kind = ErrorKind.UNAVAILABLE
        message = str(error) or "Connection failed"
    else:
        kind = ErrorKind.UNKNOWN
        message = str(error) or error.__class__.__name__

    if kind in RETRYABLE_ERROR_KINDS:
        return TransientProviderError(f"{kind.value}: {message}", kind)
    return FatalProviderError(message, kind)


@ProviderRegistry.register("gemini")
class GeminiProvider(LLMProvider):
    """Gemini provider backed by a lazily-created google-genai client."""

    def __init__(self, config: LLMConfig) -> None:
        """Initialize the Gemini provider.

        The API key is not checked here; a missing key surfaces as a
        ConfigurationError on first use, before any network activity.

        Args:
            config: LLM configuration with model, sampling parameters and
                optional api_key / base_url.
        """
        super().__init__(config)
        self._client: genai.Client | None = None
        self._client_lock = asyncio.Lock()

    def _resolve_api_key(self) -> str:
        if self._config.api_key:
            return self._config.api_key.get_secret_value()
        api_key = os.environ.get(API_KEY_ENV_VAR)
        if not api_key:
            msg = f"{API_KEY_ENV_VAR} environment variable is required"
            raise ConfigurationError(msg)
        return api_key

    async def get_client(self) -> genai.Client:
        """Return the SDK client, creating it on first use."""
        if self._client is not None:
            return self._client
        async with self._client_lock:
            if self._client is None:
                http_options = types.HttpOptions(
                    headers={"User-Agent": USER_AGENT},
                    base_url=self._config.base_url,
                )
                self._client = genai.Client(
                    api_key=self._resolve_api_key(),
                    http_options=http_options,
                )
                logger.debug("Created Gemini client for model %s", self._config.model)
        return self._client

    def _build_contents(self, request: ProviderRequest) -> list[types.Content]:
        return [
            types.Content(
                role=SDK_ROLES.get(entry["role"], entry["role"]),
                parts=[types.Part(text=part.get("text", "")) for part in entry["parts"]],
            )
            for entry in request.history
        ]

    def _build_config(self, request: ProviderRequest) -> types.GenerateContentConfig:
        generation = request.generation_config
        tools: list[types.Tool] | None = None
        if request.tools:
            tools = [
                types.Tool(
                    function_declarations=[
                        types.FunctionDeclaration(
                            name=declaration["name"],
                            description=declaration["description"],
                            parameters_json_schema=declaration["parameters"],
                        )
                        for declaration in group["functionDeclarations"]
                    ]
                )
                for group in request.tools
            ]
        return types.GenerateContentConfig(
            temperature=generation.temperature,
            top_p=generation.top_p,
            top_k=generation.top_k,
            max_output_tokens=generation.max_output_tokens,
            safety_settings=SAFETY_SETTINGS,
            tools=tools,
        )

    def _convert_response(
        self, response: types.GenerateContentResponse, model: str
    ) -> ProviderResponse:
        """Convert an SDK response to a ProviderResponse."""
        candidates: list[Candidate] = []
        for candidate in response.candidates or []:
            parts: list[Part] = []
            content = candidate.content
            for part in (content.parts if content and content.parts else []):
                function_call = None
                if part.function_call is not None:
                    function_call = FunctionCall(
                        name=part.function_call.name or "",
                        args=dict(part.function_call.args or {}),
                    )
                parts.append(Part(text=part.text, function_call=function_call))
            finish_reason = candidate.finish_reason
            candidates.append(
                Candidate(
                    content=Content(
                        role=(content.role if content and content.role else "model"),
                        parts=parts,
                    ),
                    finish_reason=getattr(finish_reason, "value", finish_reason),
                )
            )

        text = ""
        if candidates:
            text = "".join(part.text for part in candidates[0].content.parts if part.text)

        usage = None
        metadata = response.usage_metadata
        if metadata is not None:
            usage = UsageCounters(
                total_tokens=metadata.total_token_count,
                prompt_tokens=metadata.prompt_token_count,
                candidates_tokens=metadata.candidates_token_count,
            )

        return ProviderResponse(
            text=text,
            candidates=candidates,
            usage=usage,
            model=response.model_version or model,
        )

    async def send(
        self,
        request: ProviderRequest,
        *,
        abort: asyncio.Event | None = None,
    ) -> ProviderResponse:
        """Send one generate_content request.

        Args:
            request: Provider-native request.
            abort: Optional abort signal.

        Returns:
            ProviderResponse converted from the SDK response.

        Raises:
            ConfigurationError: If no API key is available.
            ProviderError: Classified SDK or transport failure.
            RequestAbortedError: If the abort signal fired.
        """
        client = await self.get_client()
        try:
            response = await abortable(
                client.aio.models.generate_content(
                    model=request.model,
                    contents=self._build_contents(request),
                    config=self._build_config(request),
                ),
                abort,
            )
        except RequestAbortedError:
            raise
        except Exception as e:
            raise classify_error(e) from e

        return self._convert_response(response, request.model)

    async def close(self) -> None:
        """Close the SDK client's async transport if one was created."""
        if self._client is None:
            return
        aclose = getattr(self._client.aio, "aclose", None)
        if aclose is not None:
            await aclose()
        self._client = None
