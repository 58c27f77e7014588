"""HTTP client for the Sourcegraph completions backend.

Two calls are offered. ``get_completion`` is a single GraphQL request that
returns the whole answer. ``stream_completion`` reads the server-sent event
stream, where every ``data:`` line carries the *full* answer generated so
far, not a delta, so consumers must treat each chunk as a replacement.
"""

import json
from collections.abc import AsyncIterator
from typing import Any

import httpx
import structlog

from llmsp.errors import BackendError

from .models import CompletionParameters

logger = structlog.get_logger(__name__)

GRAPHQL_PATH = "/.api/graphql"
STREAM_PATH = "/.api/completions/stream"
CODE_FENCE_END = "\n```"

GET_COMPLETIONS_QUERY = """query GetCompletions($messages: [Message!]!, $temperature: Float!, $maxTokensToSample: Int!, $topK: Int!, $topP: Int!) {
  completions(input: {
    messages: $messages,
    temperature: $temperature,
    maxTokensToSample: $maxTokensToSample,
    topK: $topK,
    topP: $topP
  })
}"""


class CompletionClient:
    """Talks to the completions API of a Sourcegraph instance."""

    def __init__(
        self,
        url: str,
        access_token: str,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 60.0,
    ) -> None:
        self.url = url.rstrip("/")
        self._access_token = access_token
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(timeout=timeout)

    def _headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json; charset=utf-8",
            "Authorization": f"token {self._access_token}",
        }

    async def get_completion(
        self,
        params: CompletionParameters,
        include_prompt_text: bool = False,
    ) -> str:
        """
        Request a complete answer in one round trip.

        Args:
            params: Prompt and sampling parameters
            include_prompt_text: Prefix the answer with the priming text of
                the final prompt message

        Returns:
            The model's answer

        Raises:
            BackendError: On transport failure, HTTP error status, GraphQL
                errors, or an unreadable body
        """
        payload = {
            "query": GET_COMPLETIONS_QUERY,
            "variables": params.to_variables(),
        }
        try:
            response = await self._http.post(
                self.url + GRAPHQL_PATH, json=payload, headers=self._headers()
            )
            response.raise_for_status()
            body = response.json()
        except httpx.HTTPError as e:
            logger.warning("completion.request_failed", error=str(e))
            raise BackendError(f"Completion request failed: {e}") from e
        except ValueError as e:
            raise BackendError("Completion response is not valid JSON") from e

        errors = body.get("errors") if isinstance(body, dict) else None
        if errors:
            messages = "; ".join(str(err.get("message", err)) for err in errors)
            raise BackendError(f"Completion query failed: {messages}")

        try:
            completion = body["data"]["completions"]
        except (KeyError, TypeError) as e:
            raise BackendError("Completion response has no data") from e
        if not isinstance(completion, str):
            raise BackendError("Completion response has no data")

        if include_prompt_text:
            completion = params.priming_text + completion
        logger.debug(
            "completion.received",
            prompt_messages=len(params.messages),
            length=len(completion),
        )
        return completion

    async def stream_completion(
        self,
        params: CompletionParameters,
        include_prompt_text: bool = False,
    ) -> AsyncIterator[str]:
        """
        Stream an answer as a sequence of cumulative snapshots.

        Each yielded string is the full answer so far with a trailing closing
        code fence removed.

        Raises:
            BackendError: If the request cannot be made or is rejected
        """
        payload = params.to_variables(lowercase_speaker=True)
        prefix = params.priming_text if include_prompt_text else ""
        try:
            async with self._http.stream(
                "POST", self.url + STREAM_PATH, json=payload, headers=self._headers()
            ) as response:
                response.raise_for_status()
                async for line in response.aiter_lines():
                    if line.startswith("event"):
                        if "done" in line:
                            break
                        continue
                    if not line.startswith("data: "):
                        continue
                    completion = _decode_event_data(line[len("data: "):])
                    if completion is None:
                        continue
                    yield (prefix + completion).removesuffix(CODE_FENCE_END)
        except httpx.HTTPError as e:
            logger.warning("completion.stream_failed", error=str(e))
            raise BackendError(f"Completion stream failed: {e}") from e

    async def aclose(self) -> None:
        if self._owns_client:
            await self._http.aclose()


def _decode_event_data(data: str) -> str | None:
    try:
        event: Any = json.loads(data)
    except json.JSONDecodeError:
        logger.debug("completion.bad_event", data=data[:200])
        return None
    if not isinstance(event, dict):
        return None
    completion = event.get("completion")
    return completion if isinstance(completion, str) else None
