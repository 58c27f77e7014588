"""GraphQL client for Sourcegraph repository lookup, embeddings, and events."""

from dataclasses import dataclass, field
from typing import Any

import httpx
import structlog

from llmsp.errors import BackendError

logger = structlog.get_logger(__name__)

GRAPHQL_PATH = "/.api/graphql"

EMBEDDINGS_SEARCH_QUERY = """query EmbeddingsSearch($repo: ID!, $query: String!, $codeResultsCount: Int!, $textResultsCount: Int!) {
  embeddingsSearch(repo: $repo, query: $query, codeResultsCount: $codeResultsCount, textResultsCount: $textResultsCount) {
    codeResults {
      fileName
      startLine
      endLine
      content
    }
    textResults {
      fileName
      startLine
      endLine
      content
    }
  }
}"""

REPO_ID_QUERY = """query RepoID($name: String!) {
  repository(name: $name) {
    id
  }
}"""

LOG_EVENT_MUTATION = """mutation LogEventMutation($event: String!, $userCookieID: String!, $url: String!, $source: EventSource!, $argument: String, $publicArgument: String) {
  logEvent(
    event: $event
    userCookieID: $userCookieID
    url: $url
    source: $source
    argument: $argument
    publicArgument: $publicArgument
  ) {
    alwaysNil
  }
}"""


@dataclass
class EmbeddingResult:
    """A snippet returned by embeddings search."""

    file_name: str
    start_line: int
    end_line: int
    content: str

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "EmbeddingResult":
        return cls(
            file_name=data.get("fileName", ""),
            start_line=int(data.get("startLine", 0)),
            end_line=int(data.get("endLine", 0)),
            content=data.get("content", ""),
        )


@dataclass
class EmbeddingsSearchResult:
    """Code and text hits, each list ordered by relevance descending."""

    code_results: list[EmbeddingResult] = field(default_factory=list)
    text_results: list[EmbeddingResult] = field(default_factory=list)

    @property
    def all_results(self) -> list[EmbeddingResult]:
        return self.code_results + self.text_results


class SourcegraphClient:
    """Client for the GraphQL API of a Sourcegraph instance."""

    def __init__(
        self,
        url: str,
        access_token: str = "",
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 60.0,
    ) -> None:
        self.url = url.rstrip("/")
        self._access_token = access_token
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(timeout=timeout)

    async def get_repo_id(self, repo_name: str) -> str:
        """
        Resolve a canonical repository name to its GraphQL id.

        Returns:
            The repository id, or "" if the instance does not know the repo

        Raises:
            BackendError: If the request fails
        """
        data = await self._send(REPO_ID_QUERY, {"name": repo_name})
        repository = (data or {}).get("repository") or {}
        return repository.get("id") or ""

    async def get_embeddings(
        self,
        repo_id: str,
        query: str,
        code_results: int,
        text_results: int,
    ) -> EmbeddingsSearchResult:
        """
        Search a repository's embeddings index.

        Args:
            repo_id: GraphQL id of the repository
            query: Natural language or code query
            code_results: Number of code snippets to return
            text_results: Number of text snippets to return

        Raises:
            BackendError: If the request fails
        """
        data = await self._send(
            EMBEDDINGS_SEARCH_QUERY,
            {
                "repo": repo_id,
                "query": query,
                "codeResultsCount": code_results,
                "textResultsCount": text_results,
            },
        )
        search = (data or {}).get("embeddingsSearch") or {}
        return EmbeddingsSearchResult(
            code_results=[
                EmbeddingResult.from_dict(r) for r in search.get("codeResults") or []
            ],
            text_results=[
                EmbeddingResult.from_dict(r) for r in search.get("textResults") or []
            ],
        )

    async def log_event(
        self,
        event_name: str,
        uid: str,
        argument: str,
        public_argument: str,
    ) -> None:
        """Record a usage event.

        Raises:
            BackendError: If the request fails
        """
        await self._send(
            LOG_EVENT_MUTATION,
            {
                "event": event_name,
                "userCookieID": uid,
                "url": "",
                "source": "IDEEXTENSION",
                "argument": argument,
                "publicArgument": public_argument,
            },
        )

    async def _send(self, query: str, variables: dict[str, Any]) -> dict[str, Any] | None:
        headers = {"Content-Type": "application/json"}
        if self._access_token:
            headers["Authorization"] = f"token {self._access_token}"
        try:
            response = await self._http.post(
                self.url + GRAPHQL_PATH,
                json={"query": query, "variables": variables},
                headers=headers,
            )
            response.raise_for_status()
            body = response.json()
        except httpx.HTTPError as e:
            raise BackendError(f"GraphQL request to {self.url} failed: {e}") from e
        except ValueError as e:
            raise BackendError(f"GraphQL response from {self.url} is not JSON") from e

        if not isinstance(body, dict):
            raise BackendError(f"GraphQL response from {self.url} is malformed")
        if body.get("errors"):
            messages = "; ".join(
                str(err.get("message", err)) for err in body["errors"]
            )
            raise BackendError(f"GraphQL query failed: {messages}")
        return body.get("data")

    async def aclose(self) -> None:
        if self._owns_client:
            await self._http.aclose()
