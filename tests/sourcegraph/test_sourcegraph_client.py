"""Tests for the Sourcegraph GraphQL client."""

import json
from typing import Any

import httpx
import pytest

from llmsp.errors import BackendError
from llmsp.sourcegraph import EmbeddingResult, SourcegraphClient

URL = "https://sourcegraph.example.com/"


class GraphQLRecorder:
    """MockTransport handler answering every request with one payload."""

    def __init__(self, payload: Any, status: int = 200) -> None:
        self.payload = payload
        self.status = status
        self.bodies: list[dict[str, Any]] = []
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        self.bodies.append(json.loads(request.content))
        return httpx.Response(self.status, json=self.payload)


def make_client(recorder: GraphQLRecorder, token: str = "sgp_token") -> SourcegraphClient:
    http = httpx.AsyncClient(transport=httpx.MockTransport(recorder))
    return SourcegraphClient(URL, token, http_client=http)


@pytest.mark.asyncio
async def test_get_repo_id() -> None:
    recorder = GraphQLRecorder({"data": {"repository": {"id": "UmVwbzox"}}})
    client = make_client(recorder)

    assert await client.get_repo_id("github.com/acme/widgets") == "UmVwbzox"
    assert recorder.requests[0].url == "https://sourcegraph.example.com/.api/graphql"
    assert recorder.requests[0].headers["Authorization"] == "token sgp_token"
    assert recorder.bodies[0]["variables"] == {"name": "github.com/acme/widgets"}


@pytest.mark.asyncio
async def test_get_repo_id_unknown_repository() -> None:
    client = make_client(GraphQLRecorder({"data": {"repository": None}}))
    assert await client.get_repo_id("github.com/acme/private") == ""


@pytest.mark.asyncio
async def test_get_embeddings() -> None:
    recorder = GraphQLRecorder(
        {
            "data": {
                "embeddingsSearch": {
                    "codeResults": [
                        {
                            "fileName": "main.go",
                            "startLine": 1,
                            "endLine": 9,
                            "content": "package main",
                        }
                    ],
                    "textResults": [
                        {
                            "fileName": "README.md",
                            "startLine": 0,
                            "endLine": 2,
                            "content": "# Widgets",
                        }
                    ],
                }
            }
        }
    )
    client = make_client(recorder)

    found = await client.get_embeddings("UmVwbzox", "entry point", 12, 3)

    assert found.code_results == [EmbeddingResult("main.go", 1, 9, "package main")]
    assert [r.file_name for r in found.all_results] == ["main.go", "README.md"]
    assert recorder.bodies[0]["variables"] == {
        "repo": "UmVwbzox",
        "query": "entry point",
        "codeResultsCount": 12,
        "textResultsCount": 3,
    }


@pytest.mark.asyncio
async def test_get_embeddings_empty() -> None:
    client = make_client(GraphQLRecorder({"data": {"embeddingsSearch": None}}))
    found = await client.get_embeddings("UmVwbzox", "anything", 8, 0)
    assert found.all_results == []


@pytest.mark.asyncio
async def test_log_event() -> None:
    recorder = GraphQLRecorder({"data": {"logEvent": {"alwaysNil": None}}})
    client = make_client(recorder, token="")

    await client.log_event("CodyInstalled", "uid-1", "{}", "{}")

    variables = recorder.bodies[0]["variables"]
    assert variables["event"] == "CodyInstalled"
    assert variables["userCookieID"] == "uid-1"
    assert variables["source"] == "IDEEXTENSION"
    assert "Authorization" not in recorder.requests[0].headers


@pytest.mark.asyncio
async def test_graphql_errors_raise() -> None:
    client = make_client(GraphQLRecorder({"errors": [{"message": "not authorized"}]}))
    with pytest.raises(BackendError, match="not authorized"):
        await client.get_repo_id("github.com/acme/widgets")


@pytest.mark.asyncio
async def test_http_errors_raise() -> None:
    client = make_client(GraphQLRecorder({}, status=502))
    with pytest.raises(BackendError, match="failed"):
        await client.get_embeddings("UmVwbzox", "q", 1, 1)
