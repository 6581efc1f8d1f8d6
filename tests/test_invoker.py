"""Tests for the remote prediction client using a mocked transport."""
from __future__ import annotations

import json
import time

import httpx
import numpy as np
import pytest
from google.auth.exceptions import RefreshError, TransportError
from google.oauth2.credentials import Credentials

from foodvision.errors import AuthError, NetworkError, RemoteError
from foodvision.services.invoker import (
    ModelPath,
    PredictionClient,
    build_request_body,
    parse_predictions,
)

MODEL = ModelPath(project="demo-project", region="us-central1", model="food_vision")
TENSOR = np.zeros((1, 4, 4, 3), dtype=np.float32)


class ExpiredCredentials:
    valid = False
    token = None

    def refresh(self, request) -> None:
        raise RefreshError("invalid_grant: account disabled")


class UnreachableTokenEndpoint(ExpiredCredentials):
    def refresh(self, request) -> None:
        raise TransportError("HTTPSConnectionPool: Read timed out")


class HangingTokenEndpoint(ExpiredCredentials):
    def refresh(self, request) -> None:
        time.sleep(0.5)


def make_client(handler, credentials=None, timeout: float = 5.0) -> PredictionClient:
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return PredictionClient(
        MODEL, credentials or Credentials(token="test-token"), http_client, timeout=timeout
    )


def test_model_path_urls():
    assert MODEL.name == "projects/demo-project/models/food_vision"
    assert MODEL.predict_url == (
        "https://us-central1-ml.googleapis.com/v1/projects/demo-project/models/food_vision:predict"
    )
    versioned = ModelPath("p", "global", "m", version="v2")
    assert versioned.predict_url == "https://ml.googleapis.com/v1/projects/p/models/m/versions/v2:predict"
    custom = ModelPath("p", "europe-west4", "m", endpoint="http://localhost:8501/")
    assert custom.predict_url == "http://localhost:8501/v1/projects/p/models/m:predict"


def test_build_request_body_is_one_nested_instance():
    body = build_request_body(np.ones((1, 2, 2, 3), dtype=np.float32))
    assert len(body["instances"]) == 1
    assert body["instances"][0] == [[[1.0, 1.0, 1.0]] * 2] * 2


@pytest.mark.parametrize(
    "payload",
    [
        {"predictions": []},
        {},
        {"predictions": [[0.1, 0.9], [0.8, 0.2]]},
        {"predictions": [[]]},
        {"predictions": [["a", "b"]]},
        {"predictions": [{"labels": [1]}]},
        {"error": "Prediction failed: bad input"},
        [0.1, 0.9],
    ],
)
def test_parse_predictions_rejects_malformed(payload):
    with pytest.raises(RemoteError):
        parse_predictions(payload)


def test_parse_predictions_accepts_signature_outputs():
    assert parse_predictions({"predictions": [{"scores": [0.25, 0.75]}]}) == [0.25, 0.75]


@pytest.mark.asyncio
async def test_predict_posts_tensor_and_returns_scores():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["auth"] = request.headers["Authorization"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"predictions": [[0.1, 0.8, 0.1]]})

    client = make_client(handler)
    assert await client.predict(TENSOR) == [0.1, 0.8, 0.1]
    assert seen["url"] == MODEL.predict_url
    assert seen["auth"] == "Bearer test-token"
    assert np.asarray(seen["body"]["instances"]).shape == (1, 4, 4, 3)


@pytest.mark.asyncio
async def test_predict_timeout_is_network_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    with pytest.raises(NetworkError, match="timed out"):
        await make_client(handler, timeout=0.5).predict(TENSOR)


@pytest.mark.asyncio
async def test_predict_connection_failure_is_network_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(NetworkError):
        await make_client(handler).predict(TENSOR)


@pytest.mark.asyncio
@pytest.mark.parametrize("status_code", [401, 403])
async def test_predict_denied_is_auth_error(status_code):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status_code, json={"error": {"message": "Permission denied"}})

    with pytest.raises(AuthError, match="Permission denied"):
        await make_client(handler).predict(TENSOR)


@pytest.mark.asyncio
async def test_predict_refresh_failure_is_auth_error():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(200, json={"predictions": [[1.0]]})

    with pytest.raises(AuthError, match="invalid_grant"):
        await make_client(handler, credentials=ExpiredCredentials()).predict(TENSOR)
    assert calls == []


@pytest.mark.asyncio
async def test_predict_server_error_is_remote_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, json={"error": {"code": 500, "message": "Internal error"}})

    with pytest.raises(RemoteError) as excinfo:
        await make_client(handler).predict(TENSOR)
    assert excinfo.value.upstream_status == 500
    assert "Internal error" in excinfo.value.message


@pytest.mark.asyncio
async def test_predict_empty_predictions_is_remote_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"predictions": []})

    with pytest.raises(RemoteError):
        await make_client(handler).predict(TENSOR)


@pytest.mark.asyncio
async def test_predict_non_json_body_is_remote_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="<html>gateway</html>")

    with pytest.raises(RemoteError, match="non-JSON"):
        await make_client(handler).predict(TENSOR)


@pytest.mark.asyncio
async def test_refresh_transport_failure_is_network_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"predictions": [[1.0]]})

    with pytest.raises(NetworkError, match="token endpoint"):
        await make_client(handler, credentials=UnreachableTokenEndpoint()).predict(TENSOR)


@pytest.mark.asyncio
async def test_refresh_is_bounded_by_call_timeout():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(200, json={"predictions": [[1.0]]})

    started = time.monotonic()
    with pytest.raises(NetworkError, match="timed out"):
        await make_client(handler, credentials=HangingTokenEndpoint(), timeout=0.05).predict(TENSOR)
    assert time.monotonic() - started < 0.4
    assert calls == []

