"""Client for the Cloud ML Engine online prediction API."""
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, List, Optional, Sequence

import google.auth
import httpx
import numpy as np
from google.auth.credentials import Credentials
from google.auth.exceptions import GoogleAuthError, TransportError
from google.auth.transport.requests import Request as AuthRequest
from google.oauth2 import service_account

from ..errors import AuthError, NetworkError, RemoteError
from ..utils.logger import get_logger

CLOUD_PLATFORM_SCOPE = "https://www.googleapis.com/auth/cloud-platform"
GLOBAL_ENDPOINT = "https://ml.googleapis.com"
# Signature-style outputs some exported models wrap their scores in.
_SCORE_KEYS = ("scores", "probabilities", "output_0")

logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class ModelPath:
    project: str
    region: str
    model: str
    version: Optional[str] = None
    endpoint: Optional[str] = None

    @property
    def name(self) -> str:
        name = f"projects/{self.project}/models/{self.model}"
        if self.version:
            name += f"/versions/{self.version}"
        return name

    @property
    def base_url(self) -> str:
        if self.endpoint:
            return self.endpoint.rstrip("/")
        if not self.region or self.region == "global":
            return GLOBAL_ENDPOINT
        return f"https://{self.region}-ml.googleapis.com"

    @property
    def predict_url(self) -> str:
        return f"{self.base_url}/v1/{self.name}:predict"


def load_credentials(path: Optional[str] = None, scopes: Sequence[str] = (CLOUD_PLATFORM_SCOPE,)) -> Credentials:
    """Load a service account key file, or application default credentials."""
    try:
        if path:
            return service_account.Credentials.from_service_account_file(path, scopes=list(scopes))
        credentials, _ = google.auth.default(scopes=list(scopes))
        return credentials
    except (GoogleAuthError, OSError, ValueError) as exc:
        raise AuthError(f"Could not load service credentials: {exc}") from exc


def build_request_body(tensor: np.ndarray) -> dict:
    """Serialise a batched tensor as one instance per leading-axis entry."""
    return {"instances": np.asarray(tensor).tolist()}


def _extract_scores(prediction: Any) -> List[float]:
    if isinstance(prediction, dict):
        for key in _SCORE_KEYS:
            if key in prediction:
                prediction = prediction[key]
                break
        else:
            raise RemoteError(f"Prediction has none of the expected keys {_SCORE_KEYS}")
    if not isinstance(prediction, list) or not prediction:
        raise RemoteError("Prediction is not a non-empty score list")
    if not all(isinstance(value, (int, float)) and not isinstance(value, bool) for value in prediction):
        raise RemoteError("Prediction contains non-numeric scores")
    return [float(value) for value in prediction]


def parse_predictions(payload: Any) -> List[float]:
    """Return the single score vector of a predict response."""
    if not isinstance(payload, dict):
        raise RemoteError("Response body is not a JSON object")
    if "error" in payload:
        raise RemoteError(f"Prediction failed: {payload['error']}")
    predictions = payload.get("predictions")
    if not isinstance(predictions, list) or not predictions:
        raise RemoteError("Response has no predictions")
    if len(predictions) != 1:
        raise RemoteError(f"Expected exactly one prediction, got {len(predictions)}")
    return _extract_scores(predictions[0])


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200] or response.reason_phrase
    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict):
        return str(error.get("message") or error)
    return str(error or body)


class PredictionClient:
    """Calls ``projects.predict`` for a fixed model with a per-call timeout.

    The wrapped ``httpx.AsyncClient`` is shared between requests. Token
    refreshes run under the same timeout. Failures are raised once; nothing is
    retried here.
    """

    def __init__(
        self,
        model_path: ModelPath,
        credentials: Credentials,
        http_client: httpx.AsyncClient,
        *,
        timeout: float = 30.0,
    ) -> None:
        self.model_path = model_path
        self._credentials = credentials
        self._http = http_client
        self._timeout = timeout
        self._refresh_lock = asyncio.Lock()
        self._auth_request = AuthRequest()

    async def _authorization_header(self) -> dict:
        if not self._credentials.valid:
            async with self._refresh_lock:
                if not self._credentials.valid:
                    try:
                        await asyncio.wait_for(
                            asyncio.to_thread(self._credentials.refresh, self._auth_request),
                            self._timeout,
                        )
                    except asyncio.TimeoutError as exc:
                        raise NetworkError(
                            f"Credential refresh timed out after {self._timeout}s"
                        ) from exc
                    except TransportError as exc:
                        raise NetworkError(f"Could not reach the token endpoint: {exc}") from exc
                    except GoogleAuthError as exc:
                        raise AuthError(f"Could not refresh service credentials: {exc}") from exc
        return {"Authorization": f"Bearer {self._credentials.token}"}

    def close(self) -> None:
        """Release the session used for token refreshes."""
        self._auth_request.session.close()

    async def predict(self, tensor: np.ndarray) -> List[float]:
        headers = await self._authorization_header()
        body = build_request_body(tensor)
        try:
            response = await self._http.post(
                self.model_path.predict_url, json=body, headers=headers, timeout=self._timeout
            )
        except httpx.TimeoutException as exc:
            raise NetworkError(f"Prediction service timed out after {self._timeout}s") from exc
        except httpx.TransportError as exc:
            raise NetworkError(f"Could not reach prediction service: {exc}") from exc

        if response.status_code in (401, 403):
            raise AuthError(f"Prediction service denied access: {_error_message(response)}")
        if not response.is_success:
            logger.warning(
                "Prediction service returned {status}", status=response.status_code
            )
            raise RemoteError(
                f"Prediction service returned {response.status_code}: {_error_message(response)}",
                upstream_status=response.status_code,
            )
        try:
            payload = response.json()
        except ValueError as exc:
            raise RemoteError("Prediction service returned a non-JSON body") from exc
        return parse_predictions(payload)
