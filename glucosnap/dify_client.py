"""
Dify Client - HTTP client for the upstream image analysis app.

Two calls make up one analysis: the image is uploaded to get a file id, then
the app is run against that id. Which run endpoint and request body are used
depends on the app's API style (see config.select_api_style).
"""
import httpx
import logging
from typing import Any, Optional

from .config import ApiStyle, ServiceConfig
from .errors import (
    CredentialMissing,
    InvocationFailed,
    MalformedResponse,
    NetworkError,
    UploadFailed,
    UpstreamTimeout,
)

logger = logging.getLogger(__name__)

# The app selects its answer language from these exact strings, not ISO codes
LANGUAGE_TOKENS = {
    "zh": "简体中文",
    "en": "English",
}

ANALYSIS_QUERIES = {
    "zh": "请分析这张图片",
    "en": "Please analyze this image",
}

CONNECTION_TEST_TIMEOUT = 10.0
WORKFLOW_TEST_TIMEOUT = 5.0

INVOCATION_PATHS = {
    ApiStyle.WORKFLOW: "/workflows/run",
    ApiStyle.COMPLETION: "/completion-messages",
}


def language_token(language: str) -> str:
    return LANGUAGE_TOKENS.get(language, LANGUAGE_TOKENS["zh"])


def build_invocation(
    style: ApiStyle,
    upload_file_id: str,
    language: str,
    user: str,
) -> tuple[str, dict]:
    """Return (path, json body) for running the app on an uploaded image."""
    image_input = {
        "type": "image",
        "transfer_method": "local_file",
        "upload_file_id": upload_file_id,
    }

    if style == ApiStyle.WORKFLOW:
        return INVOCATION_PATHS[style], {
            "inputs": {
                "image": image_input,
                "language": language_token(language),
            },
            "response_mode": "blocking",
            "user": user,
        }

    return INVOCATION_PATHS[style], {
        "inputs": {
            "language": language_token(language),
            "query": ANALYSIS_QUERIES.get(language, ANALYSIS_QUERIES["zh"]),
        },
        "files": [image_input],
        "response_mode": "blocking",
        "user": user,
    }


class DifyClient:
    """Async HTTP client for the Dify file upload and app run APIs."""

    def __init__(self, config: ServiceConfig, http_client: Optional[httpx.AsyncClient] = None):
        self.config = config
        self.client = http_client or httpx.AsyncClient(timeout=config.timeout_seconds)

    def _headers(self) -> dict:
        if not self.config.api_key:
            raise CredentialMissing()
        return {"Authorization": f"Bearer {self.config.api_key}"}

    def _url(self, path: str) -> str:
        return f"{self.config.base_url}{path}"

    async def _request(self, step: str, method: str, path: str, **kwargs) -> httpx.Response:
        headers = self._headers()
        try:
            return await self.client.request(method, self._url(path), headers=headers, **kwargs)
        except httpx.TimeoutException as e:
            logger.error(f"Dify {step} timed out: {e}")
            raise UpstreamTimeout(f"{step} timed out") from e
        except httpx.RequestError as e:
            logger.error(f"Dify {step} connection error: {e}")
            raise NetworkError(f"{step} connection failed: {e}") from e

    @staticmethod
    def _json(response: httpx.Response, step: str) -> Any:
        try:
            return response.json()
        except ValueError as e:
            logger.error(f"Dify {step} returned non-JSON body: {response.text[:200]}")
            raise MalformedResponse(f"{step} response is not valid JSON") from e

    async def upload(self, image_bytes: bytes, filename: str, content_type: str) -> str:
        """Upload an image and return the upstream file id."""
        logger.info(f"Uploading {filename} ({len(image_bytes)} bytes, {content_type})")

        response = await self._request(
            "upload",
            "POST",
            "/files/upload",
            files={"file": (filename, image_bytes, content_type)},
            data={"user": self.config.upstream_user},
        )
        if not response.is_success:
            logger.error(f"Dify upload HTTP error: {response.status_code} - {response.text[:500]}")
            raise UploadFailed(response.status_code, response.text)

        body = self._json(response, "upload")
        file_id = body.get("id") if isinstance(body, dict) else None
        if not file_id:
            raise MalformedResponse("upload response has no file id")

        logger.info(f"Upload complete: file id {file_id}")
        return str(file_id)

    async def invoke(self, upload_file_id: str, language: str) -> Any:
        """Run the analysis app on an uploaded file and return the raw JSON body."""
        path, body = build_invocation(
            self.config.api_style,
            upload_file_id,
            language,
            self.config.upstream_user,
        )
        logger.info(f"Invoking {self.config.api_style.value} app ({path}, language={language})")

        response = await self._request("invoke", "POST", path, json=body)
        if not response.is_success:
            logger.error(f"Dify invoke HTTP error: {response.status_code} - {response.text[:500]}")
            raise InvocationFailed(response.status_code, response.text)

        return self._json(response, "invoke")

    async def check_connection(self) -> httpx.Response:
        """Probe the app parameters endpoint."""
        return await self._request(
            "connection test", "GET", "/parameters", timeout=CONNECTION_TEST_TIMEOUT
        )

    async def test_workflow(self) -> httpx.Response:
        """Send an empty blocking run to the endpoint analyses use; useful to see how the app rejects it."""
        return await self._request(
            "workflow test",
            "POST",
            INVOCATION_PATHS[self.config.api_style],
            json={"inputs": {}, "response_mode": "blocking", "user": "test-user"},
            timeout=WORKFLOW_TEST_TIMEOUT,
        )

    async def aclose(self):
        await self.client.aclose()
