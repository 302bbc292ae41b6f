"""
Analysis Orchestrator - drives one image through the analysis pipeline.

  VALIDATING -> UPLOADING -> INVOKING -> CLASSIFYING -> COMPLETED | FAILED

Upload and invocation share a single wall-clock budget. Every failure is
turned into exactly one ErrorKind here; nothing else escapes analyze().
"""
import asyncio
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from .classifier import classify
from .config import ServiceConfig, normalize_language
from .dify_client import DifyClient
from .errors import (
    AnalysisError,
    CredentialMissing,
    ErrorKind,
    error_message,
)
from .input_validation import guess_content_type, sanitize_filename, validate_image
from .models import AnalysisResult
from .structured_logging import StructuredLogger

logger = StructuredLogger(__name__)

# Lowercased fragments that mark an otherwise uncategorized error as a network problem
NETWORK_SIGNATURES = ("network", "网络", "connection refused", "connection reset", "unreachable")


class PipelineState(str, Enum):
    IDLE = "idle"
    VALIDATING = "validating"
    UPLOADING = "uploading"
    INVOKING = "invoking"
    CLASSIFYING = "classifying"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class AnalysisFailure:
    kind: ErrorKind
    message: str  # user-facing
    detail: str = ""  # for logs only

    @property
    def code(self) -> str:
        return self.kind.code

    @property
    def http_status(self) -> int:
        return self.kind.http_status


@dataclass
class AnalysisOutcome:
    state: PipelineState
    language: str
    result: Optional[AnalysisResult] = None
    failure: Optional[AnalysisFailure] = None
    failed_during: Optional[PipelineState] = None

    @property
    def ok(self) -> bool:
        return self.failure is None


class _Run:
    """Mutable progress marker for a single request."""

    def __init__(self):
        self.state = PipelineState.IDLE

    def advance(self, state: PipelineState):
        logger.debug(f"{self.state.value} -> {state.value}")
        self.state = state


def categorize_exception(exc: BaseException) -> ErrorKind:
    """Map an exception from anywhere in the pipeline onto an ErrorKind."""
    if isinstance(exc, AnalysisError):
        return exc.kind
    if isinstance(exc, (asyncio.TimeoutError, TimeoutError)):
        return ErrorKind.TIMEOUT
    if isinstance(exc, ConnectionError):
        return ErrorKind.NETWORK_ERROR
    text = str(exc).lower()
    if any(signature in text for signature in NETWORK_SIGNATURES):
        return ErrorKind.NETWORK_ERROR
    return ErrorKind.UNKNOWN


class AnalysisOrchestrator:
    """Validates an image, sends it upstream and classifies the answer."""

    def __init__(self, config: ServiceConfig, client: DifyClient):
        self.config = config
        self.client = client

    async def analyze(
        self,
        filename: Optional[str],
        content: Optional[bytes],
        language: Optional[str] = None,
        content_type: Optional[str] = None,
    ) -> AnalysisOutcome:
        language = normalize_language(language, self.config.default_language)
        run = _Run()
        started = time.perf_counter()

        try:
            run.advance(PipelineState.VALIDATING)
            ext = validate_image(filename, content, self.config)
            if not self.config.has_credential:
                raise CredentialMissing()

            payload = await asyncio.wait_for(
                self._upload_and_invoke(
                    run,
                    content,
                    sanitize_filename(filename),
                    content_type or guess_content_type(ext),
                    language,
                ),
                timeout=self.config.timeout_seconds,
            )

            run.advance(PipelineState.CLASSIFYING)
            result = classify(payload, language)
        except Exception as e:
            return self._failed(run, e, language, started)

        run.advance(PipelineState.COMPLETED)
        logger.info(
            "Analysis completed",
            result_kind=result.kind,
            language=language,
            duration_ms=round((time.perf_counter() - started) * 1000, 2),
        )
        return AnalysisOutcome(state=run.state, language=language, result=result)

    async def _upload_and_invoke(
        self,
        run: _Run,
        content: bytes,
        filename: str,
        content_type: str,
        language: str,
    ) -> Any:
        run.advance(PipelineState.UPLOADING)
        upload_file_id = await self.client.upload(content, filename, content_type)

        run.advance(PipelineState.INVOKING)
        return await self.client.invoke(upload_file_id, language)

    def _failed(
        self,
        run: _Run,
        exc: Exception,
        language: str,
        started: float,
    ) -> AnalysisOutcome:
        failed_during = run.state
        kind = categorize_exception(exc)
        if kind is ErrorKind.TIMEOUT and not isinstance(exc, AnalysisError):
            detail = f"timed out after {self.config.timeout_seconds}s while {failed_during.value}"
        else:
            detail = str(exc) or type(exc).__name__

        if kind is ErrorKind.UNKNOWN:
            logger.exception("Uncategorized analysis failure", step=failed_during.value)

        max_mb = f"{self.config.max_upload_bytes / 1024 / 1024:g}"
        failure = AnalysisFailure(
            kind=kind,
            message=error_message(kind, language, max_mb=max_mb),
            detail=detail,
        )

        run.advance(PipelineState.FAILED)
        logger.warning(
            "Analysis failed",
            code=failure.code,
            step=failed_during.value,
            detail=detail,
            duration_ms=round((time.perf_counter() - started) * 1000, 2),
        )
        return AnalysisOutcome(
            state=run.state,
            language=language,
            failure=failure,
            failed_during=failed_during,
        )
