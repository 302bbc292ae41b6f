"""
Error kinds and exceptions for the analysis pipeline.

Components raise AnalysisError subclasses; the orchestrator turns them into a
single ErrorKind with a stable code, HTTP status and user-facing message.
"""
from enum import Enum
from typing import Optional


class ErrorKind(Enum):
    # (code, http status)
    INVALID_FILE = ("NO_FILE", 400)
    UNSUPPORTED_FORMAT = ("INVALID_FILE_TYPE", 400)
    FILE_TOO_LARGE = ("FILE_TOO_LARGE", 400)
    CONFIGURATION_MISSING = ("API_KEY_MISSING", 500)
    UPLOAD_FAILED = ("UPLOAD_FAILED", 500)
    INVALID_CREDENTIAL = ("INVALID_API_KEY", 401)
    INVOCATION_FAILED = ("INVOCATION_FAILED", 500)
    SCHEMA_VIOLATION = ("SCHEMA_VIOLATION", 500)
    TIMEOUT = ("TIMEOUT", 408)
    NETWORK_ERROR = ("NETWORK_ERROR", 503)
    UNKNOWN = ("UNKNOWN_ERROR", 500)

    @property
    def code(self) -> str:
        return self.value[0]

    @property
    def http_status(self) -> int:
        return self.value[1]


ERROR_MESSAGES = {
    "zh": {
        ErrorKind.INVALID_FILE: "请选择要分析的图片",
        ErrorKind.UNSUPPORTED_FORMAT: "请上传 JPG、PNG、GIF 或 WEBP 格式的图片",
        ErrorKind.FILE_TOO_LARGE: "图片文件大小不能超过 {max_mb}MB",
        ErrorKind.CONFIGURATION_MISSING: "API 密钥未配置，请联系管理员",
        ErrorKind.UPLOAD_FAILED: "图片上传失败，请稍后重试",
        ErrorKind.INVALID_CREDENTIAL: "API密钥无效，请联系管理员",
        ErrorKind.INVOCATION_FAILED: "分析服务调用失败，请稍后重试",
        ErrorKind.SCHEMA_VIOLATION: "分析服务返回的数据格式无法解析",
        ErrorKind.TIMEOUT: "分析超时，请稍后重试",
        ErrorKind.NETWORK_ERROR: "网络连接失败，请检查网络后重试",
        ErrorKind.UNKNOWN: "分析过程中发生未知错误",
    },
    "en": {
        ErrorKind.INVALID_FILE: "Please select an image to analyze",
        ErrorKind.UNSUPPORTED_FORMAT: "Please upload a JPG, PNG, GIF or WEBP image",
        ErrorKind.FILE_TOO_LARGE: "The image must not be larger than {max_mb}MB",
        ErrorKind.CONFIGURATION_MISSING: "The API key is not configured, please contact the administrator",
        ErrorKind.UPLOAD_FAILED: "Image upload failed, please try again later",
        ErrorKind.INVALID_CREDENTIAL: "The API key is invalid, please contact the administrator",
        ErrorKind.INVOCATION_FAILED: "The analysis service call failed, please try again later",
        ErrorKind.SCHEMA_VIOLATION: "The analysis service returned data that could not be parsed",
        ErrorKind.TIMEOUT: "Analysis timed out, please try again later",
        ErrorKind.NETWORK_ERROR: "Network connection failed, please check your network and retry",
        ErrorKind.UNKNOWN: "An unknown error occurred during analysis",
    },
}


def error_message(kind: ErrorKind, language: str = "zh", **params) -> str:
    table = ERROR_MESSAGES.get(language, ERROR_MESSAGES["zh"])
    template = table[kind]
    try:
        return template.format(**params)
    except KeyError:
        return template


class AnalysisError(Exception):
    """Base class for every failure the pipeline knows how to classify."""
    kind = ErrorKind.UNKNOWN

    def __init__(self, message: str, kind: Optional[ErrorKind] = None):
        super().__init__(message)
        if kind is not None:
            self.kind = kind


class ValidationFailure(AnalysisError):
    """Inbound image rejected before any network call."""


class CredentialMissing(AnalysisError):
    kind = ErrorKind.CONFIGURATION_MISSING

    def __init__(self, message: str = "DIFY_API_KEY is not configured"):
        super().__init__(message)


class UpstreamHTTPError(AnalysisError):
    """Non-2xx answer from the upstream service."""

    def __init__(self, step: str, status: int, body: str, kind: ErrorKind):
        self.status = status
        self.body = body
        super().__init__(f"{step} failed: {status} - {body[:200]}", kind)


class UploadFailed(UpstreamHTTPError):
    def __init__(self, status: int, body: str):
        # A rejected credential shows up first on the upload call
        kind = ErrorKind.INVALID_CREDENTIAL if status in (401, 403) else ErrorKind.UPLOAD_FAILED
        super().__init__("File upload", status, body, kind)


class InvocationFailed(UpstreamHTTPError):
    def __init__(self, status: int, body: str):
        super().__init__("Workflow invocation", status, body, ErrorKind.INVOCATION_FAILED)


class MalformedResponse(AnalysisError):
    """Upstream body was not JSON or lacked a required envelope field."""
    kind = ErrorKind.SCHEMA_VIOLATION


class SchemaViolation(AnalysisError):
    """Classifier could not decode or validate the upstream payload."""
    kind = ErrorKind.SCHEMA_VIOLATION


class NetworkError(AnalysisError):
    kind = ErrorKind.NETWORK_ERROR


class UpstreamTimeout(AnalysisError):
    kind = ErrorKind.TIMEOUT
