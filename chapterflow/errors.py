"""
Error Handling Module
=====================
Custom exceptions for the chapter pipeline.
Every error carries an ErrorCode; each code belongs to an ErrorCategory
which decides whether a long-running job should stop immediately.
"""

from enum import Enum
from dataclasses import dataclass
from typing import Optional


class ErrorCategory(str, Enum):
    """Coarse failure classes used for fail-fast decisions."""
    CONFIGURATION = "configuration"
    AUTH = "auth"
    TRANSIENT = "transient"
    CONTENT = "content"


class ErrorCode(Enum):
    """Error codes for the chapter pipeline."""
    # Content errors (E001-E099)
    E001 = "Chapter unavailable"
    E002 = "Content too short"
    E003 = "Unknown processing mode"

    # AI provider errors (E100-E199)
    E100 = "Credentials not configured"
    E101 = "Invalid credentials"
    E102 = "Provider request failed"
    E103 = "Provider unreachable"
    E104 = "Empty provider response"
    E105 = "Malformed provider response"
    E106 = "Uploaded file processing failed"

    # TTS errors (E200-E299)
    E200 = "TTS token not configured"
    E201 = "TTS connection failed"
    E202 = "TTS stream closed early"
    E203 = "TTS timeout"
    E204 = "Speech synthesis failed"

    # Storage errors (E300-E399)
    E300 = "Cache storage failed"


_CATEGORIES = {
    ErrorCode.E001: ErrorCategory.CONTENT,
    ErrorCode.E002: ErrorCategory.CONTENT,
    ErrorCode.E003: ErrorCategory.CONFIGURATION,
    ErrorCode.E100: ErrorCategory.CONFIGURATION,
    ErrorCode.E101: ErrorCategory.AUTH,
    ErrorCode.E102: ErrorCategory.TRANSIENT,
    ErrorCode.E103: ErrorCategory.TRANSIENT,
    ErrorCode.E104: ErrorCategory.TRANSIENT,
    ErrorCode.E105: ErrorCategory.TRANSIENT,
    ErrorCode.E106: ErrorCategory.TRANSIENT,
    ErrorCode.E200: ErrorCategory.CONFIGURATION,
    ErrorCode.E201: ErrorCategory.CONFIGURATION,
    ErrorCode.E202: ErrorCategory.TRANSIENT,
    ErrorCode.E203: ErrorCategory.TRANSIENT,
    ErrorCode.E204: ErrorCategory.TRANSIENT,
    ErrorCode.E300: ErrorCategory.TRANSIENT,
}


@dataclass(eq=False)
class ChapterFlowError(Exception):
    """Base exception for the chapter pipeline with error codes."""
    code: ErrorCode
    message: str
    details: Optional[str] = None

    @property
    def category(self) -> ErrorCategory:
        return _CATEGORIES.get(self.code, ErrorCategory.TRANSIENT)

    @property
    def critical(self) -> bool:
        """Critical errors will fail again on every retry until a user fixes settings."""
        return self.category in (ErrorCategory.CONFIGURATION, ErrorCategory.AUTH)

    def __str__(self) -> str:
        base = f"[{self.code.name}] {self.code.value}: {self.message}"
        if self.details:
            base += f" ({self.details})"
        return base


# ===========================================
# Content errors
# ===========================================

class ChapterUnavailableError(ChapterFlowError):
    """Raw chapter text could not be loaded."""
    def __init__(self, book_id: str, chapter_number: int, details: str = None):
        super().__init__(
            code=ErrorCode.E001,
            message=f"Chapter {chapter_number} of book '{book_id}' is unavailable",
            details=details
        )


class ContentTooShortError(ChapterFlowError):
    """Prepared content is too short to send to a provider."""
    def __init__(self, length: int, minimum: int = 50):
        super().__init__(
            code=ErrorCode.E002,
            message=f"Content has {length} characters",
            details=f"Minimum required: {minimum}"
        )


class UnknownModeError(ChapterFlowError):
    """Mode is neither built-in nor a configured action key."""
    def __init__(self, mode: str):
        super().__init__(
            code=ErrorCode.E003,
            message=f"No processing action configured for mode '{mode}'"
        )


# ===========================================
# AI provider errors
# ===========================================

class CredentialsNotConfiguredError(ChapterFlowError):
    """Provider has no usable credentials."""
    def __init__(self, provider: str, setting_key: str = None):
        super().__init__(
            code=ErrorCode.E100,
            message=f"{provider} credentials are not configured",
            details=f"Set {setting_key} in settings" if setting_key else None
        )


class InvalidCredentialsError(ChapterFlowError):
    """Provider rejected the configured credentials."""
    def __init__(self, provider: str, details: str = None):
        super().__init__(
            code=ErrorCode.E101,
            message=f"{provider} rejected the configured credentials",
            details=details
        )


class ProviderHTTPError(ChapterFlowError):
    """Provider answered with an HTTP error status."""
    def __init__(self, provider: str, status: int, body: str = ""):
        super().__init__(
            code=ErrorCode.E102,
            message=f"{provider} API error ({status})",
            details=body[:500] if body else None
        )
        self.status = status

    @property
    def rate_limited(self) -> bool:
        if self.status in (429, 403):
            return True
        text = f"{self.message} {self.details or ''}".lower()
        return any(marker in text for marker in _QUOTA_MARKERS)


_QUOTA_MARKERS = ("rate limit", "quota", "exceeded", "resource exhausted", "resource_exhausted")


class ProviderConnectionError(ChapterFlowError):
    """Network failure talking to a provider."""
    def __init__(self, provider: str, details: str = None):
        super().__init__(
            code=ErrorCode.E103,
            message=f"Could not reach {provider}",
            details=details
        )


class EmptyResponseError(ChapterFlowError):
    """Provider returned no usable text."""
    def __init__(self, provider: str):
        super().__init__(
            code=ErrorCode.E104,
            message=f"{provider} returned an empty response"
        )


class MalformedResponseError(ChapterFlowError):
    """Provider returned output that does not match the expected schema."""
    def __init__(self, provider: str, details: str = None):
        super().__init__(
            code=ErrorCode.E105,
            message=f"{provider} returned a malformed response",
            details=details
        )


class FileProcessingError(ChapterFlowError):
    """An uploaded content blob failed server-side processing."""
    def __init__(self, file_name: str, state: str):
        super().__init__(
            code=ErrorCode.E106,
            message=f"Uploaded file {file_name} ended in state {state}"
        )


# ===========================================
# TTS errors
# ===========================================

class TTSTokenNotConfiguredError(ChapterFlowError):
    """Synthesis token is missing."""
    def __init__(self):
        super().__init__(
            code=ErrorCode.E200,
            message="TTS token is not configured",
            details="Set CAPCUT_TOKEN in settings"
        )


class TTSConnectionError(ChapterFlowError):
    """Websocket handshake or connection failure."""
    def __init__(self, details: str = None):
        super().__init__(
            code=ErrorCode.E201,
            message="Could not connect to the synthesis service",
            details=details
        )


class TTSStreamClosedError(ChapterFlowError):
    """Websocket closed before the task finished."""
    def __init__(self, details: str = None):
        super().__init__(
            code=ErrorCode.E202,
            message="Synthesis stream closed before completion",
            details=details
        )


class TTSTimeoutError(ChapterFlowError):
    """No completion within the watchdog window."""
    def __init__(self, seconds: float):
        super().__init__(
            code=ErrorCode.E203,
            message=f"Synthesis did not finish within {seconds:g}s"
        )


class SynthesisError(ChapterFlowError):
    """Synthesis service reported a failure or produced no audio."""
    def __init__(self, message: str, sentence_index: int = None):
        super().__init__(
            code=ErrorCode.E204,
            message=message,
            details=f"Sentence {sentence_index}" if sentence_index is not None else None
        )


# ===========================================
# Storage errors
# ===========================================

class CacheStorageError(ChapterFlowError):
    """Generated output could not be written to the local cache."""
    def __init__(self, path: str, details: str = None):
        super().__init__(
            code=ErrorCode.E300,
            message=f"Could not write {path}",
            details=details
        )


# ===========================================
# Utility Functions
# ===========================================

def is_critical(exc: BaseException) -> bool:
    """True when retrying ``exc`` cannot succeed without user action."""
    return isinstance(exc, ChapterFlowError) and exc.critical


MESSAGES = {
    "vi": {
        "not_configured": "Chưa cấu hình thông tin xác thực. Vui lòng kiểm tra cài đặt.",
        "invalid_credentials": "Thông tin xác thực không hợp lệ hoặc đã hết hạn.",
        "temporary": "Lỗi tạm thời, vui lòng thử lại sau.",
        "content": "Không thể tải nội dung chương.",
        "translate_failed": "Không thể dịch chương truyện này",
        "summary_failed": "Không thể tóm tắt chương truyện này",
    },
    "en": {
        "not_configured": "Credentials are not configured. Please check your settings.",
        "invalid_credentials": "The configured credentials are invalid or expired.",
        "temporary": "Temporary failure, please try again later.",
        "content": "Could not load chapter content.",
        "translate_failed": "Could not translate this chapter",
        "summary_failed": "Could not summarize this chapter",
    },
}


def localized(key: str, locale: str = "vi") -> str:
    """Look up a user-facing message, falling back to Vietnamese."""
    table = MESSAGES.get(locale, MESSAGES["vi"])
    return table.get(key, MESSAGES["vi"][key])


def user_message(exc: BaseException, locale: str = "vi") -> str:
    """
    Map an exception to a short user-facing message.

    Args:
        exc: Any exception raised by the pipeline
        locale: Message language ('vi' or 'en')

    Returns:
        Localized message distinguishing configuration, auth and temporary failures
    """
    if not isinstance(exc, ChapterFlowError):
        return localized("temporary", locale)
    if exc.category == ErrorCategory.CONFIGURATION:
        return localized("not_configured", locale)
    if exc.category == ErrorCategory.AUTH:
        return localized("invalid_credentials", locale)
    if exc.category == ErrorCategory.CONTENT:
        return localized("content", locale)
    return localized("temporary", locale)
