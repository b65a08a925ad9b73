"""
tabpilot Exception Hierarchy

This module defines the exception hierarchy used by the automation stack,
providing specific error types for the different failure categories with rich
context and standardized error information.

The hierarchy is designed to:
1. Separate debugger attachment failures from individual command failures
2. Carry the tab id and command that failed
3. Decide retry policy from the error itself (see ``ApiError.is_retriable``)
4. Provide a user-facing message that can be shown verbatim in the status channel
"""

import time
from enum import Enum
from typing import Any, Dict, Optional


class ErrorAction(Enum):
    """What action can be taken for this error."""

    # User can potentially fix and retry (e.g. navigate to a real page)
    USER_FIXABLE = "user_fixable"

    # Cannot be fixed on-the-fly, must terminate
    TERMINAL = "terminal"

    # System should retry automatically (no user interaction)
    AUTO_RETRY = "auto_retry"


class APIErrorClassification(Enum):
    """Classification of model API errors."""

    RATE_LIMIT = "rate_limit"
    AUTHENTICATION_FAILED = "authentication_failed"
    INSUFFICIENT_CREDITS = "insufficient_credits"
    INVALID_MODEL = "invalid_model"
    INVALID_REQUEST = "invalid_request"
    SERVICE_UNAVAILABLE = "service_unavailable"
    NETWORK_ERROR = "network_error"
    UNKNOWN = "unknown"


class TabPilotError(Exception):
    """
    Base exception class for all tabpilot errors.

    Attributes:
        error_code: Unique error code for programmatic handling
        tab_id: Tab where the error occurred (if applicable)
        timestamp: When the error occurred
        context: Additional context information
        user_message: User-friendly error message
        developer_message: Detailed technical error message
        suggestion: Suggested fix or next steps (if applicable)
    """

    def __init__(
        self,
        message: str,
        error_code: str = "TABPILOT_ERROR",
        tab_id: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None,
        user_message: Optional[str] = None,
        suggestion: Optional[str] = None,
    ):
        super().__init__(message)
        self.error_code = error_code
        self.tab_id = tab_id
        self.timestamp = time.time()
        self.context = context or {}
        self.user_message = user_message or message
        self.developer_message = message
        self.suggestion = suggestion

    @property
    def message(self) -> str:
        return self.developer_message

    def get_error_action(self) -> ErrorAction:
        """Determine what action can be taken for this error."""
        return ErrorAction.TERMINAL

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code,
            "message": self.developer_message,
            "user_message": self.user_message,
            "tab_id": self.tab_id,
            "timestamp": self.timestamp,
            "context": self.context,
            "suggestion": self.suggestion,
        }

    def __str__(self) -> str:
        return self.developer_message


# =============================================================================
# DRIVER ERRORS
# =============================================================================

class DriverError(TabPilotError):
    """
    Raised when a Chrome DevTools Protocol command fails.

    Attributes:
        command: The CDP method that failed (e.g. ``Input.dispatchMouseEvent``)
        cause: The underlying exception, if any
    """

    def __init__(
        self,
        message: str,
        tab_id: Optional[int] = None,
        command: Optional[str] = None,
        cause: Optional[BaseException] = None,
        **kwargs
    ):
        self.command = command
        self.cause = cause

        context = kwargs.pop("context", {})
        if command:
            context["command"] = command
        if cause is not None:
            context["cause"] = f"{type(cause).__name__}: {cause}"

        error_code = kwargs.pop("error_code", "DRIVER_ERROR")
        super().__init__(
            message,
            error_code=error_code,
            tab_id=tab_id,
            context=context,
            **kwargs
        )


class AttachError(DriverError):
    """
    Raised when the debugger cannot attach to a tab.

    Attachment fails on browser-internal pages; retrying is pointless until the
    user (or the agent) navigates somewhere else.
    """

    DEFAULT_MESSAGE = "Cannot interact with this page. Please navigate to a website first."

    def __init__(
        self,
        tab_id: Optional[int] = None,
        url: Optional[str] = None,
        cause: Optional[BaseException] = None,
        message: Optional[str] = None,
        **kwargs
    ):
        self.url = url
        context = kwargs.pop("context", {})
        if url is not None:
            context["url"] = url

        super().__init__(
            message or self.DEFAULT_MESSAGE,
            tab_id=tab_id,
            command="attach",
            cause=cause,
            error_code="ATTACH_ERROR",
            context=context,
            suggestion="Navigate the tab to a regular http(s) page first.",
            **kwargs
        )

    def get_error_action(self) -> ErrorAction:
        return ErrorAction.USER_FIXABLE


# =============================================================================
# MODEL ERRORS
# =============================================================================

class ParseError(TabPilotError):
    """
    Raised when a model response is not in the expected shape.

    Examples:
    - Invalid JSON from the reasoning model
    - Missing coordinate pair in a vision response
    """

    def __init__(self, message: str, raw_content: Optional[str] = None, **kwargs):
        self.raw_content = raw_content

        context = kwargs.pop("context", {})
        if raw_content is not None:
            context["raw_content"] = raw_content[:500]

        error_code = kwargs.pop("error_code", "PARSE_ERROR")
        super().__init__(message, error_code=error_code, context=context, **kwargs)


class LocateParseError(ParseError):
    """Raised when no ``x,y`` pair can be found in a pointing response."""

    def __init__(self, raw_content: str, description: Optional[str] = None, **kwargs):
        self.description = description
        super().__init__(
            f"Could not parse coordinates from vision model response: {raw_content}",
            raw_content=raw_content,
            error_code="LOCATE_PARSE_ERROR",
            **kwargs
        )


class ApiError(TabPilotError):
    """
    Error returned by one of the model APIs.

    Only server-side failures (``status >= 500``) are retriable.
    """

    def __init__(
        self,
        message: str,
        status: Optional[int] = None,
        provider: Optional[str] = None,
        classification: Optional[str] = None,
        raw_response: Optional[Dict[str, Any]] = None,
        **kwargs
    ):
        self.status = status
        self.provider = provider
        self.classification = classification or APIErrorClassification.UNKNOWN.value
        self.raw_response = raw_response

        context = kwargs.pop("context", {})
        context.update({
            "status": status,
            "provider": provider,
            "classification": self.classification,
        })

        suggestion = kwargs.pop("suggestion", None)
        if not suggestion:
            if self.classification == APIErrorClassification.AUTHENTICATION_FAILED.value:
                suggestion = f"Check the {provider or 'model'} API key configuration"
            elif self.classification == APIErrorClassification.RATE_LIMIT.value:
                suggestion = "Wait before retrying or upgrade your plan"
            elif self.classification == APIErrorClassification.SERVICE_UNAVAILABLE.value:
                suggestion = "Service temporarily unavailable. Please try again later."

        super().__init__(
            message,
            error_code=f"API_{self.classification.upper()}_ERROR",
            context=context,
            suggestion=suggestion,
            **kwargs
        )

    @property
    def is_retriable(self) -> bool:
        return self.status is not None and self.status >= 500

    def get_error_action(self) -> ErrorAction:
        if self.is_retriable:
            return ErrorAction.AUTO_RETRY
        if self.classification in (
            APIErrorClassification.RATE_LIMIT.value,
            APIErrorClassification.INSUFFICIENT_CREDITS.value,
            APIErrorClassification.NETWORK_ERROR.value,
        ):
            return ErrorAction.USER_FIXABLE
        return ErrorAction.TERMINAL

    @classmethod
    def from_response(
        cls,
        status: Optional[int],
        body: Optional[Any] = None,
        provider: Optional[str] = None,
    ) -> "ApiError":
        """
        Build a classified error from an HTTP status and (optionally parsed) body.

        OpenAI-compatible APIs report ``{"error": {"message": ..., "type": ...}}``.
        """
        message = f"API request failed with status {status}"
        error_type = None
        if isinstance(body, dict):
            error_data = body.get("error")
            if isinstance(error_data, dict):
                message = error_data.get("message") or message
                error_type = error_data.get("type")
            elif isinstance(error_data, str):
                message = error_data
        elif isinstance(body, str) and body.strip():
            message = body.strip()[:500]

        classification = APIErrorClassification.UNKNOWN.value
        if status == 429:
            if error_type == "insufficient_quota":
                classification = APIErrorClassification.INSUFFICIENT_CREDITS.value
            else:
                classification = APIErrorClassification.RATE_LIMIT.value
        elif status == 402:
            classification = APIErrorClassification.INSUFFICIENT_CREDITS.value
        elif status in (401, 403):
            classification = APIErrorClassification.AUTHENTICATION_FAILED.value
        elif status == 404:
            classification = APIErrorClassification.INVALID_MODEL.value
        elif status is not None and 400 <= status < 500:
            classification = APIErrorClassification.INVALID_REQUEST.value
        elif status is not None and status >= 500:
            classification = APIErrorClassification.SERVICE_UNAVAILABLE.value

        return cls(
            message,
            status=status,
            provider=provider,
            classification=classification,
            raw_response=body if isinstance(body, dict) else None,
        )


# =============================================================================
# ACTION ERRORS
# =============================================================================

class ActionError(TabPilotError):
    """
    Raised when caller-supplied arguments are invalid for the requested action.

    These are deterministic rejections: the executor renders them as
    ``"Error: ..."`` strings for the model instead of failing the session.
    """

    def __init__(
        self,
        message: str,
        action: Optional[str] = None,
        invalid_params: Optional[Dict[str, Any]] = None,
        **kwargs
    ):
        self.action = action
        self.invalid_params = invalid_params or {}

        context = kwargs.pop("context", {})
        if action:
            context["action"] = action
        if invalid_params:
            context["invalid_params"] = invalid_params

        error_code = kwargs.pop("error_code", "ACTION_ERROR")
        super().__init__(message, error_code=error_code, context=context, **kwargs)

    def as_result(self) -> str:
        """Render the rejection the way tool results are reported."""
        if self.developer_message.startswith("Error:"):
            return self.developer_message
        return f"Error: {self.developer_message}"


class UnsupportedKeyError(ActionError):
    """Raised when a key (or part of a key combination) has no key definition."""

    def __init__(self, key: str, **kwargs):
        self.key = key
        super().__init__(
            f"Unsupported key: {key}",
            action="press",
            invalid_params={"key": key},
            error_code="UNSUPPORTED_KEY_ERROR",
            **kwargs
        )


class UnsafeNavigationError(ActionError):
    """Raised when navigation to a ``javascript:`` or ``data:`` URL is requested."""

    def __init__(self, url: str, **kwargs):
        self.url = url
        super().__init__(
            "Error: Cannot navigate to unsafe URL",
            action="navigate",
            invalid_params={"url": url},
            error_code="UNSAFE_NAVIGATION_ERROR",
            **kwargs
        )


# =============================================================================
# CONFIGURATION & SESSION ERRORS
# =============================================================================

class ConfigurationError(TabPilotError):
    """Raised for missing API keys or invalid configuration values."""

    def __init__(self, message: str, config_field: Optional[str] = None, **kwargs):
        self.config_field = config_field
        context = kwargs.pop("context", {})
        if config_field:
            context["config_field"] = config_field
        super().__init__(
            message,
            error_code="CONFIGURATION_ERROR",
            context=context,
            **kwargs
        )


class SessionStateError(TabPilotError):
    """Raised when a session operation is not valid in the session's current state."""

    def __init__(self, message: str, tab_id: Optional[int] = None, state: Optional[str] = None, **kwargs):
        self.state = state
        context = kwargs.pop("context", {})
        if state:
            context["state"] = state
        super().__init__(
            message,
            error_code="SESSION_STATE_ERROR",
            tab_id=tab_id,
            context=context,
            **kwargs
        )
