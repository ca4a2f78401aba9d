"""
Errors and exit codes for jira-ticket-cli
"""

from typing import Any, Dict, List, Optional

# CLI exit codes
SUCCESS = 0
GENERAL_ERROR = 1
USAGE_ERROR = 2
CONFIG_ERROR = 3
AUTH_ERROR = 4
NOT_FOUND_ERROR = 5
PERMISSION_ERROR = 6
RATE_LIMIT_ERROR = 7
SERVER_ERROR = 8


class JiraError(ValueError):
    """Base class for all jira-ticket-cli errors"""

    exit_code = GENERAL_ERROR


class ConfigError(JiraError):
    """Missing or invalid configuration/credentials"""

    exit_code = CONFIG_ERROR


class DocumentParseError(JiraError):
    """A rich-text field was neither a plain string nor an ADF document"""


class APIError(JiraError):
    """Error response from the Jira API"""

    default_message = "API error"

    def __init__(self, message: str = "", status_code: int = 0,
                 error_messages: Optional[List[str]] = None,
                 errors: Optional[Dict[str, str]] = None):
        self.status_code = status_code
        self.error_messages = error_messages or []
        self.errors = errors or {}
        super().__init__(message or self.default_message)


class BadRequestError(APIError):
    default_message = "bad request"


class AuthenticationError(APIError):
    exit_code = AUTH_ERROR
    default_message = "unauthorized: check your credentials"


class PermissionDeniedError(APIError):
    exit_code = PERMISSION_ERROR
    default_message = "forbidden: insufficient permissions"


class NotFoundError(APIError):
    exit_code = NOT_FOUND_ERROR
    default_message = "resource not found"


class RateLimitError(APIError):
    exit_code = RATE_LIMIT_ERROR
    default_message = "rate limited: too many requests"


class ServerError(APIError):
    exit_code = SERVER_ERROR
    default_message = "server error"


_STATUS_ERRORS = {
    400: BadRequestError,
    401: AuthenticationError,
    403: PermissionDeniedError,
    404: NotFoundError,
    429: RateLimitError,
}


def _error_details(body: Any) -> List[str]:
    """Collect Jira's ``errorMessages`` and per-field ``errors`` into one list"""
    if not isinstance(body, dict):
        return []
    parts = [str(msg) for msg in body.get('errorMessages') or []]
    field_errors = body.get('errors') or {}
    if isinstance(field_errors, dict):
        parts.extend(f"{field}: {msg}" for field, msg in field_errors.items())
    return parts


def parse_api_error(response) -> APIError:
    """
    Map an HTTP error response onto the error taxonomy

    Args:
        response: requests.Response with a status code >= 400

    Returns:
        APIError subclass matching the status code
    """
    status_code = response.status_code
    try:
        body = response.json()
    except ValueError:
        body = None

    details = _error_details(body)
    detail = "; ".join(details)

    if status_code in _STATUS_ERRORS:
        error_cls = _STATUS_ERRORS[status_code]
    elif status_code >= 500:
        error_cls = ServerError
    else:
        error_cls = APIError

    if error_cls is APIError:
        message = detail or f"API error (status {status_code})"
    elif detail and error_cls is not RateLimitError:
        message = f"{error_cls.default_message}: {detail}"
    else:
        message = error_cls.default_message

    error_messages, errors = [], {}
    if isinstance(body, dict):
        error_messages = [str(msg) for msg in body.get('errorMessages') or []]
        if isinstance(body.get('errors'), dict):
            errors = dict(body['errors'])

    return error_cls(message, status_code=status_code,
                     error_messages=error_messages, errors=errors)
