"""
Error types shared by the ServiceNow MCP server.

Three kinds of failure reach a tool caller:
- ValidationFailure: the tool payload was rejected before any API call.
- StoreError (and subclasses): the ServiceNow Table API call failed.
- ConfigurationError: the server or the requested instance is misconfigured.

An identifier that does not match any record is NOT an error; the incident
tools report it as a normal text result.
"""

from typing import Optional


class ServiceNowMCPError(Exception):
    """Base class for errors surfaced to MCP tool callers."""


class ConfigurationError(ServiceNowMCPError):
    """Environment configuration is missing or invalid."""


class ValidationFailure(ServiceNowMCPError):
    """
    One or more tool arguments failed validation.

    Holds every issue found in a single validation pass as
    (dotted_path, message) pairs so they can be reported together.
    """

    def __init__(self, issues: list[tuple[str, str]]):
        self.issues = list(issues)
        super().__init__(self.format())

    def format(self) -> str:
        lines = []
        for path, message in self.issues:
            prefix = f"{path}: " if path else ""
            lines.append(f"  - {prefix}{message}")
        return "Validation Error:\n" + "\n".join(lines)


class StoreError(ServiceNowMCPError):
    """A ServiceNow Table API call failed."""

    kind = "Client Error"

    def __init__(self, context: str, message: str):
        self.context = context
        self.message = message
        super().__init__(f"ServiceNow {self.kind} ({context}): {message}")


class StoreConnectionError(StoreError):
    """No response was received from the instance (connect failure or timeout)."""

    kind = "Connection Error"


class StoreAuthError(StoreError):
    """The instance rejected the credentials (HTTP 401/403)."""

    kind = "Authentication Error"

    def __init__(self, context: str, message: str, status_code: int):
        self.status_code = status_code
        super().__init__(context, message)


class StoreNotFoundError(StoreError):
    """The requested table or record does not exist (HTTP 404)."""

    kind = "API Error"

    def __init__(self, context: str, message: str):
        self.status_code = 404
        super().__init__(context, message)


class StoreResponseError(StoreError):
    """The instance returned an error payload or an unexpected status."""

    kind = "API Error"

    def __init__(
        self,
        context: str,
        message: str,
        status_code: int,
        detail: Optional[str] = None,
    ):
        self.status_code = status_code
        self.detail = detail
        text = f"{message} - {detail}" if detail else message
        super().__init__(context, text)
