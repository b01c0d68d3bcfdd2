"""
Error taxonomy for the access-control layer.

AccessDeniedError and friends are security decisions and surface as client
errors; ConfigurationError and UpstreamUnavailableError are server-side
failures and must never be read as allow or deny.
"""

import logging
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


class SecurityError(Exception):
    """Base class for decisions that reject an operation."""

    def __init__(self, message: str, context: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.context = context


class AccessDeniedError(SecurityError):
    """The operation is understood but not permitted for this (user, role)."""

    def __init__(self, message: str, context: Optional[Any] = None):
        super().__init__(message, context)
        # Context stays on the exception for audit; callers only see "Access denied"
        logger.warning("Access denied: %s", message)


class CompanyContextRequiredError(SecurityError):
    """A company-mode operation was attempted without a company scope."""


class LastAdminError(SecurityError):
    """The change would leave a company without an admin-equivalent member."""


class ConfigurationError(Exception):
    """No validator is registered for the resource, or the role is unrecognized."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.details = details or {}
        logger.error("Access control configuration error: %s %s", message, self.details)


class UpstreamUnavailableError(Exception):
    """The data store failed or timed out while a decision was being made."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause
