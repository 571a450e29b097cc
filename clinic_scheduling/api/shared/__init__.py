"""
Shared API Utilities

Rate limiting, sanitization and input validation used by every API domain.
"""

from .security import check_rate_limit, clean_text, requester_id
from .validators import (
    validate_date_string,
    validate_docname,
    validate_local_datetime_string,
    validate_recurrence_rule,
    validate_scope,
)

__all__ = [
    "check_rate_limit",
    "clean_text",
    "requester_id",
    "validate_date_string",
    "validate_docname",
    "validate_local_datetime_string",
    "validate_recurrence_rule",
    "validate_scope",
]
