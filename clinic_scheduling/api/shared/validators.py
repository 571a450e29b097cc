"""
Scheduling Validators

Validation utilities for the clinic_scheduling API inputs.
"""

import re
from datetime import date, datetime

import frappe
from frappe import _

from clinic_scheduling.clinic_scheduling.scheduling.recurrence import SCOPES
from clinic_scheduling.clinic_scheduling.scheduling.models import RECURRENCE_RULES


def validate_date_string(date_str: str, field_name: str = "date") -> date:
    """
    Validate and parse a date string (YYYY-MM-DD).

    Args:
        date_str: Date string to validate
        field_name: Name of field for error messages

    Returns:
        date: Parsed date

    Raises:
        frappe.ValidationError: If date format is invalid
    """
    if not date_str:
        frappe.throw(_("{0} is required").format(field_name), frappe.ValidationError)

    date_str = str(date_str).strip()

    if not re.match(r"^\d{4}-\d{2}-\d{2}$", date_str):
        frappe.throw(
            _("Invalid {0} format. Use YYYY-MM-DD").format(field_name), frappe.ValidationError
        )

    try:
        return date.fromisoformat(date_str)
    except ValueError:
        frappe.throw(_("Invalid {0}").format(field_name), frappe.ValidationError)


def validate_local_datetime_string(datetime_str: str, field_name: str = "datetime") -> datetime:
    """
    Validate and parse a wall-clock datetime (YYYY-MM-DD HH:MM[:SS]).

    The value carries no offset; it is read in a timezone given separately.

    Raises:
        frappe.ValidationError: If datetime format is invalid
    """
    if not datetime_str:
        frappe.throw(_("{0} is required").format(field_name), frappe.ValidationError)

    datetime_str = str(datetime_str).strip().replace("T", " ")

    if not re.match(r"^\d{4}-\d{2}-\d{2} \d{2}:\d{2}(:\d{2})?$", datetime_str):
        frappe.throw(
            _("Invalid {0} format. Use YYYY-MM-DD HH:MM:SS").format(field_name),
            frappe.ValidationError,
        )

    try:
        return datetime.fromisoformat(datetime_str)
    except ValueError:
        frappe.throw(_("Invalid {0}").format(field_name), frappe.ValidationError)


def validate_docname(name: str, field_name: str = "name") -> str:
    """
    Validate a document name (ID).

    Ensures the name is not too long and doesn't contain injection patterns.

    Raises:
        frappe.ValidationError: If name is invalid
    """
    if not name:
        frappe.throw(_("{0} is required").format(field_name), frappe.ValidationError)

    name = str(name).strip()

    if len(name) > 140:
        frappe.throw(_("{0} is too long").format(field_name), frappe.ValidationError)

    dangerous_patterns = [
        r"<script",
        r"javascript:",
        r"onclick",
        r"onerror",
        r"SELECT\s+",
        r"INSERT\s+",
        r"UPDATE\s+",
        r"DELETE\s+",
        r"DROP\s+",
        r"UNION\s+",
        r"--",
        r";",
    ]

    for pattern in dangerous_patterns:
        if re.search(pattern, name, re.IGNORECASE):
            frappe.throw(_("Invalid {0}").format(field_name), frappe.ValidationError)

    return name


def validate_scope(scope: str) -> str:
    """Validate a series mutation scope (single, future, all)."""
    scope = str(scope or "single").strip().lower()
    if scope not in SCOPES:
        frappe.throw(
            _("Invalid scope. Use one of: {0}").format(", ".join(SCOPES)), frappe.ValidationError
        )
    return scope


def validate_recurrence_rule(rule: str) -> str:
    """Validate a recurrence rule; empty means a standalone appointment."""
    if not rule:
        return None
    rule = str(rule).strip().lower()
    if rule not in RECURRENCE_RULES:
        frappe.throw(
            _("Invalid recurrence rule. Use one of: {0}").format(", ".join(RECURRENCE_RULES)),
            frappe.ValidationError,
        )
    return rule
