"""
Clinic Scheduling API

Structure:
    api/
    ├── __init__.py              # This file
    ├── appointments/            # Slots, booking, series edits and deletions
    ├── availability/            # Weekly availability and projected blocks
    └── shared/                  # Rate limiting, sanitization, validators

Usage:
    frappe.call("clinic_scheduling.api.appointments.get_available_slots", ...)
"""

from . import appointments
from . import availability
from . import shared

__all__ = [
	"appointments",
	"availability",
	"shared",
]
