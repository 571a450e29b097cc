"""
Appointments API Domain

Handles bookable slots, booking, and series-aware edits and deletions.
"""

from .endpoints import (
	book_appointment,
	delete_appointment,
	get_available_slots,
	update_appointment,
)

__all__ = [
	"get_available_slots",
	"book_appointment",
	"update_appointment",
	"delete_appointment",
]
