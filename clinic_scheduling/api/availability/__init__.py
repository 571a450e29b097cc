"""
Availability API Domain

Handles reading, projecting and replacing a clinician's weekly availability.
"""

from .endpoints import get_availability_blocks, get_weekly_availability, update_weekly_availability

__all__ = [
	"get_weekly_availability",
	"get_availability_blocks",
	"update_weekly_availability",
]
