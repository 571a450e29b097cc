"""
Scheduling Models

Plain data types shared by the scheduling services. Instants on appointments
are aware UTC datetimes; wall-clock times on availability slots are "HH:MM"
strings interpreted in the slot's own zone.
"""

from dataclasses import dataclass, field, replace
from datetime import date, datetime
from typing import Any, Dict, List, Optional

DAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")

SLOTS_PER_DAY = 3

RECURRENCE_RULES = ("weekly", "biweekly", "monthly")

# Statuses that free the slot they occupy.
NON_BLOCKING_STATUSES = frozenset({"cancelled", "canceled"})

GRANULARITY_MINUTES = {
	"hour": 60,
	"half_hour": 30,
}

GRANULARITY_ALIASES = {
	"halfhour": "half_hour",
	"hourly": "hour",
}


def day_name(value: date) -> str:
	"""Weekday key ("monday".."sunday") for a calendar date."""
	return DAYS[value.weekday()]


@dataclass(frozen=True)
class AvailabilitySlot:
	day: str
	slot_number: int
	start_time: str
	end_time: str
	zone: str

	@property
	def slot_id(self) -> str:
		return f"{self.day}-{self.slot_number}"


@dataclass
class DayAvailability:
	day: str
	is_available: bool = False
	slots: List[AvailabilitySlot] = field(default_factory=list)


@dataclass
class WeeklyAvailabilityPattern:
	"""
	Patrón semanal de disponibilidad de un clínico.

	Vista derivada: se reconstruye en cada lectura a partir del registro.
	"""

	days: Dict[str, DayAvailability] = field(
		default_factory=lambda: {day: DayAvailability(day) for day in DAYS}
	)

	def slots_for(self, value: date) -> List[AvailabilitySlot]:
		day = self.days.get(day_name(value))
		if not day or not day.is_available:
			return []
		return sorted(day.slots, key=lambda s: s.slot_number)

	def all_slots(self) -> List[AvailabilitySlot]:
		return [slot for day in DAYS for slot in sorted(self.days[day].slots, key=lambda s: s.slot_number)]

	@property
	def is_empty(self) -> bool:
		return not any(day.is_available for day in self.days.values())


@dataclass(frozen=True)
class AvailabilityException:
	"""
	Override de disponibilidad para una fecha concreta.

	Cualquier excepción de una fecha reemplaza los slots semanales de ese día.
	Una excepción borrada no aporta slot, así que si todas lo están el día
	queda cerrado.
	"""

	exception_id: str
	specific_date: date
	start_time: Optional[str]
	end_time: Optional[str]
	zone: str
	is_deleted: bool = False

	@property
	def slot_id(self) -> str:
		return f"exception-{self.exception_id}"


@dataclass(frozen=True)
class AvailabilityBlock:
	start: datetime
	end: datetime
	day_anchor: date
	source_slot_id: str
	slot_zone: str

	@property
	def block_id(self) -> str:
		return f"{self.source_slot_id}-{self.day_anchor.isoformat()}"

	def as_interval(self) -> Dict[str, datetime]:
		return {"start": self.start, "end": self.end}


@dataclass
class Appointment:
	id: Optional[str]
	clinician_id: str
	start_at: datetime
	end_at: datetime
	client_id: Optional[str] = None
	appointment_zone: Optional[str] = None
	status: str = "scheduled"
	recurring_group_id: Optional[str] = None
	recurrence_rule: Optional[str] = None
	notes: Optional[str] = None
	appointment_type: Optional[str] = None

	@property
	def is_blocking(self) -> bool:
		return (self.status or "").lower() not in NON_BLOCKING_STATUSES

	def as_interval(self) -> Dict[str, datetime]:
		return {"start": self.start_at, "end": self.end_at}

	def copy(self, **changes: Any) -> "Appointment":
		return replace(self, **changes)


@dataclass(frozen=True)
class BookingSettings:
	granularity: str = "hour"
	min_days_ahead: int = 1
	max_days_ahead: int = 30

	def __post_init__(self):
		if self.granularity not in GRANULARITY_MINUTES:
			raise ValueError(f"Unknown granularity {self.granularity!r}")
		if self.min_days_ahead < 0 or self.max_days_ahead < self.min_days_ahead:
			raise ValueError(
				f"Invalid booking window {self.min_days_ahead}..{self.max_days_ahead} days"
			)

	@property
	def step_minutes(self) -> int:
		return GRANULARITY_MINUTES[self.granularity]


@dataclass(frozen=True)
class BookableSlot:
	start_local: str
	end_local: str
	zone: str
	calendar_date: date
	start_utc: datetime
	end_utc: datetime
	source_slot_id: str

	def as_dict(self) -> Dict[str, Any]:
		return {
			"start_local": self.start_local,
			"end_local": self.end_local,
			"zone": self.zone,
			"calendar_date": self.calendar_date.isoformat(),
			"start_utc": self.start_utc.isoformat(),
			"end_utc": self.end_utc.isoformat(),
			"source_slot_id": self.source_slot_id,
		}


@dataclass(frozen=True)
class AppointmentChanges:
	"""
	Edit payload for an appointment or a series.

	start_local is a naive wall-clock datetime read in `zone` (or the
	appointment's own zone when zone is None). None leaves a field unchanged.
	"""

	start_local: Optional[datetime] = None
	zone: Optional[str] = None
	status: Optional[str] = None
	notes: Optional[str] = None
	appointment_type: Optional[str] = None

	def field_updates(self) -> Dict[str, Any]:
		updates = {
			"status": self.status,
			"notes": self.notes,
			"appointment_type": self.appointment_type,
		}
		return {key: value for key, value in updates.items() if value is not None}
