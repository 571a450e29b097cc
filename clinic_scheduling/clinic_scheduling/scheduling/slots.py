"""
Slot Generation Service

Generates bookable slots for a client, considering:
- The clinician's weekly availability pattern and per-date exceptions
- Booking window (minimum notice, maximum advance) in the client's zone
- Slot granularity (hour or half hour)
- Existing appointments
"""

import logging
from datetime import date, datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional

import pytz

from .availability import extract_exceptions, extract_pattern, project_blocks, record_zone
from .models import (
	GRANULARITY_ALIASES,
	GRANULARITY_MINUTES,
	AvailabilityException,
	BookableSlot,
	BookingSettings,
	WeeklyAvailabilityPattern,
)
from .overlap import usable_appointments
from .timezones import canonicalize_zone, get_tz, to_utc, today_in_zone

logger = logging.getLogger(__name__)

DEFAULT_MIN_DAYS_AHEAD = 1
DEFAULT_MAX_DAYS_AHEAD = 30


def _granularity(raw: Any) -> str:
	value = str(raw or "").strip().lower().replace("-", "_").replace(" ", "_")
	value = GRANULARITY_ALIASES.get(value, value)
	if value in GRANULARITY_MINUTES:
		return value
	if value:
		logger.warning("Unknown slot granularity %r, using hour", raw)
	return "hour"


def _days(raw: Any, default: int, field: str) -> int:
	if raw in (None, ""):
		return default
	try:
		value = int(raw)
	except (TypeError, ValueError):
		logger.warning("Invalid %s %r, using %s", field, raw, default)
		return default
	if value < 0:
		logger.warning("Negative %s %r, using %s", field, raw, default)
		return default
	return value


def booking_settings_from_record(record: Any) -> BookingSettings:
	"""
	Lee la configuración de agendamiento del registro del clínico.

	Columnas: clinician_time_granularity ("hour" | "half-hour" | "halfHour"),
	clinician_min_notice_days (1 por defecto) y
	clinician_max_advance_days (30 por defecto).
	"""
	get = record.get if hasattr(record, "get") else lambda key: getattr(record, key, None)

	min_days = _days(get("clinician_min_notice_days"), DEFAULT_MIN_DAYS_AHEAD, "clinician_min_notice_days")
	max_days = _days(get("clinician_max_advance_days"), DEFAULT_MAX_DAYS_AHEAD, "clinician_max_advance_days")
	if max_days < min_days:
		logger.warning("Max advance %s is below min notice %s, clamping", max_days, min_days)
		max_days = min_days

	return BookingSettings(
		granularity=_granularity(get("clinician_time_granularity")),
		min_days_ahead=min_days,
		max_days_ahead=max_days
	)


def in_booking_window(
	target_date: date,
	settings: BookingSettings,
	client_zone: Any,
	now: Optional[datetime] = None
) -> bool:
	"""True when target_date is between min and max days ahead of today in the client zone."""
	days_ahead = (target_date - today_in_zone(client_zone, now)).days
	return settings.min_days_ahead <= days_ahead <= settings.max_days_ahead


def generate_slots(
	pattern: WeeklyAvailabilityPattern,
	target_date: date,
	existing_appointments: Iterable[Any],
	settings: BookingSettings,
	client_zone: Any,
	now: Optional[datetime] = None,
	exceptions: Optional[Dict[date, List[AvailabilityException]]] = None
) -> List[BookableSlot]:
	"""
	Genera slots reservables para una fecha.

	Args:
		pattern: patrón semanal del clínico
		target_date: fecha solicitada
		existing_appointments: citas del clínico alrededor de la fecha
		settings: granularidad y ventana de agendamiento
		client_zone: zona del cliente (etiquetas y ventana)
		now: instante actual (para tests)
		exceptions: excepciones por fecha; reemplazan el patrón ese día

	Returns:
		list[BookableSlot] ordenada por inicio

	Algoritmo:
		1. Fuera de la ventana de agendamiento -> []
		2. Proyectar los slots del día (excepción o patrón, zona de cada slot)
		3. Generar candidatos cada 60/30 minutos; sin paso parcial al final
		4. Descartar candidatos que solapan una cita o que ya empezaron
		5. Etiquetar en la zona del cliente y ordenar
	"""
	client_zone = canonicalize_zone(client_zone)
	current_time = to_utc(now) if now is not None else datetime.now(pytz.UTC)

	if not in_booking_window(target_date, settings, client_zone, current_time):
		return []

	blocks = project_blocks(pattern, target_date, target_date, pytz.UTC, exceptions)
	if not blocks:
		return []

	busy = [(start, end) for _appt, start, end in usable_appointments(existing_appointments)]
	step = timedelta(minutes=settings.step_minutes)
	client_tz = get_tz(client_zone)

	slots = {}

	for block in blocks:
		# Pasos en tiempo absoluto: un bloque que cruza DST conserva su duración real
		candidate_start = block.start

		while candidate_start + step <= block.end:
			candidate_end = candidate_start + step

			is_free = not any(start < candidate_end and end > candidate_start for start, end in busy)

			if is_free and candidate_start > current_time and candidate_start not in slots:
				local_start = candidate_start.astimezone(client_tz)
				local_end = candidate_end.astimezone(client_tz)
				slots[candidate_start] = BookableSlot(
					start_local=local_start.strftime("%H:%M"),
					end_local=local_end.strftime("%H:%M"),
					zone=client_zone,
					calendar_date=local_start.date(),
					start_utc=candidate_start,
					end_utc=candidate_end,
					source_slot_id=block.source_slot_id
				)

			candidate_start = candidate_end

	return [slots[key] for key in sorted(slots)]


def _appointment_window(first_date: date, last_date: date):
	"""UTC range covering every slot whose pattern date is in [first_date, last_date]."""
	start = pytz.UTC.localize(datetime.combine(first_date - timedelta(days=1), datetime.min.time()))
	end = pytz.UTC.localize(datetime.combine(last_date + timedelta(days=2), datetime.min.time()))
	return start, end


def _load_inputs(store: Any, clinician_id: str, first_date: date, last_date: date):
	record = store.fetch_clinician_availability_record(clinician_id)
	pattern = extract_pattern(record)
	exceptions = extract_exceptions(
		store.fetch_availability_exceptions(clinician_id, first_date, last_date),
		record_zone(record)
	)
	if pattern.is_empty and not exceptions:
		return None

	settings = store.fetch_booking_settings(clinician_id)
	window_start, window_end = _appointment_window(first_date, last_date)
	appointments = store.fetch_appointments(clinician_id, window_start, window_end)
	return pattern, exceptions, settings, appointments


def get_available_slots(
	store: Any,
	clinician_id: str,
	target_date: date,
	client_zone: Any,
	now: Optional[datetime] = None
) -> List[BookableSlot]:
	"""
	Bookable slots for a clinician on a date, reading everything from the store.

	Appointments are fetched from the day before the target date to the end of
	the day after, which covers any offset between the slot zones and UTC.
	"""
	inputs = _load_inputs(store, clinician_id, target_date, target_date)
	if inputs is None:
		return []

	pattern, exceptions, settings, appointments = inputs
	return generate_slots(pattern, target_date, appointments, settings, client_zone, now, exceptions)


def find_bookable_slot(
	store: Any,
	clinician_id: str,
	start_at: datetime,
	client_zone: Any,
	now: Optional[datetime] = None
) -> Optional[BookableSlot]:
	"""
	Busca el slot reservable que empieza exactamente en start_at.

	Args:
		store: SchedulingStore
		clinician_id: id del clínico
		start_at: inicio solicitado (aware o UTC naive)
		client_zone: zona del cliente que reserva
		now: instante actual (para tests)

	Returns:
		BookableSlot o None si ese inicio no se ofrece

	La fecha del cliente y la fecha del patrón pueden diferir: un slot del
	martes en Chicago puede caer el miércoles en Tokio. Las zonas van de
	UTC-12 a UTC+14, así que la fecha del patrón está a un día como máximo
	de la fecha UTC de start_at.
	"""
	start_at = to_utc(start_at, "start_at")
	utc_date = start_at.date()
	first_date = utc_date - timedelta(days=1)
	last_date = utc_date + timedelta(days=1)

	inputs = _load_inputs(store, clinician_id, first_date, last_date)
	if inputs is None:
		return None

	pattern, exceptions, settings, appointments = inputs
	pattern_date = first_date
	while pattern_date <= last_date:
		for slot in generate_slots(pattern, pattern_date, appointments, settings, client_zone, now, exceptions):
			if slot.start_utc == start_at:
				return slot
		pattern_date += timedelta(days=1)

	return None
