"""
Availability Service

Turns a clinician record into a weekly availability pattern and projects that
pattern onto concrete calendar blocks, considering:
- Fixed-column storage (up to 3 slots per weekday)
- Per-slot timezones, with the clinician zone as fallback
- DST transitions in the slot zone
- Per-date exceptions that replace a weekday's slots
"""

import logging
import re
from datetime import date, datetime, time, timedelta
from typing import Any, Dict, Iterable, List, Optional, Union

from .exceptions import MalformedTimeValue
from .models import (
	DAYS,
	SLOTS_PER_DAY,
	AvailabilityBlock,
	AvailabilityException,
	AvailabilitySlot,
	DayAvailability,
	WeeklyAvailabilityPattern,
)
from .timezones import DEFAULT_TIMEZONE, canonicalize_zone, get_tz, localize_wall_clock

logger = logging.getLogger(__name__)

START_COLUMN = "clinician_availability_start_{day}_{n}"
END_COLUMN = "clinician_availability_end_{day}_{n}"
ZONE_COLUMN = "clinician_availability_timezone_{day}_{n}"

_TIME_PATTERN = re.compile(r"^(\d{1,2}):(\d{2})(?::(\d{2})(?:\.\d+)?)?$")


def parse_time_of_day(time_value: Union[time, timedelta, str], field: Optional[str] = None) -> time:
	"""
	Convierte diferentes formatos de tiempo a datetime.time.

	Args:
		time_value: time, timedelta (desde medianoche) o string "HH:MM[:SS]"
		field: nombre del campo, solo para el mensaje de error

	Returns:
		datetime.time con segundos descartados

	Raises:
		MalformedTimeValue: si el valor no representa una hora del día
	"""
	if isinstance(time_value, datetime):
		raise MalformedTimeValue(time_value, field)

	if isinstance(time_value, time):
		return time_value.replace(second=0, microsecond=0, tzinfo=None)

	if isinstance(time_value, timedelta):
		# timedelta representa tiempo desde medianoche
		if timedelta(0) <= time_value < timedelta(days=1):
			return (datetime.min + time_value).time().replace(second=0, microsecond=0)
		raise MalformedTimeValue(time_value, field)

	if isinstance(time_value, str):
		match = _TIME_PATTERN.match(time_value.strip())
		if match:
			hours, minutes = int(match.group(1)), int(match.group(2))
			if hours < 24 and minutes < 60:
				return time(hours, minutes)

	raise MalformedTimeValue(time_value, field)


def format_time_of_day(value: time) -> str:
	return value.strftime("%H:%M")


def _field(record: Any, key: str) -> Any:
	if record is None:
		return None
	if hasattr(record, "get"):
		return record.get(key)
	return getattr(record, key, None)


def _is_blank(value: Any) -> bool:
	return value is None or (isinstance(value, str) and not value.strip())


def record_zone(record: Any) -> str:
	"""Clinician-level zone, canonicalized, DEFAULT_TIMEZONE when unusable."""
	raw = _field(record, "clinician_time_zone")
	if _is_blank(raw):
		raw = _field(record, "clinician_timezone")
	return canonicalize_zone(raw, fallback=DEFAULT_TIMEZONE)


def extract_pattern(record: Any) -> WeeklyAvailabilityPattern:
	"""
	Construye el patrón semanal a partir del registro del clínico.

	Args:
		record: dict o Document con las columnas fijas
			clinician_availability_{start,end,timezone}_{day}_{1..3}

	Returns:
		WeeklyAvailabilityPattern con los 7 días

	Algoritmo:
		1. Resolver la zona del clínico (fallback para cada slot)
		2. Para cada día y posición 1..3 leer inicio, fin y zona
		3. Incluir el slot solo si inicio y fin existen, se pueden parsear
		   y inicio < fin; si no, se excluye sin error
		4. Un día está disponible si tiene al menos un slot
	"""
	fallback_zone = record_zone(record)
	pattern = WeeklyAvailabilityPattern()

	for day in DAYS:
		slots = []
		for n in range(1, SLOTS_PER_DAY + 1):
			raw_start = _field(record, START_COLUMN.format(day=day, n=n))
			raw_end = _field(record, END_COLUMN.format(day=day, n=n))
			if _is_blank(raw_start) or _is_blank(raw_end):
				continue

			try:
				start_time = parse_time_of_day(raw_start, START_COLUMN.format(day=day, n=n))
				end_time = parse_time_of_day(raw_end, END_COLUMN.format(day=day, n=n))
			except MalformedTimeValue as e:
				logger.debug("Skipping %s slot %s: %s", day, n, e)
				continue

			if start_time >= end_time:
				logger.debug("Skipping %s slot %s: start %s is not before end %s", day, n, start_time, end_time)
				continue

			zone = canonicalize_zone(
				_field(record, ZONE_COLUMN.format(day=day, n=n)),
				fallback=fallback_zone
			)
			slots.append(AvailabilitySlot(
				day=day,
				slot_number=n,
				start_time=format_time_of_day(start_time),
				end_time=format_time_of_day(end_time),
				zone=zone
			))

		pattern.days[day] = DayAvailability(day=day, is_available=bool(slots), slots=slots)

	return pattern


def pattern_to_record(pattern: WeeklyAvailabilityPattern) -> Dict[str, Optional[str]]:
	"""
	Inverse of extract_pattern: all 63 fixed columns, unused positions None.

	Slots are renumbered 1..3 in start-time order. More than three slots on a
	day raises ValueError.
	"""
	record = {}

	for day in DAYS:
		day_availability = pattern.days.get(day) or DayAvailability(day)
		slots = sorted(day_availability.slots, key=lambda s: (s.start_time, s.slot_number))
		if len(slots) > SLOTS_PER_DAY:
			raise ValueError(f"{day} has {len(slots)} slots, at most {SLOTS_PER_DAY} are supported")

		for n in range(1, SLOTS_PER_DAY + 1):
			slot = slots[n - 1] if n <= len(slots) else None
			record[START_COLUMN.format(day=day, n=n)] = slot.start_time if slot else None
			record[END_COLUMN.format(day=day, n=n)] = slot.end_time if slot else None
			record[ZONE_COLUMN.format(day=day, n=n)] = slot.zone if slot else None

	return record


def _parse_date(value: Any) -> Optional[date]:
	if isinstance(value, datetime):
		return value.date()
	if isinstance(value, date):
		return value
	if isinstance(value, str):
		try:
			return date.fromisoformat(value.strip())
		except ValueError:
			return None
	return None


def _is_set(value: Any) -> bool:
	if isinstance(value, str):
		return value.strip().lower() in ("1", "true", "yes")
	return bool(value)


def extract_exceptions(
	rows: Iterable[Any],
	fallback_zone: Any = DEFAULT_TIMEZONE
) -> Dict[date, List[AvailabilityException]]:
	"""
	Agrupa por fecha las excepciones de disponibilidad de un clínico.

	Args:
		rows: dicts o Documents con name, specific_date, start_time,
			end_time, timezone e is_deleted
		fallback_zone: zona del clínico, usada si la excepción no tiene zona

	Returns:
		dict: {date: [AvailabilityException, ...]}

	Una fila sin fecha válida, o activa con horas inválidas, se registra y
	se ignora: no reemplaza el día. Una fila borrada siempre lo reemplaza.
	"""
	fallback_zone = canonicalize_zone(fallback_zone)
	result = {}

	for row in rows:
		exception_id = str(_field(row, "name") or _field(row, "id") or "")
		specific_date = _parse_date(_field(row, "specific_date"))
		if specific_date is None:
			logger.warning("Skipping availability exception %s: invalid date %r",
				exception_id, _field(row, "specific_date"))
			continue

		zone = canonicalize_zone(_field(row, "timezone"), fallback=fallback_zone)

		if _is_set(_field(row, "is_deleted")):
			exception = AvailabilityException(exception_id, specific_date, None, None, zone, is_deleted=True)
		else:
			try:
				start_time = parse_time_of_day(_field(row, "start_time"), "start_time")
				end_time = parse_time_of_day(_field(row, "end_time"), "end_time")
			except MalformedTimeValue as e:
				logger.warning("Skipping availability exception %s: %s", exception_id, e)
				continue

			if start_time >= end_time:
				logger.warning("Skipping availability exception %s: start %s is not before end %s",
					exception_id, start_time, end_time)
				continue

			exception = AvailabilityException(
				exception_id,
				specific_date,
				format_time_of_day(start_time),
				format_time_of_day(end_time),
				zone
			)

		result.setdefault(specific_date, []).append(exception)

	return result


def slots_for_date(
	pattern: WeeklyAvailabilityPattern,
	value: date,
	exceptions: Optional[Dict[date, List[AvailabilityException]]] = None
) -> List[Union[AvailabilitySlot, AvailabilityException]]:
	"""Slots of a date: its exceptions when it has any, else the weekly pattern."""
	overrides = (exceptions or {}).get(value)
	if overrides is None:
		return pattern.slots_for(value)
	return sorted(
		(e for e in overrides if not e.is_deleted),
		key=lambda e: (e.start_time, e.exception_id)
	)


def project_blocks(
	pattern: WeeklyAvailabilityPattern,
	start_date: date,
	end_date: date,
	display_zone: Any,
	exceptions: Optional[Dict[date, List[AvailabilityException]]] = None
) -> List[AvailabilityBlock]:
	"""
	Proyecta el patrón semanal sobre un rango de fechas.

	Args:
		pattern: patrón semanal del clínico
		start_date: fecha inicial (inclusive)
		end_date: fecha final (inclusive)
		display_zone: zona en la que se devuelven los bloques
		exceptions: excepciones por fecha (extract_exceptions), opcional

	Returns:
		list[AvailabilityBlock] ordenada por fecha y número de slot

	Algoritmo:
		1. Para cada fecha del rango obtener sus excepciones o, si no tiene,
		   los slots de su día de la semana
		2. Interpretar inicio y fin como hora de pared en la zona del slot
		3. Convertir ambos instantes a display_zone
		4. Un slot que no se puede interpretar se registra y se omite
	"""
	display_tz = get_tz(display_zone)
	blocks = []
	current_date = start_date

	while current_date <= end_date:
		for slot in slots_for_date(pattern, current_date, exceptions):
			try:
				start_time = parse_time_of_day(slot.start_time, "start_time")
				end_time = parse_time_of_day(slot.end_time, "end_time")
			except MalformedTimeValue as e:
				logger.warning("Skipping slot %s on %s: %s", slot.slot_id, current_date, e)
				continue

			slot_tz = get_tz(slot.zone)
			start = localize_wall_clock(current_date, start_time, slot_tz)
			end = localize_wall_clock(current_date, end_time, slot_tz)

			if end <= start:
				logger.warning(
					"Skipping slot %s on %s: empty after DST adjustment", slot.slot_id, current_date
				)
				continue

			blocks.append(AvailabilityBlock(
				start=start.astimezone(display_tz),
				end=end.astimezone(display_tz),
				day_anchor=current_date,
				source_slot_id=slot.slot_id,
				slot_zone=slot_tz.zone
			))

		current_date += timedelta(days=1)

	return blocks


def get_availability_blocks(
	store: Any,
	clinician_id: str,
	start_date: date,
	end_date: date,
	display_zone: Any = None
) -> List[AvailabilityBlock]:
	"""
	Projected blocks for a clinician, with date exceptions applied.

	display_zone defaults to the clinician's zone.
	"""
	record = store.fetch_clinician_availability_record(clinician_id)
	pattern = extract_pattern(record)
	exceptions = extract_exceptions(
		store.fetch_availability_exceptions(clinician_id, start_date, end_date),
		record_zone(record)
	)
	zone = display_zone if not _is_blank(display_zone) else record_zone(record)
	return project_blocks(pattern, start_date, end_date, zone, exceptions)
