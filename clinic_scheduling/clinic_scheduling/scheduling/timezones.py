"""
Timezone Service

Single entry point for turning whatever a record stores in a timezone field
(IANA names, US abbreviations, empty strings, arrays, serialized objects)
into a valid IANA zone, plus helpers to move wall-clock times between zones.
"""

import json
import logging
from collections.abc import Mapping
from datetime import date, datetime, time, tzinfo
from typing import Any, Optional, Tuple, Union

import pytz

from .exceptions import MalformedTimeValue

logger = logging.getLogger(__name__)

DEFAULT_TIMEZONE = "America/Chicago"

ZONE_ABBREVIATIONS = {
	"EST": "America/New_York",
	"EDT": "America/New_York",
	"CST": "America/Chicago",
	"CDT": "America/Chicago",
	"MST": "America/Denver",
	"MDT": "America/Denver",
	"PST": "America/Los_Angeles",
	"PDT": "America/Los_Angeles",
}

_OBJECT_ZONE_KEYS = ("timezone", "zone", "name", "value")


def _lookup(name: str) -> Optional[str]:
	"""Retorna el nombre canónico de pytz o None si no existe."""
	name = name.strip()
	if not name:
		return None

	name = ZONE_ABBREVIATIONS.get(name.upper(), name)

	try:
		return pytz.timezone(name).zone
	except pytz.UnknownTimeZoneError:
		return None


def _encode_structured(raw: Any) -> str:
	"""Deterministic string form of a non-string zone value."""
	if isinstance(raw, tzinfo):
		return getattr(raw, "zone", None) or getattr(raw, "key", None) or str(raw)

	if isinstance(raw, Mapping):
		for key in _OBJECT_ZONE_KEYS:
			value = raw.get(key)
			if isinstance(value, str) and value.strip():
				return value

	try:
		return json.dumps(raw, sort_keys=True, default=str)
	except (TypeError, ValueError):
		return repr(raw)


def canonicalize_zone(raw: Any, fallback: str = DEFAULT_TIMEZONE) -> str:
	"""
	Normaliza un valor de timezone arbitrario a una zona IANA válida.

	Args:
		raw: valor almacenado (str, list, dict, tzinfo, None, ...)
		fallback: zona a usar si raw no es válido

	Returns:
		str: nombre IANA canónico. Nunca lanza excepción.

	Algoritmo:
		1. list/tuple -> primer elemento (warning)
		2. objeto estructurado -> codificación determinística (warning)
		3. string -> abreviatura US o nombre IANA
		4. inválido -> fallback; fallback inválido -> DEFAULT_TIMEZONE
	"""
	value = raw

	if isinstance(value, (list, tuple)):
		logger.warning("Timezone stored as array %r, using first element", value)
		value = value[0] if value else None
		if isinstance(value, (list, tuple)):
			return canonicalize_zone(value, fallback)

	if value is not None and not isinstance(value, str):
		encoded = _encode_structured(value)
		if not isinstance(value, tzinfo):
			logger.warning("Timezone stored as object %r, encoded as %r", value, encoded)
		value = encoded

	if isinstance(value, str):
		zone = _lookup(value)
		if zone:
			return zone
		if value.strip():
			logger.warning("Unknown timezone %r, falling back to %s", value, fallback)

	fallback_zone = _lookup(fallback) if isinstance(fallback, str) else None
	return fallback_zone or DEFAULT_TIMEZONE


def get_tz(zone: Any) -> pytz.BaseTzInfo:
	"""pytz tzinfo for any stored zone value."""
	return pytz.timezone(canonicalize_zone(zone))


def localize_wall_clock(
	day: date,
	wall_time: time,
	zone: Union[str, pytz.BaseTzInfo]
) -> datetime:
	"""
	Convierte fecha + hora de pared en un instante aware en la zona dada.

	Horas ambiguas (fin de DST) se resuelven a la primera ocurrencia.
	Horas inexistentes (inicio de DST) se desplazan hacia adelante
	por el tamaño del salto, igual que un reloj de pared.
	"""
	tz = zone if isinstance(zone, tzinfo) else get_tz(zone)
	naive = datetime.combine(day, wall_time)

	try:
		return tz.localize(naive, is_dst=None)
	except pytz.AmbiguousTimeError:
		return tz.localize(naive, is_dst=True)
	except pytz.NonExistentTimeError:
		return tz.normalize(tz.localize(naive, is_dst=False))


def to_utc(value: Union[datetime, str], field: Optional[str] = None) -> datetime:
	"""
	Normalize a stored instant to an aware UTC datetime.

	Naive values are UTC by store convention. ISO strings may end in "Z".
	Raises MalformedTimeValue when the value cannot be parsed.
	"""
	if isinstance(value, str):
		text = value.strip()
		if text.endswith("Z"):
			text = text[:-1] + "+00:00"
		try:
			value = datetime.fromisoformat(text)
		except ValueError:
			raise MalformedTimeValue(value, field)

	if not isinstance(value, datetime):
		raise MalformedTimeValue(value, field)

	if value.tzinfo is None:
		return pytz.UTC.localize(value)

	return value.astimezone(pytz.UTC)


def today_in_zone(zone: Any, now: Optional[datetime] = None) -> date:
	"""Calendar date in the given zone at `now` (defaults to the current instant)."""
	current = to_utc(now) if now is not None else datetime.now(pytz.UTC)
	return current.astimezone(get_tz(zone)).date()


def appointment_display_zone(appointment: Any, viewer_zone: Any) -> Tuple[str, bool]:
	"""
	Zona en la que se debe mostrar una cita.

	Returns:
		tuple: (zona, confiable). Si la cita no tiene zona propia se usa
		la del usuario que la ve y se marca como no confiable.
	"""
	raw = getattr(appointment, "appointment_zone", None)
	if raw is None and isinstance(appointment, Mapping):
		raw = appointment.get("appointment_zone") or appointment.get("appointment_timezone")

	if raw in (None, "") or (isinstance(raw, str) and not raw.strip()):
		return canonicalize_zone(viewer_zone), False

	return canonicalize_zone(raw, fallback=canonicalize_zone(viewer_zone)), True
