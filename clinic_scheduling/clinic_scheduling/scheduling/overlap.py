"""
Overlap Detection Service

Detects scheduling conflicts between intervals, considering:
- Half-open semantics (touching intervals do not overlap)
- Absolute instants (every comparison happens in UTC)
- Appointment status (cancelled appointments do not block)
- Malformed appointments (skipped, never abort a scan)
"""

import logging
from collections.abc import Mapping
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .exceptions import MalformedTimeValue
from .models import NON_BLOCKING_STATUSES
from .timezones import to_utc

logger = logging.getLogger(__name__)

ADJACENT_GAP = timedelta(minutes=5)

# Conflict types
OVERLAP = "overlap"
CONTAINS = "contains"
CONTAINED = "contained"
BACK_TO_BACK = "back_to_back"
ADJACENT = "adjacent"

BLOCKING_CONFLICTS = (OVERLAP, CONTAINS, CONTAINED)


def _value(item: Any, *keys: str) -> Any:
	for key in keys:
		if isinstance(item, Mapping):
			if item.get(key) is not None:
				return item[key]
		elif getattr(item, key, None) is not None:
			return getattr(item, key)
	return None


def interval_bounds(item: Any) -> Tuple[datetime, datetime]:
	"""
	(start, end) en UTC para un dict {"start", "end"}, una cita o un bloque.

	Raises:
		MalformedTimeValue: si falta un extremo, no se puede parsear o start >= end
	"""
	raw_start = _value(item, "start", "start_at")
	raw_end = _value(item, "end", "end_at")
	if raw_start is None:
		raise MalformedTimeValue(raw_start, "start")
	if raw_end is None:
		raise MalformedTimeValue(raw_end, "end")

	start = to_utc(raw_start, "start")
	end = to_utc(raw_end, "end")
	if start >= end:
		raise MalformedTimeValue(raw_end, "end")

	return start, end


def item_id(item: Any) -> Optional[str]:
	value = _value(item, "id", "name")
	return str(value) if value is not None else None


def is_blocking(item: Any) -> bool:
	status = _value(item, "status")
	return str(status or "").lower() not in NON_BLOCKING_STATUSES


def overlaps(a: Any, b: Any) -> bool:
	"""
	Half-open overlap test: a.start < b.end and a.end > b.start.

	Both sides are converted to UTC first, so intervals expressed in different
	zones compare by absolute instant.
	"""
	a_start, a_end = interval_bounds(a)
	b_start, b_end = interval_bounds(b)
	return a_start < b_end and a_end > b_start


def overlap_minutes(a: Any, b: Any) -> int:
	a_start, a_end = interval_bounds(a)
	b_start, b_end = interval_bounds(b)
	overlap = min(a_end, b_end) - max(a_start, b_start)
	return max(0, int(overlap.total_seconds() // 60))


def classify_conflict(a: Any, b: Any) -> Optional[str]:
	"""
	Tipo de conflicto entre dos intervalos.

	Returns:
		OVERLAP (incluye coincidencia exacta), CONTAINS (a contiene a b),
		CONTAINED (b contiene a a), BACK_TO_BACK (se tocan),
		ADJACENT (separados por 5 minutos o menos) o None
	"""
	a_start, a_end = interval_bounds(a)
	b_start, b_end = interval_bounds(b)

	if a_start < b_end and a_end > b_start:
		if a_start == b_start and a_end == b_end:
			return OVERLAP
		if a_start <= b_start and a_end >= b_end:
			return CONTAINS
		if b_start <= a_start and b_end >= a_end:
			return CONTAINED
		return OVERLAP

	if a_start == b_end or a_end == b_start:
		return BACK_TO_BACK

	gap = b_start - a_end if a_end < b_start else a_start - b_end
	if gap <= ADJACENT_GAP:
		return ADJACENT

	return None


def usable_appointments(appointments: Iterable[Any]) -> List[Tuple[Any, datetime, datetime]]:
	"""
	Blocking appointments with parsed UTC bounds.

	Cancelled appointments are dropped; malformed ones are logged and dropped.
	"""
	usable = []
	for appt in appointments or []:
		if not is_blocking(appt):
			continue
		try:
			start, end = interval_bounds(appt)
		except MalformedTimeValue as e:
			logger.warning("Ignoring appointment %s in overlap check: %s", item_id(appt), e)
			continue
		usable.append((appt, start, end))
	return usable


def check_overlap(
	appointments: Iterable[Any],
	start_datetime: Any,
	end_datetime: Any,
	exclude_appointment: Optional[str] = None
) -> Dict[str, Any]:
	"""
	Detecta overlaps de un rango con citas existentes.

	Args:
		appointments: citas del clínico (Appointment, dict o Document)
		start_datetime: inicio del rango a validar
		end_datetime: fin del rango a validar
		exclude_appointment: id de la cita a excluir (para ediciones)

	Returns:
		dict: {
			"has_overlap": bool,
			"overlapping_appointments": [ids],
			"skipped_appointments": [ids de citas mal formadas]
		}

	Algoritmo:
		1. Convertir el rango a UTC
		2. Descartar canceladas, la excluida y las mal formadas
		3. Condición de overlap: start < end_datetime AND end > start_datetime
	"""
	start, end = interval_bounds({"start": start_datetime, "end": end_datetime})

	overlapping = []
	skipped = []

	for appt in appointments or []:
		appt_id = item_id(appt)
		if exclude_appointment and appt_id == exclude_appointment:
			continue
		if not is_blocking(appt):
			continue

		try:
			appt_start, appt_end = interval_bounds(appt)
		except MalformedTimeValue as e:
			logger.warning("Ignoring appointment %s in overlap check: %s", appt_id, e)
			skipped.append(appt_id)
			continue

		if appt_start < end and appt_end > start:
			overlapping.append(appt_id)

	return {
		"has_overlap": bool(overlapping),
		"overlapping_appointments": overlapping,
		"skipped_appointments": skipped,
	}


def find_conflicts(
	candidate: Any,
	appointments: Iterable[Any],
	exclude_ids: Iterable[str] = ()
) -> List[Dict[str, Any]]:
	"""
	Every appointment the candidate conflicts with, ordered by start.

	Each entry: {"appointment": ..., "type": str, "overlap_minutes": int,
	"blocking": bool}. BACK_TO_BACK and ADJACENT are reported but not blocking.
	The candidate itself (same id) and appointments in exclude_ids are never
	reported.
	"""
	candidate_id = item_id(candidate)
	excluded = {str(i) for i in exclude_ids}
	conflicts = []

	for appt, _start, _end in usable_appointments(appointments):
		appt_id = item_id(appt)
		if (candidate_id and appt_id == candidate_id) or appt_id in excluded:
			continue

		conflict_type = classify_conflict(candidate, appt)
		if conflict_type is None:
			continue

		conflicts.append({
			"appointment": appt,
			"type": conflict_type,
			"overlap_minutes": overlap_minutes(candidate, appt),
			"blocking": conflict_type in BLOCKING_CONFLICTS,
		})

	conflicts.sort(key=lambda c: interval_bounds(c["appointment"])[0])
	return conflicts
