"""
Availability API Endpoints

Weekly availability of a clinician: read the pattern, project it onto a
date range, and replace it.
"""

import json
from typing import Any, Dict, List, Optional, Union

import frappe
from frappe import _

from clinic_scheduling.clinic_scheduling.data_access.frappe_store import FrappeStore
from clinic_scheduling.clinic_scheduling.scheduling.availability import (
	extract_pattern,
	get_availability_blocks as project_clinician_blocks,
	parse_time_of_day,
	pattern_to_record,
	record_zone,
)
from clinic_scheduling.clinic_scheduling.scheduling.exceptions import MalformedTimeValue
from clinic_scheduling.clinic_scheduling.scheduling.models import (
	DAYS,
	AvailabilitySlot,
	DayAvailability,
	WeeklyAvailabilityPattern,
)
from clinic_scheduling.clinic_scheduling.scheduling.timezones import canonicalize_zone

from clinic_scheduling.api.shared import check_rate_limit, validate_date_string, validate_docname

MAX_RANGE_DAYS = 62


def _pattern_dict(pattern: WeeklyAvailabilityPattern) -> Dict[str, Any]:
	return {
		day: {
			"is_available": pattern.days[day].is_available,
			"slots": [
				{
					"slot_number": slot.slot_number,
					"start_time": slot.start_time,
					"end_time": slot.end_time,
					"zone": slot.zone,
				}
				for slot in pattern.days[day].slots
			],
		}
		for day in DAYS
	}


@frappe.whitelist(allow_guest=True, methods=["GET"])
def get_weekly_availability(clinician: str) -> Dict[str, Any]:
	"""
	Patrón semanal de un clínico.

	Returns:
		dict: {"time_zone": str, "days": {"monday": {"is_available": bool, "slots": [...]}, ...}}
	"""
	clinician = validate_docname(clinician, "clinician")
	check_rate_limit("get_weekly_availability", limit=30, seconds=60, clinician=clinician)

	record = FrappeStore().fetch_clinician_availability_record(clinician)
	return {"time_zone": record_zone(record), "days": _pattern_dict(extract_pattern(record))}


@frappe.whitelist(allow_guest=True, methods=["GET"])
def get_availability_blocks(
	clinician: str,
	start_date: str,
	end_date: str,
	display_timezone: Optional[str] = None
) -> List[Dict[str, Any]]:
	"""
	Proyecta la disponibilidad semanal, con sus excepciones por fecha,
	sobre un rango de fechas.

	Rate limited: 30 requests per minute per requester and clinician.

	Args:
		clinician: nombre del Clinician
		start_date: fecha inicial (YYYY-MM-DD)
		end_date: fecha final inclusive (YYYY-MM-DD), máximo 62 días
		display_timezone: zona de salida (por defecto la del clínico)

	Returns:
		list[dict]: [{"id", "start", "end", "day_anchor", "source_slot_id", "slot_zone"}, ...]
	"""
	clinician = validate_docname(clinician, "clinician")
	check_rate_limit("get_availability_blocks", limit=30, seconds=60, clinician=clinician)

	start = validate_date_string(start_date, "start_date")
	end = validate_date_string(end_date, "end_date")

	if end < start:
		frappe.throw(_("end_date debe ser mayor o igual que start_date"))
	if (end - start).days > MAX_RANGE_DAYS:
		frappe.throw(_("El rango no puede superar {0} días").format(MAX_RANGE_DAYS))

	blocks = project_clinician_blocks(FrappeStore(), clinician, start, end, display_timezone)

	return [
		{
			"id": block.block_id,
			"start": block.start.isoformat(),
			"end": block.end.isoformat(),
			"day_anchor": block.day_anchor.isoformat(),
			"source_slot_id": block.source_slot_id,
			"slot_zone": block.slot_zone,
		}
		for block in blocks
	]


@frappe.whitelist(methods=["POST"])
def update_weekly_availability(clinician: str, slots: Union[str, List[Dict[str, Any]]]) -> Dict[str, Any]:
	"""
	Reemplaza el patrón semanal de un clínico.

	Args:
		clinician: nombre del Clinician
		slots: lista (o JSON) de {"day", "start_time", "end_time", "zone"};
			máximo 3 por día, zona opcional (por defecto la del clínico)

	Returns:
		dict: patrón guardado, igual que get_weekly_availability
	"""
	clinician = validate_docname(clinician, "clinician")
	if isinstance(slots, str):
		slots = json.loads(slots)

	doc = frappe.get_doc("Clinician", clinician)
	doc.check_permission("write")
	fallback_zone = canonicalize_zone(doc.clinician_time_zone)

	pattern = WeeklyAvailabilityPattern()
	by_day = {day: [] for day in DAYS}

	for idx, raw in enumerate(slots or [], 1):
		day = str(raw.get("day") or "").strip().lower()
		if day not in by_day:
			frappe.throw(_("Fila {0}: día inválido {1}").format(idx, raw.get("day")))
		try:
			start_time = parse_time_of_day(raw.get("start_time"), "start_time")
			end_time = parse_time_of_day(raw.get("end_time"), "end_time")
		except MalformedTimeValue as e:
			frappe.throw(_("Fila {0}: {1}").format(idx, e))
		if start_time >= end_time:
			frappe.throw(_("Fila {0}: start_time debe ser menor que end_time").format(idx))

		by_day[day].append(AvailabilitySlot(
			day=day,
			slot_number=len(by_day[day]) + 1,
			start_time=start_time.strftime("%H:%M"),
			end_time=end_time.strftime("%H:%M"),
			zone=canonicalize_zone(raw.get("zone"), fallback=fallback_zone)
		))

	for day, day_slots in by_day.items():
		pattern.days[day] = DayAvailability(day=day, is_available=bool(day_slots), slots=day_slots)

	try:
		record = pattern_to_record(pattern)
	except ValueError as e:
		frappe.throw(str(e))

	doc.update(record)
	doc.save()
	frappe.db.commit()

	return {"time_zone": fallback_zone, "days": _pattern_dict(extract_pattern(doc.as_dict()))}
