"""
Recurring Appointment Service

Creates recurring appointment series and applies edits/deletions to them with
scope single, future or all. Planning is pure; committing goes through a
SchedulingStore under a per-series lock and a transaction scope.
"""

import calendar
import logging
import uuid
from datetime import date, datetime, timedelta
from typing import Any, List, Optional, Tuple

import pytz

from .exceptions import AppointmentNotFound, PartialMutationFailure
from .models import RECURRENCE_RULES, Appointment, AppointmentChanges
from .timezones import canonicalize_zone, get_tz, localize_wall_clock

logger = logging.getLogger(__name__)

SCOPES = ("single", "future", "all")

MAX_SERIES_OCCURRENCES = 52
DEFAULT_SERIES_HORIZON = timedelta(days=365)
DEFAULT_APPOINTMENT_DURATION = timedelta(hours=1)


def _validate_scope(scope: str) -> str:
	if scope not in SCOPES:
		raise ValueError(f"Unknown scope {scope!r}, expected one of {', '.join(SCOPES)}")
	return scope


def _add_months(value: date, months: int) -> date:
	month_index = value.month - 1 + months
	year = value.year + month_index // 12
	month = month_index % 12 + 1
	day = min(value.day, calendar.monthrange(year, month)[1])
	return date(year, month, day)


def occurrence_dates(first: date, rule: str, count: Optional[int] = None, until: Optional[date] = None) -> List[date]:
	"""
	Fechas de una serie a partir de la primera ocurrencia.

	weekly = cada 7 días, biweekly = cada 14 días, monthly = mismo día del
	mes siguiente (recortado al último día del mes). Máximo 52 ocurrencias;
	sin count ni until el horizonte es un año.
	"""
	if rule not in RECURRENCE_RULES:
		raise ValueError(f"Unknown recurrence rule {rule!r}")

	limit = MAX_SERIES_OCCURRENCES if count is None else max(1, min(count, MAX_SERIES_OCCURRENCES))
	if until is None and count is None:
		until = first + DEFAULT_SERIES_HORIZON

	dates = []
	for k in range(limit):
		if rule == "weekly":
			current = first + timedelta(days=7 * k)
		elif rule == "biweekly":
			current = first + timedelta(days=14 * k)
		else:
			current = _add_months(first, k)

		if until is not None and current > until:
			break
		dates.append(current)

	return dates


def recurring_starts(
	first_start_local: datetime,
	zone: Any,
	rule: str,
	count: Optional[int] = None,
	until: Optional[date] = None
) -> List[datetime]:
	"""UTC starts of a series whose wall-clock time stays fixed in `zone` across DST."""
	tz = get_tz(zone)
	wall_time = first_start_local.time()
	return [
		localize_wall_clock(day, wall_time, tz).astimezone(pytz.UTC)
		for day in occurrence_dates(first_start_local.date(), rule, count, until)
	]


def build_series(
	template: Appointment,
	rule: str,
	count: Optional[int] = None,
	until: Optional[date] = None,
	group_id: Optional[str] = None
) -> List[Appointment]:
	"""
	Construye las citas de una serie a partir de la primera.

	Todas comparten recurring_group_id, recurrence_rule, zona y duración.
	Las ids quedan en None para que el store las asigne al insertar.
	"""
	zone = canonicalize_zone(template.appointment_zone)
	duration = template.end_at - template.start_at
	first_local = template.start_at.astimezone(get_tz(zone)).replace(tzinfo=None)
	group_id = group_id or str(uuid.uuid4())

	return [
		template.copy(
			id=None,
			start_at=start,
			end_at=start + duration,
			appointment_zone=zone,
			recurring_group_id=group_id,
			recurrence_rule=rule
		)
		for start in recurring_starts(first_local, zone, rule, count, until)
	]


def affected_occurrences(target: Appointment, series: List[Appointment], scope: str) -> List[Appointment]:
	"""
	Ocurrencias afectadas por una mutación, con el target primero.

	single -> solo el target; future -> start_at >= target.start_at;
	all -> toda la serie. Una cita sin serie siempre es solo el target.
	"""
	_validate_scope(scope)

	if scope == "single" or not target.recurring_group_id:
		return [target]

	members = [
		appt for appt in series
		if appt.recurring_group_id == target.recurring_group_id and appt.id != target.id
	]
	if scope == "future":
		members = [appt for appt in members if appt.start_at >= target.start_at]

	members.sort(key=lambda appt: appt.start_at)
	return [target] + members


def plan_update(
	target: Appointment,
	series: List[Appointment],
	scope: str,
	changes: AppointmentChanges,
	clinician_zone: Any = None
) -> List[Appointment]:
	"""
	Calcula las filas nuevas de una edición (sin escribir nada).

	Args:
		target: ocurrencia editada
		series: miembros de su serie (puede incluir al target)
		scope: "single", "future" o "all"
		changes: nuevos valores
		clinician_zone: zona actual del clínico (si la cita no tiene zona)

	Returns:
		list[Appointment] con el target primero

	Algoritmo:
		1. Seleccionar ocurrencias afectadas según scope
		2. Interpretar changes.start_local en la zona usada
		   (changes.zone, luego la zona del target, luego la del clínico)
		3. delta = nuevo inicio - inicio del target
		4. Sumar delta a start_at y end_at de todas las afectadas
		5. Si la hora cambió, fijar appointment_zone a la zona usada;
		   si no, conservar la zona de cada fila tal cual
		6. scope single desvincula al target de la serie
	"""
	affected = affected_occurrences(target, series, scope)

	zone_used = canonicalize_zone(
		changes.zone or target.appointment_zone or clinician_zone
	)

	delta = timedelta(0)
	time_edited = False
	if changes.start_local is not None:
		new_start = localize_wall_clock(
			changes.start_local.date(), changes.start_local.time(), zone_used
		).astimezone(pytz.UTC)
		delta = new_start - target.start_at
		time_edited = bool(delta) or changes.zone is not None

	updates = changes.field_updates()
	planned = []

	for appt in affected:
		values = dict(updates)
		if time_edited:
			values.update(
				start_at=appt.start_at + delta,
				end_at=appt.end_at + delta,
				appointment_zone=zone_used
			)
		if scope == "single" and appt.id == target.id:
			values.update(recurring_group_id=None, recurrence_rule=None)
		planned.append(appt.copy(**values))

	return planned


def plan_delete(target: Appointment, series: List[Appointment], scope: str) -> List[Appointment]:
	"""Occurrences to delete, target first."""
	return affected_occurrences(target, series, scope)


def _load(store: Any, target_id: str) -> Tuple[Appointment, List[Appointment]]:
	target = store.get_appointment(target_id)
	if target is None:
		raise AppointmentNotFound(target_id)
	series = store.get_series(target.recurring_group_id) if target.recurring_group_id else []
	return target, series


def _write_all(store: Any, action: str, scope: str, rows: List[Appointment]) -> int:
	"""
	Escribe todas las filas; si alguna falla lanza PartialMutationFailure.

	Se intentan todas las filas antes de reportar. Las filas se escriben
	dentro de store.batch(): una fila no entra en conflicto con el hueco
	que aún ocupa otra fila del mismo lote.
	"""
	failures = []
	succeeded = 0

	with store.batch(appt.id for appt in rows):
		for appt in rows:
			try:
				if action == "delete":
					store.delete_appointment(appt.id)
				else:
					store.save_appointment(appt)
				succeeded += 1
			except Exception as e:
				logger.error("Failed to %s appointment %s (%s scope): %s", action, appt.id, scope, e)
				failures.append({"appointment_id": appt.id, "error": str(e)})

	if failures:
		raise PartialMutationFailure(
			action,
			scope,
			succeeded,
			len(rows),
			failures,
			rolled_back=getattr(store, "transactional", False)
		)

	return succeeded


def update_appointments(store: Any, target_id: str, scope: str, changes: AppointmentChanges) -> int:
	"""
	Apply an edit to an appointment and, depending on scope, its series.

	Returns the number of rows written. Raises AppointmentNotFound,
	PartialMutationFailure, or whatever the store raises while reading.
	"""
	_validate_scope(scope)
	target = store.get_appointment(target_id)
	if target is None:
		raise AppointmentNotFound(target_id)

	with store.series_lock(target.recurring_group_id or target.id):
		with store.atomic():
			# Releer bajo el lock: otra mutación pudo cambiar la serie
			target, series = _load(store, target_id)
			clinician_zone = None
			if not target.appointment_zone:
				clinician_zone = store.fetch_clinician_zone(target.clinician_id)
			rows = plan_update(target, series, scope, changes, clinician_zone)
			count = _write_all(store, "update", scope, rows)

	logger.info("Updated %s appointments (%s scope) from %s", count, scope, target_id)
	return count


def delete_appointments(store: Any, target_id: str, scope: str) -> int:
	"""Delete an appointment and, depending on scope, its series. Returns rows deleted."""
	_validate_scope(scope)
	target = store.get_appointment(target_id)
	if target is None:
		raise AppointmentNotFound(target_id)

	with store.series_lock(target.recurring_group_id or target.id):
		with store.atomic():
			target, series = _load(store, target_id)
			rows = plan_delete(target, series, scope)
			count = _write_all(store, "delete", scope, rows)

	logger.info("Deleted %s appointments (%s scope) from %s", count, scope, target_id)
	return count


def commit_appointment_mutation(
	store: Any,
	scope: str,
	target_id: str,
	changes: Optional[AppointmentChanges] = None
) -> int:
	"""Update when changes are given, delete otherwise."""
	if changes is None:
		return delete_appointments(store, target_id, scope)
	return update_appointments(store, target_id, scope, changes)
