# Copyright (c) 2026, Clinic Scheduling Contributors
# For license information, please see license.txt

"""
Appointment DocType

A single clinician appointment, optionally a member of a recurring series.
Datetimes are stored naive in UTC; appointment_zone is the zone the
appointment was booked in.
"""

import frappe
from frappe import _
from frappe.model.document import Document
from frappe.utils import add_to_date, get_datetime

from clinic_scheduling.clinic_scheduling.data_access.frappe_store import FrappeStore
from clinic_scheduling.clinic_scheduling.scheduling.models import NON_BLOCKING_STATUSES, RECURRENCE_RULES
from clinic_scheduling.clinic_scheduling.scheduling.overlap import find_conflicts
from clinic_scheduling.clinic_scheduling.scheduling.timezones import canonicalize_zone


class Appointment(Document):
	"""
	Appointment DocType with scheduling validation.

	Validations:
	- clinician required
	- start_at < end_at
	- recurrence_rule valid and consistent with recurring_group_id
	- no overlap with other blocking appointments of the clinician
	"""

	def validate(self) -> None:
		"""
		Validación antes de guardar.

		Ejecuta:
		1. Validar clinician requerido
		2. Validar consistencia de fechas
		3. Normalizar appointment_zone en citas nuevas
		4. Validar regla de recurrencia
		5. Bloquear si se solapa con otra cita
		"""
		self._validate_clinician()
		self._validate_datetime_consistency()
		self._normalize_zone()
		self._validate_recurrence()
		self._validate_overlaps()

	def _validate_clinician(self) -> None:
		"""Valida que clinician esté presente."""
		if not self.clinician:
			frappe.throw(_("Clinician es requerido"))

	def _validate_datetime_consistency(self) -> None:
		"""Valida que start_at < end_at."""
		if not self.start_at or not self.end_at:
			frappe.throw(_("Start At y End At son requeridos"))

		if get_datetime(self.start_at) >= get_datetime(self.end_at):
			frappe.throw(_("Start At debe ser menor que End At"))

	def _normalize_zone(self) -> None:
		"""
		Canonicaliza la zona solo al crear la cita.

		En ediciones la zona se conserva tal cual; los cambios de zona los
		hace el servicio de recurrencia.
		"""
		if self.is_new() and self.appointment_zone:
			self.appointment_zone = canonicalize_zone(self.appointment_zone)

	def _validate_recurrence(self) -> None:
		if self.recurrence_rule and self.recurrence_rule not in RECURRENCE_RULES:
			frappe.throw(_("Regla de recurrencia inválida: {0}").format(self.recurrence_rule))

		if self.recurring_group_id and not self.recurrence_rule:
			frappe.throw(_("Una cita recurrente requiere Recurrence Rule"))

		if self.recurrence_rule and not self.recurring_group_id:
			frappe.throw(_("Recurrence Rule requiere Recurring Group ID"))

	def _validate_overlaps(self) -> None:
		"""
		Bloquea la cita si se solapa con otra cita activa del clínico.

		Las citas back-to-back o separadas por menos de 5 minutos solo
		generan un aviso.
		Las citas de flags.series_batch (mutación de serie en curso) no
		cuentan como conflicto.
		"""
		if (self.status or "").lower() in NON_BLOCKING_STATUSES:
			return

		candidate = {
			"name": self.name if not self.is_new() else None,
			"start": get_datetime(self.start_at),
			"end": get_datetime(self.end_at),
		}
		existing = FrappeStore().fetch_appointments(
			self.clinician,
			add_to_date(candidate["start"], minutes=-5),
			add_to_date(candidate["end"], minutes=5)
		)
		conflicts = find_conflicts(candidate, existing, exclude_ids=self.flags.get("series_batch") or ())

		blocking = [c for c in conflicts if c["blocking"]]
		if blocking:
			names = ", ".join(str(getattr(c["appointment"], "id", "")) for c in blocking)
			frappe.throw(
				_("El horario se solapa con otra(s) cita(s) del clínico: {0}").format(names),
				title=_("Conflicto de agenda")
			)

		if conflicts:
			frappe.msgprint(
				_("Hay citas inmediatamente antes o después de este horario."),
				indicator="blue",
				alert=True
			)
