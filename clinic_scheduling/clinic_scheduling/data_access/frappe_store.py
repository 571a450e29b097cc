"""
Frappe Scheduling Store

SchedulingStore backed by the Clinician, Availability Exception and
Appointment DocTypes.
Datetime fields are stored naive in UTC.
"""

from contextlib import contextmanager
from datetime import date, datetime
from typing import Any, Dict, Iterator, List, Optional

import frappe

from clinic_scheduling.clinic_scheduling.data_access.base import SchedulingStore
from clinic_scheduling.clinic_scheduling.scheduling.exceptions import StoreUnavailable
from clinic_scheduling.clinic_scheduling.scheduling.models import Appointment
from clinic_scheduling.clinic_scheduling.scheduling.timezones import to_utc

APPOINTMENT_FIELDS = [
	"name",
	"clinician",
	"client",
	"start_at",
	"end_at",
	"appointment_zone",
	"status",
	"recurring_group_id",
	"recurrence_rule",
	"notes",
	"appointment_type",
]

EXCEPTION_FIELDS = [
	"name",
	"specific_date",
	"start_time",
	"end_time",
	"timezone",
	"is_deleted",
]


def _to_db(value: datetime) -> datetime:
	return to_utc(value).replace(tzinfo=None)


def appointment_from_row(row: Any) -> Appointment:
	"""Appointment dataclass from a frappe row or Document."""
	return Appointment(
		id=row.get("name"),
		clinician_id=row.get("clinician"),
		client_id=row.get("client"),
		start_at=to_utc(row.get("start_at"), "start_at"),
		end_at=to_utc(row.get("end_at"), "end_at"),
		appointment_zone=row.get("appointment_zone") or None,
		status=row.get("status") or "scheduled",
		recurring_group_id=row.get("recurring_group_id") or None,
		recurrence_rule=row.get("recurrence_rule") or None,
		notes=row.get("notes"),
		appointment_type=row.get("appointment_type")
	)


def appointment_to_fields(appointment: Appointment) -> Dict[str, Any]:
	return {
		"clinician": appointment.clinician_id,
		"client": appointment.client_id,
		"start_at": _to_db(appointment.start_at),
		"end_at": _to_db(appointment.end_at),
		"appointment_zone": appointment.appointment_zone,
		"status": appointment.status,
		"recurring_group_id": appointment.recurring_group_id,
		"recurrence_rule": appointment.recurrence_rule,
		"notes": appointment.notes,
		"appointment_type": appointment.appointment_type,
	}


class FrappeStore(SchedulingStore):
	"""Store sobre la base de datos del sitio Frappe actual."""

	transactional = True

	def fetch_clinician_availability_record(self, clinician_id: str) -> Dict[str, Any]:
		try:
			return frappe.get_cached_doc("Clinician", clinician_id).as_dict()
		except frappe.db.OperationalError as e:
			raise StoreUnavailable(str(e)) from e

	def fetch_appointments(
		self,
		clinician_id: str,
		start_utc: datetime,
		end_utc: datetime
	) -> List[Appointment]:
		try:
			rows = frappe.get_all(
				"Appointment",
				filters={
					"clinician": clinician_id,
					"start_at": ["<", _to_db(end_utc)],
					"end_at": [">", _to_db(start_utc)],
				},
				fields=APPOINTMENT_FIELDS,
				order_by="start_at asc"
			)
		except frappe.db.OperationalError as e:
			raise StoreUnavailable(str(e)) from e

		# Las filas mal formadas se devuelven como dict crudo para que
		# el filtro de overlap las descarte y las registre
		appointments = []
		for row in rows:
			try:
				appointments.append(appointment_from_row(row))
			except ValueError:
				appointments.append(row)
		return appointments

	def fetch_availability_exceptions(
		self,
		clinician_id: str,
		start_date: date,
		end_date: date
	) -> List[Dict[str, Any]]:
		try:
			return frappe.get_all(
				"Availability Exception",
				filters={
					"clinician": clinician_id,
					"specific_date": ["between", [start_date, end_date]],
				},
				fields=EXCEPTION_FIELDS,
				order_by="specific_date asc, start_time asc"
			)
		except frappe.db.OperationalError as e:
			raise StoreUnavailable(str(e)) from e

	def get_appointment(self, appointment_id: str) -> Optional[Appointment]:
		try:
			if not frappe.db.exists("Appointment", appointment_id):
				return None
			return appointment_from_row(frappe.get_doc("Appointment", appointment_id))
		except frappe.db.OperationalError as e:
			raise StoreUnavailable(str(e)) from e

	def get_series(self, recurring_group_id: str) -> List[Appointment]:
		try:
			rows = frappe.get_all(
				"Appointment",
				filters={"recurring_group_id": recurring_group_id},
				fields=APPOINTMENT_FIELDS,
				order_by="start_at asc"
			)
		except frappe.db.OperationalError as e:
			raise StoreUnavailable(str(e)) from e
		return [appointment_from_row(row) for row in rows]

	def insert_appointment(self, appointment: Appointment) -> Appointment:
		doc = frappe.get_doc({"doctype": "Appointment", **appointment_to_fields(appointment)})
		doc.insert(ignore_permissions=True)
		return appointment.copy(id=doc.name)

	def save_appointment(self, appointment: Appointment) -> None:
		doc = frappe.get_doc("Appointment", appointment.id)
		doc.update(appointment_to_fields(appointment))
		# Citas del mismo lote que Appointment._validate_overlaps ignora
		doc.flags.series_batch = self.batch_ids
		doc.save(ignore_permissions=True)

	def delete_appointment(self, appointment_id: str) -> None:
		frappe.delete_doc("Appointment", appointment_id, ignore_permissions=True)

	@contextmanager
	def series_lock(self, key: str) -> Iterator[None]:
		"""In-process lock plus SELECT ... FOR UPDATE on the series rows."""
		with super().series_lock(key):
			frappe.db.get_values("Appointment", {"recurring_group_id": key}, "name", for_update=True)
			frappe.db.get_values("Appointment", {"name": key}, "name", for_update=True)
			yield

	@contextmanager
	def atomic(self) -> Iterator[None]:
		savepoint = "clinic_scheduling_mutation"
		frappe.db.savepoint(savepoint)
		try:
			yield
		except Exception:
			frappe.db.rollback(save_point=savepoint)
			raise
