"""
Appointment API Endpoints

Whitelisted functions for frontend/external use:
- Bookable slots for a clinician (guest access, rate limited)
- Booking single or recurring appointments
- Editing and deleting appointments with series scope
"""

from datetime import timedelta
from typing import Any, Dict, List, Optional

import frappe
import pytz
from frappe import _
from frappe.utils import cint

from clinic_scheduling.clinic_scheduling.data_access.frappe_store import FrappeStore
from clinic_scheduling.clinic_scheduling.scheduling.exceptions import (
	AppointmentNotFound,
	PartialMutationFailure,
	StoreUnavailable,
)
from clinic_scheduling.clinic_scheduling.scheduling.models import Appointment, AppointmentChanges
from clinic_scheduling.clinic_scheduling.scheduling.recurrence import (
	build_series,
	delete_appointments,
	update_appointments,
)
from clinic_scheduling.clinic_scheduling.scheduling.slots import (
	find_bookable_slot,
	get_available_slots as compute_available_slots,
)
from clinic_scheduling.clinic_scheduling.scheduling.timezones import canonicalize_zone, localize_wall_clock

from clinic_scheduling.api.shared import (
	check_rate_limit,
	clean_text,
	validate_date_string,
	validate_docname,
	validate_local_datetime_string,
	validate_recurrence_rule,
	validate_scope,
)

logger = frappe.logger("clinic_scheduling")


def _appointment_dict(appointment: Appointment) -> Dict[str, Any]:
	return {
		"name": appointment.id,
		"clinician": appointment.clinician_id,
		"client": appointment.client_id,
		"start_at": appointment.start_at.isoformat(),
		"end_at": appointment.end_at.isoformat(),
		"appointment_zone": appointment.appointment_zone,
		"status": appointment.status,
		"recurring_group_id": appointment.recurring_group_id,
		"recurrence_rule": appointment.recurrence_rule,
		"notes": appointment.notes,
		"appointment_type": appointment.appointment_type,
	}


def _throw_partial_failure(e: PartialMutationFailure) -> None:
	frappe.log_error(
		f"{e}\nFailures: {e.failures}",
		"Appointment Series Mutation"
	)
	frappe.throw(
		_("Solo se aplicaron {0} de {1} citas ({2}). No se guardó ningún cambio.").format(
			e.succeeded, e.total, e.scope
		)
	)


@frappe.whitelist(allow_guest=True, methods=["GET"])
def get_available_slots(clinician: str, date: str, client_timezone: str) -> List[Dict[str, Any]]:
	"""
	Obtiene los slots reservables de un clínico para una fecha.

	Rate limited: 30 requests per minute per requester and clinician.

	Args:
		clinician: nombre del Clinician
		date: fecha de la agenda del clínico (YYYY-MM-DD); cada slot trae su
			calendar_date en la zona del cliente, que puede ser otra
		client_timezone: zona del cliente; etiquetas y ventana de reserva se calculan en ella

	Returns:
		list[dict]: [
			{
				"start_local": "09:00",
				"end_local": "10:00",
				"zone": "America/New_York",
				"calendar_date": "2026-10-27",
				"start_utc": "2026-10-27T13:00:00+00:00",
				...
			},
			...
		]

	Example:
		```javascript
		frappe.call({
			method: "clinic_scheduling.api.appointments.get_available_slots",
			args: {
				clinician: "Dr. Ana Ruiz",
				date: "2026-10-27",
				client_timezone: "America/New_York"
			},
			callback: function(r) {
				console.log(r.message);
			}
		});
		```
	"""
	clinician = validate_docname(clinician, "clinician")
	check_rate_limit("get_available_slots", limit=30, seconds=60, clinician=clinician)

	target_date = validate_date_string(date, "date")

	if not frappe.db.exists("Clinician", clinician):
		frappe.throw(_("Clinician '{0}' no existe").format(clinician))

	try:
		slots = compute_available_slots(FrappeStore(), clinician, target_date, client_timezone)
	except StoreUnavailable as e:
		frappe.log_error(f"Error in get_available_slots: {str(e)}", "API Error")
		frappe.throw(_("El servicio de agenda no está disponible. Intente de nuevo."))

	return [slot.as_dict() for slot in slots]


@frappe.whitelist(methods=["POST"])
def book_appointment(
	clinician: str,
	start: str,
	client_timezone: str,
	client: Optional[str] = None,
	duration_minutes: Optional[int] = None,
	recurrence_rule: Optional[str] = None,
	occurrences: Optional[int] = None,
	notes: Optional[str] = None,
	appointment_type: Optional[str] = None
) -> List[Dict[str, Any]]:
	"""
	Reserva una cita (o una serie recurrente) en un slot disponible.

	Rate limited: 10 bookings per 10 minutes per requester and clinician.

	Args:
		clinician: nombre del Clinician
		start: inicio en hora de pared del cliente (YYYY-MM-DD HH:MM:SS)
		client_timezone: zona en la que se interpreta start
		client: identificador del cliente (opcional)
		duration_minutes: duración; por defecto la granularidad del clínico
		recurrence_rule: weekly | biweekly | monthly (opcional)
		occurrences: número de ocurrencias de la serie (máximo 52)
		notes: notas (opcional)
		appointment_type: tipo de cita (opcional)

	Returns:
		list[dict]: citas creadas, la primera es la solicitada

	Algoritmo:
		1. Interpretar start en la zona del cliente
		2. Verificar que coincide con un slot disponible (cualquier fecha del
		   patrón cuyo slot caiga en ese instante)
		3. Construir la serie si hay regla de recurrencia
		4. Insertar todas las citas (cada una valida overlaps)
	"""
	clinician = validate_docname(clinician, "clinician")
	check_rate_limit("book_appointment", limit=10, seconds=600, clinician=clinician)
	start_local = validate_local_datetime_string(start, "start")
	recurrence_rule = validate_recurrence_rule(recurrence_rule)
	notes = clean_text(notes, 2000, multiline=True)
	appointment_type = clean_text(appointment_type, 140)
	client = clean_text(client, 140)
	zone = canonicalize_zone(client_timezone)

	if not frappe.db.exists("Clinician", clinician):
		frappe.throw(_("Clinician '{0}' no existe").format(clinician))

	store = FrappeStore()

	try:
		start_at = localize_wall_clock(start_local.date(), start_local.time(), zone).astimezone(pytz.UTC)

		# start_local es hora del cliente; el slot puede venir de otro día del patrón
		if find_bookable_slot(store, clinician, start_at, zone) is None:
			frappe.throw(_("El horario seleccionado ya no está disponible"))

		if duration_minutes:
			duration = timedelta(minutes=cint(duration_minutes))
		else:
			duration = timedelta(minutes=store.fetch_booking_settings(clinician).step_minutes)

		template = Appointment(
			id=None,
			clinician_id=clinician,
			client_id=client,
			start_at=start_at,
			end_at=start_at + duration,
			appointment_zone=zone,
			notes=notes,
			appointment_type=appointment_type
		)

		if recurrence_rule:
			rows = build_series(template, recurrence_rule, count=cint(occurrences) or None)
		else:
			rows = [template]

		created = [store.insert_appointment(row) for row in rows]
		frappe.db.commit()

		logger.info(f"Booked {len(created)} appointment(s) for {clinician} starting {start_at.isoformat()}")
		return [_appointment_dict(appt) for appt in created]

	except frappe.ValidationError:
		raise
	except Exception as e:
		frappe.log_error(f"Error in book_appointment: {str(e)}", "API Error")
		frappe.throw(_("Error al reservar la cita: {0}").format(str(e)))


@frappe.whitelist(methods=["POST"])
def update_appointment(
	appointment: str,
	scope: str = "single",
	start: Optional[str] = None,
	timezone: Optional[str] = None,
	status: Optional[str] = None,
	notes: Optional[str] = None,
	appointment_type: Optional[str] = None
) -> Dict[str, Any]:
	"""
	Edita una cita y, según scope, su serie.

	Args:
		appointment: nombre del Appointment editado
		scope: single (desvincula la cita) | future | all
		start: nuevo inicio en hora de pared (opcional)
		timezone: zona en la que se interpreta start (por defecto la de la cita)
		status, notes, appointment_type: se aplican igual a todas las afectadas

	Returns:
		dict: {"updated": int, "scope": str}
	"""
	appointment = validate_docname(appointment, "appointment")
	scope = validate_scope(scope)

	changes = AppointmentChanges(
		start_local=validate_local_datetime_string(start, "start") if start else None,
		zone=canonicalize_zone(timezone) if timezone else None,
		status=clean_text(status, 40),
		notes=clean_text(notes, 2000, multiline=True),
		appointment_type=clean_text(appointment_type, 140)
	)

	try:
		updated = update_appointments(FrappeStore(), appointment, scope, changes)
	except AppointmentNotFound:
		frappe.throw(_("Appointment '{0}' no existe").format(appointment), frappe.DoesNotExistError)
	except PartialMutationFailure as e:
		_throw_partial_failure(e)

	frappe.db.commit()
	return {"updated": updated, "scope": scope}


@frappe.whitelist(methods=["POST"])
def delete_appointment(appointment: str, scope: str = "single") -> Dict[str, Any]:
	"""
	Elimina una cita y, según scope, su serie.

	Returns:
		dict: {"deleted": int, "scope": str}

	Example:
		```javascript
		frappe.call({
			method: "clinic_scheduling.api.appointments.delete_appointment",
			args: {appointment: "a1b2c3d4e5", scope: "future"}
		});
		```
	"""
	appointment = validate_docname(appointment, "appointment")
	scope = validate_scope(scope)

	try:
		deleted = delete_appointments(FrappeStore(), appointment, scope)
	except AppointmentNotFound:
		frappe.throw(_("Appointment '{0}' no existe").format(appointment), frappe.DoesNotExistError)
	except PartialMutationFailure as e:
		_throw_partial_failure(e)

	frappe.db.commit()
	return {"deleted": deleted, "scope": scope}
