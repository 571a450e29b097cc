# Copyright (c) 2026, Clinic Scheduling Contributors
# For license information, please see license.txt

"""
Availability Exception DocType

Override de disponibilidad para una fecha concreta de un clínico. Las
excepciones de una fecha reemplazan los slots semanales de ese día; una
excepción marcada is_deleted cierra el día.
"""

import frappe
from frappe import _
from frappe.model.document import Document

from clinic_scheduling.clinic_scheduling.scheduling.availability import parse_time_of_day
from clinic_scheduling.clinic_scheduling.scheduling.exceptions import MalformedTimeValue
from clinic_scheduling.clinic_scheduling.scheduling.timezones import canonicalize_zone


class AvailabilityException(Document):
	"""
	Availability Exception with validations.

	Validations:
	- clinician and specific_date required
	- active exceptions require start_time < end_time
	- timezone normalized to an IANA zone
	- warn when it overlaps another active exception of the same date
	"""

	def validate(self) -> None:
		self._validate_required_fields()
		self._normalize_zone()
		if not self.is_deleted:
			self._validate_times()
			self._check_overlapping_exceptions()

	def _validate_required_fields(self) -> None:
		"""Valida campos requeridos."""
		if not self.clinician:
			frappe.throw(_("Clinician es requerido"))

		if not self.specific_date:
			frappe.throw(_("Specific Date es requerido"))

	def _normalize_zone(self) -> None:
		if self.timezone:
			self.timezone = canonicalize_zone(self.timezone)

	def _validate_times(self) -> None:
		"""Una excepción activa agrega un slot: requiere start_time < end_time."""
		try:
			start = parse_time_of_day(self.start_time, "start_time")
			end = parse_time_of_day(self.end_time, "end_time")
		except MalformedTimeValue:
			frappe.throw(_("Start Time y End Time son requeridos en una excepción activa"))

		if start >= end:
			frappe.throw(
				_("Start Time ({0}) debe ser menor que End Time ({1})").format(
					start.strftime("%H:%M"), end.strftime("%H:%M")
				)
			)

	def _check_overlapping_exceptions(self) -> None:
		"""Advierte si se solapa con otra excepción activa del mismo día. No bloquea."""
		existing = frappe.get_all(
			"Availability Exception",
			filters={
				"clinician": self.clinician,
				"specific_date": self.specific_date,
				"is_deleted": 0,
				"name": ["!=", self.name] if self.name else ["is", "set"]
			},
			fields=["name", "start_time", "end_time"]
		)

		new_start = parse_time_of_day(self.start_time)
		new_end = parse_time_of_day(self.end_time)

		for exc in existing:
			try:
				exc_start = parse_time_of_day(exc.start_time)
				exc_end = parse_time_of_day(exc.end_time)
			except MalformedTimeValue:
				continue

			if new_start < exc_end and new_end > exc_start:
				frappe.msgprint(
					_("Esta excepción ({0}-{1}) se solapa con {2} ({3}-{4})").format(
						new_start.strftime("%H:%M"), new_end.strftime("%H:%M"), exc.name,
						exc_start.strftime("%H:%M"), exc_end.strftime("%H:%M")
					),
					indicator="orange",
					alert=True
				)
