# Copyright (c) 2026, Clinic Scheduling Contributors
# For license information, please see license.txt

"""
Clinician DocType

Clinician profile holding the weekly availability (three fixed slots per
weekday, each with its own timezone) and the booking settings.
"""

import frappe
from frappe import _
from frappe.model.document import Document

from clinic_scheduling.clinic_scheduling.scheduling.availability import (
	END_COLUMN,
	START_COLUMN,
	ZONE_COLUMN,
	extract_pattern,
	parse_time_of_day,
)
from clinic_scheduling.clinic_scheduling.scheduling.exceptions import MalformedTimeValue
from clinic_scheduling.clinic_scheduling.scheduling.models import DAYS, SLOTS_PER_DAY
from clinic_scheduling.clinic_scheduling.scheduling.timezones import canonicalize_zone

GRANULARITY_OPTIONS = ("hour", "half-hour")


class Clinician(Document):
	"""
	Clinician with availability validation.

	Validations:
	- clinician_time_zone canonical
	- booking settings within range
	- each slot: both times present, start < end
	Overlapping slots on the same day are allowed and only produce a warning.
	"""

	def validate(self) -> None:
		self._validate_time_zone()
		self._validate_booking_settings()
		self._validate_slots()
		self._warn_overlapping_slots()

	def _validate_time_zone(self) -> None:
		"""Canonicaliza la zona del clínico (abreviaturas, mayúsculas, vacíos)."""
		self.clinician_time_zone = canonicalize_zone(self.clinician_time_zone)

	def _validate_booking_settings(self) -> None:
		if self.clinician_time_granularity and self.clinician_time_granularity not in GRANULARITY_OPTIONS:
			frappe.throw(_("Granularidad inválida: {0}").format(self.clinician_time_granularity))

		min_days = self.clinician_min_notice_days or 0
		max_days = self.clinician_max_advance_days or 0

		if min_days < 0 or max_days < 0:
			frappe.throw(_("Los días de anticipación no pueden ser negativos"))

		if self.clinician_max_advance_days and max_days < min_days:
			frappe.throw(_("Max Advance Days debe ser mayor o igual que Min Notice Days"))

	def _validate_slots(self) -> None:
		"""
		Valida cada franja de la semana.

		Una franja vacía (sin inicio ni fin) es válida. La zona de la franja se
		canonicaliza con la zona del clínico como respaldo.
		"""
		for day in DAYS:
			for n in range(1, SLOTS_PER_DAY + 1):
				start_field = START_COLUMN.format(day=day, n=n)
				end_field = END_COLUMN.format(day=day, n=n)
				zone_field = ZONE_COLUMN.format(day=day, n=n)
				label = f"{day.title()} {n}"

				start, end = self.get(start_field), self.get(end_field)
				if not start and not end:
					continue

				if not start or not end:
					frappe.throw(_("{0}: Start Time y End Time son requeridos").format(label))

				try:
					start_time = parse_time_of_day(start, start_field)
					end_time = parse_time_of_day(end, end_field)
				except MalformedTimeValue as e:
					frappe.throw(_("{0}: hora inválida ({1})").format(label, e))

				if start_time >= end_time:
					frappe.throw(_("{0}: Start Time debe ser menor que End Time").format(label))

				if self.get(zone_field):
					self.set(zone_field, canonicalize_zone(self.get(zone_field), fallback=self.clinician_time_zone))

	def _warn_overlapping_slots(self) -> None:
		pattern = extract_pattern(self.as_dict())

		for day in DAYS:
			slots = sorted(pattern.days[day].slots, key=lambda s: s.start_time)
			for previous, current in zip(slots, slots[1:]):
				if previous.zone == current.zone and current.start_time < previous.end_time:
					frappe.msgprint(
						_("{0}: las franjas {1} y {2} se solapan").format(
							day.title(), previous.slot_number, current.slot_number
						),
						indicator="orange",
						alert=True
					)
