# Copyright (c) 2026, Clinic Scheduling Contributors
# See license.txt

"""
Tests for Availability Exception DocType

Tests validation and the effect of exceptions on bookable slots.
Runs under `bench run-tests --app clinic_scheduling`.
"""

import unittest
from datetime import date, datetime

try:
	import frappe
	import pytz
	from frappe.tests.utils import FrappeTestCase
except ImportError:
	raise unittest.SkipTest("frappe is not installed; run with bench run-tests")

from clinic_scheduling.clinic_scheduling.data_access.frappe_store import FrappeStore
from clinic_scheduling.clinic_scheduling.scheduling.slots import get_available_slots

CLINICIAN = "Test Clinician Exception"
# Martes
TARGET = date(2030, 1, 8)
NOW = datetime(2030, 1, 1, 12, 0, tzinfo=pytz.UTC)


class TestAvailabilityException(FrappeTestCase):
	"""Tests for Availability Exception DocType."""

	def setUp(self):
		"""Set up test data before each test."""
		if not frappe.db.exists("Clinician", CLINICIAN):
			frappe.get_doc({
				"doctype": "Clinician",
				"clinician_name": CLINICIAN,
				"clinician_time_zone": "America/New_York",
				"clinician_availability_start_tuesday_1": "09:00:00",
				"clinician_availability_end_tuesday_1": "12:00:00",
			}).insert(ignore_permissions=True)

	def tearDown(self):
		frappe.db.rollback()

	def _exception(self, **fields):
		return frappe.get_doc({
			"doctype": "Availability Exception",
			"clinician": CLINICIAN,
			"specific_date": TARGET,
			**fields
		})

	def test_active_exception_requires_times(self):
		"""Test that an active exception needs start and end."""
		with self.assertRaises(frappe.ValidationError):
			self._exception(start_time="10:00:00").insert()

	def test_start_before_end(self):
		"""Test that start_time must be before end_time."""
		with self.assertRaises(frappe.ValidationError):
			self._exception(start_time="12:00:00", end_time="11:00:00").insert()

	def test_deleted_exception_needs_no_times(self):
		"""Test that a deleted exception only needs its date."""
		exception = self._exception(is_deleted=1)
		exception.insert()
		self.assertTrue(frappe.db.exists("Availability Exception", exception.name))

	def test_zone_canonicalized(self):
		"""Test that an abbreviation is stored as an IANA zone."""
		exception = self._exception(start_time="10:00:00", end_time="11:00:00", timezone="CST")
		exception.insert()
		self.assertEqual(exception.timezone, "America/Chicago")

	def test_exception_replaces_weekday_slots(self):
		"""Test that slots for the date come from the exception."""
		self._exception(start_time="14:00:00", end_time="15:00:00").insert()

		slots = get_available_slots(FrappeStore(), CLINICIAN, TARGET, "America/New_York", NOW)

		self.assertEqual([slot.start_local for slot in slots], ["14:00"])

	def test_deleted_exception_closes_day(self):
		"""Test that a deleted exception leaves the date without slots."""
		self._exception(is_deleted=1).insert()
		self.assertEqual(get_available_slots(FrappeStore(), CLINICIAN, TARGET, "America/New_York", NOW), [])


def run_tests():
	"""Run all tests in this module."""
	unittest.main()
