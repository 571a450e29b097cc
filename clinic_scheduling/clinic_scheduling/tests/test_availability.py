"""
Tests for scheduling/availability.py

Tests weekly pattern extraction from fixed columns and projection of the
pattern onto calendar blocks, including DST transitions and per-date
exceptions.
"""

import unittest
from datetime import date, datetime, time, timedelta

import pytz

from clinic_scheduling.clinic_scheduling.scheduling.availability import (
	extract_exceptions,
	extract_pattern,
	get_availability_blocks,
	parse_time_of_day,
	pattern_to_record,
	project_blocks,
	record_zone,
	slots_for_date,
)
from clinic_scheduling.clinic_scheduling.scheduling.exceptions import MalformedTimeValue
from clinic_scheduling.clinic_scheduling.scheduling.models import (
	AvailabilitySlot,
	DayAvailability,
	WeeklyAvailabilityPattern,
)
from clinic_scheduling.clinic_scheduling.tests.memory_store import MemoryStore

LOGGER = "clinic_scheduling.clinic_scheduling.scheduling.availability"


def make_record(zone="America/New_York", **columns):
	"""Registro de clínico con columnas cortas: monday_1=("09:00", "17:00"[, zone])."""
	record = {"clinician_time_zone": zone}
	for key, value in columns.items():
		day, n = key.rsplit("_", 1)
		record[f"clinician_availability_start_{day}_{n}"] = value[0]
		record[f"clinician_availability_end_{day}_{n}"] = value[1]
		if len(value) > 2:
			record[f"clinician_availability_timezone_{day}_{n}"] = value[2]
	return record


def hours(block):
	return (block.end - block.start).total_seconds() / 3600


class TestParseTimeOfDay(unittest.TestCase):
	"""Tests for parse_time_of_day."""

	def test_string_formats(self):
		self.assertEqual(parse_time_of_day("09:00"), time(9, 0))
		self.assertEqual(parse_time_of_day("17:30:00"), time(17, 30))
		self.assertEqual(parse_time_of_day("7:05"), time(7, 5))

	def test_timedelta_since_midnight(self):
		self.assertEqual(parse_time_of_day(timedelta(hours=9, minutes=15)), time(9, 15))

	def test_time_drops_seconds(self):
		self.assertEqual(parse_time_of_day(time(9, 30, 15)), time(9, 30))

	def test_malformed(self):
		for raw in ("24:00", "9am", "", "12:60", None, timedelta(days=1), 900):
			with self.assertRaises(MalformedTimeValue):
				parse_time_of_day(raw)


class TestExtractPattern(unittest.TestCase):
	"""Tests for extract_pattern."""

	def test_basic_slot(self):
		pattern = extract_pattern(make_record(monday_1=("09:00:00", "17:00:00")))

		self.assertTrue(pattern.days["monday"].is_available)
		self.assertFalse(pattern.days["tuesday"].is_available)

		slot = pattern.days["monday"].slots[0]
		self.assertEqual(slot.start_time, "09:00")
		self.assertEqual(slot.end_time, "17:00")
		self.assertEqual(slot.zone, "America/New_York")
		self.assertEqual(slot.slot_id, "monday-1")

	def test_all_seven_days_present(self):
		pattern = extract_pattern({})
		self.assertEqual(len(pattern.days), 7)
		self.assertTrue(pattern.is_empty)

	def test_incomplete_and_malformed_slots_excluded(self):
		record = make_record(
			monday_1=("09:00", None),
			monday_2=("", "12:00"),
			monday_3=("9am", "12:00"),
			tuesday_1=("14:00", "13:00"),
			tuesday_2=("10:00", "10:00"),
			tuesday_3=("10:00", "11:00"),
		)
		pattern = extract_pattern(record)

		self.assertFalse(pattern.days["monday"].is_available)
		self.assertEqual([s.slot_number for s in pattern.days["tuesday"].slots], [3])

	def test_timedelta_values(self):
		record = make_record(friday_2=(timedelta(hours=8), timedelta(hours=12, minutes=30)))
		slot = extract_pattern(record).days["friday"].slots[0]
		self.assertEqual((slot.start_time, slot.end_time, slot.slot_number), ("08:00", "12:30", 2))

	def test_slot_zone_overrides_record_zone(self):
		record = make_record(monday_1=("09:00", "12:00", "PST"), monday_2=("13:00", "15:00"))
		slots = extract_pattern(record).days["monday"].slots
		self.assertEqual(slots[0].zone, "America/Los_Angeles")
		self.assertEqual(slots[1].zone, "America/New_York")

	def test_invalid_slot_zone_uses_record_zone(self):
		record = make_record(monday_1=("09:00", "12:00", "Not/AZone"))
		self.assertEqual(extract_pattern(record).days["monday"].slots[0].zone, "America/New_York")

	def test_record_zone_stored_as_array(self):
		record = make_record(zone=["America/Denver"], monday_1=("09:00", "12:00"))
		self.assertEqual(extract_pattern(record).days["monday"].slots[0].zone, "America/Denver")

	def test_missing_record_zone_uses_default(self):
		record = make_record(zone=None, monday_1=("09:00", "12:00"))
		self.assertEqual(record_zone(record), "America/Chicago")
		self.assertEqual(extract_pattern(record).days["monday"].slots[0].zone, "America/Chicago")

	def test_legacy_timezone_column(self):
		record = {"clinician_timezone": "Europe/Madrid"}
		self.assertEqual(record_zone(record), "Europe/Madrid")

	def test_overlapping_slots_are_kept(self):
		record = make_record(monday_1=("09:00", "12:00"), monday_2=("11:00", "14:00"))
		self.assertEqual(len(extract_pattern(record).days["monday"].slots), 2)


class TestPatternToRecord(unittest.TestCase):
	"""Tests for pattern_to_record."""

	def test_columns_written(self):
		record = make_record(wednesday_1=("13:00", "15:00", "Europe/London"), wednesday_2=("08:00", "10:00"))
		columns = pattern_to_record(extract_pattern(record))

		self.assertEqual(len(columns), 63)
		# Renumbered in start order
		self.assertEqual(columns["clinician_availability_start_wednesday_1"], "08:00")
		self.assertEqual(columns["clinician_availability_timezone_wednesday_2"], "Europe/London")
		self.assertIsNone(columns["clinician_availability_start_wednesday_3"])
		self.assertIsNone(columns["clinician_availability_start_monday_1"])

	def test_more_than_three_slots_rejected(self):
		slots = [
			AvailabilitySlot("monday", n, f"{8 + n:02d}:00", f"{8 + n:02d}:30", "UTC")
			for n in range(1, 5)
		]
		pattern = WeeklyAvailabilityPattern()
		pattern.days["monday"] = DayAvailability("monday", True, slots)

		with self.assertRaises(ValueError):
			pattern_to_record(pattern)


class TestProjectBlocks(unittest.TestCase):
	"""Tests for project_blocks."""

	def test_single_week(self):
		pattern = extract_pattern(make_record(monday_1=("09:00", "17:00")))
		blocks = project_blocks(pattern, date(2026, 10, 26), date(2026, 11, 1), "America/New_York")

		self.assertEqual(len(blocks), 1)
		block = blocks[0]
		self.assertEqual(block.block_id, "monday-1-2026-10-26")
		self.assertEqual(block.day_anchor, date(2026, 10, 26))
		self.assertEqual((block.start.hour, block.end.hour), (9, 17))
		self.assertEqual(block.start.tzinfo.zone, "America/New_York")

	def test_converted_to_display_zone(self):
		pattern = extract_pattern(make_record(tuesday_1=("09:00", "10:00")))
		block = project_blocks(pattern, date(2026, 10, 27), date(2026, 10, 27), "America/Los_Angeles")[0]

		self.assertEqual(block.start.hour, 6)
		self.assertEqual(block.start.astimezone(pytz.UTC), datetime(2026, 10, 27, 13, 0, tzinfo=pytz.UTC))

	def test_display_date_can_differ_from_anchor(self):
		pattern = extract_pattern(make_record(monday_1=("22:00", "23:00", "America/Los_Angeles")))
		block = project_blocks(pattern, date(2026, 10, 26), date(2026, 10, 26), "Asia/Tokyo")[0]

		self.assertEqual(block.day_anchor, date(2026, 10, 26))
		self.assertEqual(block.start.date(), date(2026, 10, 27))
		self.assertEqual(block.start.hour, 14)

	def test_each_slot_uses_its_own_zone(self):
		record = make_record(tuesday_1=("09:00", "10:00"), tuesday_2=("09:00", "10:00", "America/Chicago"))
		blocks = project_blocks(extract_pattern(record), date(2026, 10, 27), date(2026, 10, 27), "UTC")

		self.assertEqual([b.start.hour for b in blocks], [13, 14])
		self.assertEqual([b.slot_zone for b in blocks], ["America/New_York", "America/Chicago"])

	def test_ordered_by_date_then_slot(self):
		record = make_record(
			monday_2=("13:00", "14:00"),
			monday_1=("09:00", "10:00"),
			wednesday_1=("09:00", "10:00"),
		)
		blocks = project_blocks(extract_pattern(record), date(2026, 10, 26), date(2026, 11, 4), "America/New_York")

		self.assertEqual(
			[b.block_id for b in blocks],
			[
				"monday-1-2026-10-26",
				"monday-2-2026-10-26",
				"wednesday-1-2026-10-28",
				"monday-1-2026-11-02",
				"monday-2-2026-11-02",
				"wednesday-1-2026-11-04",
			]
		)

	def test_deterministic(self):
		pattern = extract_pattern(make_record(monday_1=("09:00", "12:00"), friday_3=("15:00", "18:00", "EST")))
		first = project_blocks(pattern, date(2026, 10, 1), date(2026, 10, 31), "Europe/London")
		second = project_blocks(pattern, date(2026, 10, 1), date(2026, 10, 31), "Europe/London")
		self.assertEqual(first, second)

	def test_spring_forward_block_loses_an_hour(self):
		# 2026-03-08: New York clocks jump from 02:00 to 03:00
		pattern = extract_pattern(make_record(sunday_1=("01:00", "09:00")))
		block = project_blocks(pattern, date(2026, 3, 8), date(2026, 3, 8), "America/New_York")[0]
		self.assertEqual(hours(block), 7)

	def test_fall_back_block_gains_an_hour(self):
		# 2026-11-01: New York clocks go back from 02:00 to 01:00
		pattern = extract_pattern(make_record(sunday_1=("00:00", "08:00")))
		block = project_blocks(pattern, date(2026, 11, 1), date(2026, 11, 1), "America/New_York")[0]
		self.assertEqual(hours(block), 9)

	def test_daytime_block_on_dst_day_keeps_wall_clock(self):
		pattern = extract_pattern(make_record(sunday_1=("09:00", "17:00")))
		for day in (date(2026, 3, 8), date(2026, 11, 1)):
			block = project_blocks(pattern, day, day, "America/New_York")[0]
			self.assertEqual(block.start.hour, 9)
			self.assertEqual(hours(block), 8)

	def test_same_wall_clock_across_transition_weeks(self):
		pattern = extract_pattern(make_record(monday_1=("09:00", "10:00")))
		blocks = project_blocks(pattern, date(2026, 3, 2), date(2026, 3, 9), "UTC")

		# 09:00 EST then 09:00 EDT
		self.assertEqual([b.start.hour for b in blocks], [14, 13])

	def test_malformed_slot_is_skipped(self):
		pattern = WeeklyAvailabilityPattern()
		pattern.days["monday"] = DayAvailability("monday", True, [
			AvailabilitySlot("monday", 1, "bad", "10:00", "UTC"),
			AvailabilitySlot("monday", 2, "11:00", "12:00", "UTC"),
		])

		with self.assertLogs(LOGGER, level="WARNING"):
			blocks = project_blocks(pattern, date(2026, 10, 26), date(2026, 10, 26), "UTC")

		self.assertEqual([b.source_slot_id for b in blocks], ["monday-2"])

	def test_overlapping_slots_both_projected(self):
		record = make_record(monday_1=("09:00", "12:00"), monday_2=("11:00", "14:00"))
		blocks = project_blocks(extract_pattern(record), date(2026, 10, 26), date(2026, 10, 26), "UTC")
		self.assertEqual(len(blocks), 2)
		self.assertLess(blocks[1].start, blocks[0].end)

	def test_empty_range(self):
		pattern = extract_pattern(make_record(monday_1=("09:00", "17:00")))
		self.assertEqual(project_blocks(pattern, date(2026, 10, 27), date(2026, 10, 26), "UTC"), [])

	def test_blocks_from_store_default_to_clinician_zone(self):
		store = MemoryStore(make_record(zone="Europe/London", monday_1=("09:00", "10:00")))
		blocks = get_availability_blocks(store, "dr-ruiz", date(2026, 10, 26), date(2026, 10, 26))
		self.assertEqual(blocks[0].start.tzinfo.zone, "Europe/London")
		self.assertEqual(blocks[0].start.hour, 9)

	def test_exception_block(self):
		pattern = extract_pattern(make_record(tuesday_1=("09:00", "17:00")))
		exceptions = extract_exceptions([
			{"name": "EX1", "specific_date": "2026-10-27", "start_time": "09:00", "end_time": "10:00",
				"timezone": "Europe/Madrid"},
		])

		blocks = project_blocks(pattern, date(2026, 10, 27), date(2026, 10, 27), "UTC", exceptions)

		self.assertEqual(len(blocks), 1)
		self.assertEqual(blocks[0].source_slot_id, "exception-EX1")
		self.assertEqual(blocks[0].slot_zone, "Europe/Madrid")
		# CET desde el 25 de octubre
		self.assertEqual(blocks[0].start, datetime(2026, 10, 27, 8, 0, tzinfo=pytz.UTC))

	def test_exceptions_from_store(self):
		store = MemoryStore(make_record(monday_1=("09:00", "10:00")), exceptions=[
			{"name": "EX1", "specific_date": "2026-10-26", "is_deleted": 1},
			{"name": "EX2", "specific_date": "2026-11-30", "start_time": "11:00", "end_time": "12:00"},
		])

		blocks = get_availability_blocks(store, "dr-ruiz", date(2026, 10, 26), date(2026, 11, 2))

		self.assertEqual([b.day_anchor for b in blocks], [date(2026, 11, 2)])
		self.assertEqual(blocks[0].source_slot_id, "monday-1")


class TestExtractExceptions(unittest.TestCase):
	"""Tests for extract_exceptions and slots_for_date."""

	def test_grouped_by_date(self):
		exceptions = extract_exceptions([
			{"name": "EX1", "specific_date": "2026-10-27", "start_time": "14:00:00", "end_time": "16:00:00"},
			{"name": "EX2", "specific_date": date(2026, 10, 27), "start_time": timedelta(hours=9),
				"end_time": timedelta(hours=10, minutes=30), "timezone": "Europe/Madrid"},
			{"name": "EX3", "specific_date": "2026-10-28", "is_deleted": "1"},
		], "America/Chicago")

		self.assertEqual(sorted(exceptions), [date(2026, 10, 27), date(2026, 10, 28)])

		first, second = exceptions[date(2026, 10, 27)]
		self.assertEqual((first.start_time, first.end_time, first.zone), ("14:00", "16:00", "America/Chicago"))
		self.assertEqual((second.start_time, second.end_time, second.zone), ("09:00", "10:30", "Europe/Madrid"))
		self.assertEqual(first.slot_id, "exception-EX1")

		deleted = exceptions[date(2026, 10, 28)][0]
		self.assertTrue(deleted.is_deleted)
		self.assertIsNone(deleted.start_time)

	def test_malformed_rows_are_ignored(self):
		rows = [
			{"name": "BAD1", "specific_date": "someday", "start_time": "09:00", "end_time": "10:00"},
			{"name": "BAD2", "specific_date": "2026-10-27", "start_time": "25:00", "end_time": "26:00"},
			{"name": "BAD3", "specific_date": "2026-10-27", "start_time": "12:00", "end_time": "11:00"},
		]
		with self.assertLogs(LOGGER, level="WARNING") as logs:
			exceptions = extract_exceptions(rows)

		self.assertEqual(exceptions, {})
		self.assertEqual(len(logs.records), 3)

	def test_slots_for_date(self):
		pattern = extract_pattern(make_record(monday_1=("09:00", "17:00")))
		monday = date(2026, 10, 26)
		exceptions = extract_exceptions([
			{"name": "LATE", "specific_date": "2026-10-26", "start_time": "15:00", "end_time": "16:00"},
			{"name": "GONE", "specific_date": "2026-10-26", "is_deleted": 1},
			{"name": "EARLY", "specific_date": "2026-10-26", "start_time": "08:00", "end_time": "09:00"},
		])

		self.assertEqual(
			[s.slot_id for s in slots_for_date(pattern, monday, exceptions)],
			["exception-EARLY", "exception-LATE"]
		)
		self.assertEqual([s.slot_id for s in slots_for_date(pattern, monday)], ["monday-1"])
		self.assertEqual(
			[s.slot_id for s in slots_for_date(pattern, date(2026, 11, 2), exceptions)],
			["monday-1"]
		)


def run_tests():
	"""Run all tests in this module."""
	unittest.main()
