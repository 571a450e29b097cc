"""
In-memory SchedulingStore for tests, with failure injection.
"""

from contextlib import contextmanager

from clinic_scheduling.clinic_scheduling.data_access.base import SchedulingStore
from clinic_scheduling.clinic_scheduling.scheduling.exceptions import StoreUnavailable
from clinic_scheduling.clinic_scheduling.scheduling.overlap import find_conflicts


class MemoryStore(SchedulingStore):
	"""
	Store de pruebas respaldado por un dict.

	fail_on: ids cuyas escrituras fallan
	unavailable: si es True toda lectura lanza StoreUnavailable
	operations: [("save" | "delete" | "insert", id), ...] en orden
	exceptions: filas de excepciones de disponibilidad
	validate_overlaps: si es True, save rechaza solapes como el DocType,
		ignorando las citas de batch_ids
	"""

	def __init__(self, record=None, appointments=(), exceptions=(), validate_overlaps=False):
		super().__init__()
		self.record = dict(record or {})
		self.appointments = {appt.id: appt for appt in appointments}
		self.exceptions = list(exceptions)
		self.validate_overlaps = validate_overlaps
		self.fail_on = set()
		self.unavailable = False
		self.operations = []
		self.locked_keys = []
		self._next_id = 1

	def _check_available(self):
		if self.unavailable:
			raise StoreUnavailable("store offline")

	def fetch_clinician_availability_record(self, clinician_id):
		self._check_available()
		return dict(self.record)

	def fetch_appointments(self, clinician_id, start_utc, end_utc):
		self._check_available()
		return sorted(
			(
				appt for appt in self.appointments.values()
				if appt.clinician_id == clinician_id and appt.start_at < end_utc and appt.end_at > start_utc
			),
			key=lambda appt: appt.start_at
		)

	def fetch_availability_exceptions(self, clinician_id, start_date, end_date):
		self._check_available()
		return [
			row for row in self.exceptions
			if str(start_date) <= str(row.get("specific_date")) <= str(end_date)
		]

	def get_appointment(self, appointment_id):
		self._check_available()
		return self.appointments.get(appointment_id)

	def get_series(self, recurring_group_id):
		self._check_available()
		return sorted(
			(appt for appt in self.appointments.values() if appt.recurring_group_id == recurring_group_id),
			key=lambda appt: appt.start_at
		)

	def insert_appointment(self, appointment):
		new_id = f"APT-{self._next_id:05d}"
		self._next_id += 1
		stored = appointment.copy(id=new_id)
		self.appointments[new_id] = stored
		self.operations.append(("insert", new_id))
		return stored

	def save_appointment(self, appointment):
		if appointment.id in self.fail_on:
			raise RuntimeError(f"write rejected for {appointment.id}")
		if appointment.id not in self.appointments:
			raise KeyError(appointment.id)
		if self.validate_overlaps and appointment.is_blocking:
			others = [a for a in self.appointments.values() if a.clinician_id == appointment.clinician_id]
			blocking = [
				c for c in find_conflicts(appointment, others, exclude_ids=self.batch_ids)
				if c["blocking"]
			]
			if blocking:
				raise ValueError(f"{appointment.id} overlaps {blocking[0]['appointment'].id}")
		self.appointments[appointment.id] = appointment
		self.operations.append(("save", appointment.id))

	def delete_appointment(self, appointment_id):
		if appointment_id in self.fail_on:
			raise RuntimeError(f"delete rejected for {appointment_id}")
		del self.appointments[appointment_id]
		self.operations.append(("delete", appointment_id))

	@contextmanager
	def series_lock(self, key):
		self.locked_keys.append(key)
		with super().series_lock(key):
			yield


class TransactionalMemoryStore(MemoryStore):
	"""MemoryStore whose atomic() restores the previous state on error."""

	transactional = True

	@contextmanager
	def atomic(self):
		snapshot = dict(self.appointments)
		try:
			yield
		except Exception:
			self.appointments = snapshot
			raise
