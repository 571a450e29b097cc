"""
Base Scheduling Store

Defines the interface that every store used by the scheduling services
must implement.
"""

import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import date, datetime
from typing import Any, Dict, FrozenSet, Iterable, Iterator, List, Optional

from clinic_scheduling.clinic_scheduling.scheduling.availability import record_zone
from clinic_scheduling.clinic_scheduling.scheduling.models import Appointment, BookingSettings
from clinic_scheduling.clinic_scheduling.scheduling.slots import booking_settings_from_record


class SchedulingStore(ABC):
	"""
	Interfaz base para stores de agendamiento.

	Los métodos de lectura deben lanzar StoreUnavailable si el backend no
	responde; el motor la propaga sin reintentar.
	"""

	# True si atomic() deshace las escrituras cuando algo falla
	transactional = False

	def __init__(self):
		self._locks_guard = threading.Lock()
		self._series_locks: Dict[str, threading.Lock] = {}
		self.batch_ids: FrozenSet[str] = frozenset()

	@abstractmethod
	def fetch_clinician_availability_record(self, clinician_id: str) -> Dict[str, Any]:
		"""
		Registro del clínico con las columnas fijas de disponibilidad.

		Returns:
			dict: columnas clinician_availability_*, clinician_time_zone y
			configuración de agendamiento (puede estar incompleto)
		"""
		pass

	@abstractmethod
	def fetch_appointments(
		self,
		clinician_id: str,
		start_utc: datetime,
		end_utc: datetime
	) -> List[Appointment]:
		"""Citas del clínico que intersectan [start_utc, end_utc)."""
		pass

	@abstractmethod
	def get_appointment(self, appointment_id: str) -> Optional[Appointment]:
		"""Una cita por id, o None si no existe."""
		pass

	@abstractmethod
	def get_series(self, recurring_group_id: str) -> List[Appointment]:
		"""Todas las citas de una serie, ordenadas por start_at."""
		pass

	@abstractmethod
	def insert_appointment(self, appointment: Appointment) -> Appointment:
		"""Inserta una cita y la retorna con su id asignada."""
		pass

	@abstractmethod
	def save_appointment(self, appointment: Appointment) -> None:
		"""Sobrescribe una cita existente."""
		pass

	@abstractmethod
	def delete_appointment(self, appointment_id: str) -> None:
		"""Elimina una cita."""
		pass

	def fetch_availability_exceptions(
		self,
		clinician_id: str,
		start_date: date,
		end_date: date
	) -> List[Dict[str, Any]]:
		"""
		Excepciones de disponibilidad del clínico con specific_date en el rango.

		Returns:
			list[dict]: name, specific_date, start_time, end_time, timezone,
			is_deleted. Un store sin excepciones retorna [].
		"""
		return []

	def fetch_booking_settings(self, clinician_id: str) -> BookingSettings:
		return booking_settings_from_record(self.fetch_clinician_availability_record(clinician_id))

	def fetch_clinician_zone(self, clinician_id: str) -> str:
		return record_zone(self.fetch_clinician_availability_record(clinician_id))

	@contextmanager
	def series_lock(self, key: str) -> Iterator[None]:
		"""Serialize mutations of one series within this process."""
		with self._locks_guard:
			lock = self._series_locks.setdefault(key, threading.Lock())
		with lock:
			yield

	@contextmanager
	def batch(self, appointment_ids: Iterable[str]) -> Iterator[None]:
		"""
		Marca las citas que se escriben juntas en una mutación de serie.

		Mientras dura, batch_ids contiene esos ids; el store no debe tratar
		como conflicto el solape con una cita del mismo lote, porque todas se
		desplazan el mismo delta.
		"""
		previous = self.batch_ids
		self.batch_ids = frozenset(str(i) for i in appointment_ids if i)
		try:
			yield
		finally:
			self.batch_ids = previous

	@contextmanager
	def atomic(self) -> Iterator[None]:
		"""Transaction scope for a mutation. No-op unless the store supports transactions."""
		yield
