"""
Scheduling Errors

Exceptions raised by the scheduling engine. Malformed zones never surface
here: the canonicalizer absorbs them and logs a warning.
"""

from typing import Any, Dict, List, Optional


class SchedulingError(Exception):
	"""Base para todos los errores del motor de agendamiento."""
	pass


class MalformedTimeValue(SchedulingError, ValueError):
	"""A time or datetime value that cannot be parsed."""

	def __init__(self, value: Any, field: Optional[str] = None):
		self.value = value
		self.field = field
		label = f"{field}: " if field else ""
		super().__init__(f"{label}cannot parse time value {value!r}")


class StoreUnavailable(SchedulingError):
	"""The backing store could not be read or written."""
	pass


class AppointmentNotFound(SchedulingError, LookupError):
	"""The target appointment of a mutation does not exist."""

	def __init__(self, appointment_id: str):
		self.appointment_id = appointment_id
		super().__init__(f"Appointment {appointment_id} not found")


class PartialMutationFailure(SchedulingError):
	"""
	Una mutación de serie en la que al menos una fila falló.

	Attributes:
		action: "update" o "delete"
		scope: "single", "future" o "all"
		succeeded: filas escritas correctamente
		total: filas que se intentaron
		failures: [{"appointment_id": str, "error": str}, ...]
		rolled_back: True si el store deshizo las escrituras exitosas
	"""

	def __init__(
		self,
		action: str,
		scope: str,
		succeeded: int,
		total: int,
		failures: Optional[List[Dict[str, str]]] = None,
		rolled_back: bool = False
	):
		self.action = action
		self.scope = scope
		self.succeeded = succeeded
		self.total = total
		self.failures = failures or []
		self.rolled_back = rolled_back
		state = ", rolled back" if rolled_back else ""
		super().__init__(
			f"{action} ({scope}) applied to {succeeded} of {total} appointments{state}"
		)
