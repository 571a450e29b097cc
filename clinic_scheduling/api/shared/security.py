"""
Request Guards for Scheduling APIs

Throttling for the public slot endpoints and the booking endpoint, and
cleanup of the free-text fields stored on appointments.

Guest requests are identified by IP, logged-in requests by user. Throttle
counters are kept per clinician so that polling one clinician's calendar does
not lock a client out of another.
"""

import re
import time
from typing import Optional

import frappe
from frappe import _
from frappe.utils import cint

_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")
_LINE_BREAKS = re.compile(r"\s*[\r\n]+\s*")


def requester_id() -> str:
    """User for authenticated requests, first forwarded IP for guests."""
    user = getattr(frappe.session, "user", None)
    if user and user != "Guest":
        return f"user:{user}"

    request = getattr(frappe.local, "request", None)
    if not request:
        return "ip:local"

    forwarded_for = request.headers.get("X-Forwarded-For", "")
    ip = forwarded_for.split(",")[0].strip() or request.headers.get("X-Real-IP", "").strip()
    return f"ip:{ip or request.remote_addr or 'unknown'}"


def throttle_key(action: str, seconds: int, clinician: Optional[str] = None) -> str:
    """Counter key for the current fixed window of `seconds`."""
    window = int(time.time() // seconds)
    scope = clinician or "*"
    return f"clinic_scheduling:throttle:{action}:{scope}:{requester_id()}:{window}"


def check_rate_limit(
    action: str,
    limit: int = 10,
    seconds: int = 60,
    clinician: Optional[str] = None
) -> None:
    """
    Cuenta una petición y la rechaza si supera el límite de la ventana.

    Args:
        action: endpoint o acción limitada
        limit: peticiones permitidas por ventana
        seconds: duración de la ventana fija
        clinician: si se indica, el contador es por clínico

    Raises:
        frappe.TooManyRequestsError
    """
    key = throttle_key(action, seconds, clinician)
    count = cint(frappe.cache.get_value(key))

    if count >= limit:
        frappe.logger("clinic_scheduling").warning(
            f"Throttled {action} for {requester_id()} (clinician={clinician}, {limit}/{seconds}s)"
        )
        frappe.throw(
            _("Demasiadas solicitudes. Espere un momento e intente de nuevo."),
            frappe.TooManyRequestsError
        )

    frappe.cache.set_value(key, count + 1, expires_in_sec=seconds)


def clean_text(value: Optional[str], max_length: int, multiline: bool = False) -> Optional[str]:
    """
    Normaliza texto libre antes de guardarlo en una cita.

    Quita caracteres de control, colapsa saltos de línea salvo en campos
    multilínea (notes) y trunca a max_length. Vacío -> None.
    """
    if value is None:
        return None

    text = _CONTROL_CHARS.sub("", str(value))
    if not multiline:
        text = _LINE_BREAKS.sub(" ", text)
    text = text.strip()[:max_length].strip()

    return text or None
