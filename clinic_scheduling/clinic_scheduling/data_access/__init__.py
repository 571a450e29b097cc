"""
Data Access Module

Stores used by the scheduling services:
- SchedulingStore interface, series lock and transaction scope (base.py)
- Frappe implementation over the Clinician and Appointment DocTypes (frappe_store.py)
"""
