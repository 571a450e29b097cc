"""
Scheduling Services Module

This module provides core business logic for clinician scheduling:
- Timezone canonicalization (timezones.py)
- Weekly availability pattern and block projection (availability.py)
- Overlap detection (overlap.py)
- Bookable slot generation (slots.py)
- Recurring series creation and mutation (recurrence.py)

Nothing in this package imports frappe; persistence goes through
clinic_scheduling.clinic_scheduling.data_access.
"""
