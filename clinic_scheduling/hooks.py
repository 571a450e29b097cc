app_name = "clinic_scheduling"
app_title = "Clinic Scheduling"
app_publisher = "Clinic Scheduling Contributors"
app_description = "Recurring clinician availability, booking slots and recurring appointment series"
app_email = "dev@clinic-scheduling.example"
app_license = "mit"

# Apps
# ------------------

# required_apps = []

# Document Events
# ---------------
# Appointment and Clinician validation lives in their DocType controllers

# doc_events = {}

# Scheduled Tasks
# ---------------
# Slots are computed on request; nothing runs on a schedule

# scheduler_events = {}
