"""
clinicschedule - Appointment availability and scheduling engine for a dental clinic.
"""

__version__ = "0.1.0"
