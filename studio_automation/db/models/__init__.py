"""SQLAlchemy ORM models."""

from studio_automation.db.models.appointments import Appointment
from studio_automation.db.models.automation import AutomationDispatch, AutomationSetting
from studio_automation.db.models.customers import Artist, Customer
from studio_automation.db.models.requests import ServiceRequest

__all__ = [
    "Appointment",
    "Artist",
    "AutomationDispatch",
    "AutomationSetting",
    "Customer",
    "ServiceRequest",
]
