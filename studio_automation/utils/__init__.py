"""Utility modules."""

from studio_automation.utils.business_hours import BusinessHours, is_within_business_hours

__all__ = ["BusinessHours", "is_within_business_hours"]
