"""Service request enums."""

from enum import Enum


class ServiceRequestStatus(str, Enum):
    """Lifecycle of an inbound service request (tattoo request form)."""

    NEW = "new"  # Submitted, nobody has looked at it yet
    REVIEWED = "reviewed"
    APPROVED = "approved"
    REJECTED = "rejected"
    CONVERTED = "converted"  # Became an appointment
