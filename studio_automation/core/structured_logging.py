"""Structured logging helpers (PII-safe)."""

from typing import Any

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def mask_email(email: str | None) -> str:
    """Mask an address for log output: 'jan...@example.com'."""
    if not email:
        return ""
    local, _, domain = email.partition("@")
    prefix = local[:3] if local else ""
    return f"{prefix}...@{domain}" if domain else f"{prefix}..."


def build_log_context(
    *,
    workflow_type: str | None = None,
    subject_kind: str | None = None,
    subject_id: str | None = None,
    recipient: str | None = None,
    source: str | None = None,
) -> dict[str, Any]:
    """Return a PII-safe log context dict for dispatch logging."""
    context: dict[str, Any] = {}
    if workflow_type:
        context["workflow_type"] = workflow_type
    if subject_kind:
        context["subject_kind"] = subject_kind
    if subject_id:
        context["subject_id"] = subject_id
    if recipient:
        context["recipient"] = mask_email(recipient)
    if source:
        context["source"] = source
    return context
