"""Outbound notifier for automation emails.

The engine only needs `send(workflow_type, recipient, variables)`; which
channel actually delivers is the host's choice:

- `LoggingNotifier`: dry run, logs what would have been sent (no API key).
- `ResendNotifier`: renders the workflow's template and posts it to Resend.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Mapping, Protocol
from uuid import UUID

import httpx

from studio_automation.core.structured_logging import mask_email
from studio_automation.db.enums import WorkflowType
from studio_automation.services.http_service import RETRYABLE_STATUSES, request_with_retries

logger = logging.getLogger(__name__)

RESEND_SEND_URL = "https://api.resend.com/emails"
RESEND_MAX_ATTEMPTS = 3
RESEND_RETRY_BASE_DELAY = 0.5
RESEND_RETRY_MAX_DELAY = 4.0
RESEND_TIMEOUT_SECONDS = 20.0

# {{variable_name}}
VARIABLE_PATTERN = re.compile(r"\{\{(\w+)\}\}")


@dataclass(frozen=True)
class NotifyResult:
    success: bool
    error: str | None = None
    message_id: str | None = None


class Notifier(Protocol):
    async def send(
        self,
        workflow_type: WorkflowType,
        recipient: str,
        variables: Mapping[str, str],
        *,
        subject_id: UUID | None = None,
    ) -> NotifyResult:
        ...


@dataclass(frozen=True)
class EmailTemplate:
    subject: str
    html: str


TEMPLATES: dict[WorkflowType, EmailTemplate] = {
    WorkflowType.APPOINTMENT_REMINDER_24H: EmailTemplate(
        subject="Reminder: your {{appointment_type}} is {{time_until}}",
        html=(
            "<p>Hi {{customer_name}},</p>"
            "<p>This is a reminder that your {{appointment_type}} with {{artist_name}} "
            "is {{time_until}}, on {{appointment_date}} at {{appointment_time}} "
            "({{duration}}).</p>"
            "<p>See you soon!</p>"
        ),
    ),
    WorkflowType.APPOINTMENT_REMINDER_2H: EmailTemplate(
        subject="See you soon: your {{appointment_type}} starts {{time_until}}",
        html=(
            "<p>Hi {{customer_name}},</p>"
            "<p>Your {{appointment_type}} with {{artist_name}} starts {{time_until}}, "
            "at {{appointment_time}}.</p>"
        ),
    ),
    WorkflowType.AFTERCARE_INSTRUCTIONS: EmailTemplate(
        subject="Aftercare instructions for your new tattoo",
        html=(
            "<p>Hi {{customer_name}},</p>"
            "<p>Thanks for coming in today. Keep the bandage on for a few hours, wash gently "
            "with unscented soap, apply a thin layer of ointment and keep it out of the sun "
            "while it heals.</p>"
        ),
    ),
    WorkflowType.REVIEW_REQUEST: EmailTemplate(
        subject="How did your {{appointment_type}} go?",
        html=(
            "<p>Hi {{customer_name}},</p>"
            "<p>We hope you love your work from {{artist_name}}. "
            "Would you take a minute to leave us a review?</p>"
        ),
    ),
    WorkflowType.RE_ENGAGEMENT: EmailTemplate(
        subject="We miss you, {{customer_name}}",
        html=(
            "<p>Hi {{customer_name}},</p>"
            "<p>It has been a while since your last visit. Ready for your next piece?</p>"
        ),
    ),
    WorkflowType.ABANDONED_REQUEST_RECOVERY: EmailTemplate(
        subject="Still thinking about your tattoo?",
        html=(
            "<p>Hi {{customer_name}},</p>"
            "<p>You started a request with us: \"{{description}}\"</p>"
            "<p>You can check on it any time: <a href=\"{{tracking_url}}\">{{tracking_url}}</a></p>"
        ),
    ),
}


def render_template(template: EmailTemplate, variables: Mapping[str, str]) -> tuple[str, str]:
    """
    Substitute {{variable}} placeholders.

    Missing variables render as an empty string. Returns (subject, html).
    """

    def replace_var(match: re.Match) -> str:
        return variables.get(match.group(1), "")

    return (
        VARIABLE_PATTERN.sub(replace_var, template.subject),
        VARIABLE_PATTERN.sub(replace_var, template.html),
    )


def idempotency_key(workflow_type: WorkflowType, subject_id: UUID | None) -> str | None:
    if subject_id is None:
        return None
    return f"automation/{workflow_type.value}/{subject_id}"


class LoggingNotifier:
    """Dry-run notifier used when no email provider is configured."""

    async def send(
        self,
        workflow_type: WorkflowType,
        recipient: str,
        variables: Mapping[str, str],
        *,
        subject_id: UUID | None = None,
    ) -> NotifyResult:
        subject, _ = render_template(TEMPLATES[workflow_type], variables)
        logger.info(
            "[DRY RUN] Automation email %s to %s subject=%r",
            workflow_type.value,
            mask_email(recipient),
            subject,
        )
        return NotifyResult(success=True)


class ResendNotifier:
    """Sends rendered automation emails through the Resend REST API."""

    def __init__(
        self,
        api_key: str,
        from_email: str,
        *,
        templates: Mapping[WorkflowType, EmailTemplate] | None = None,
        send_url: str = RESEND_SEND_URL,
        transport: httpx.AsyncBaseTransport | None = None,
        base_delay: float = RESEND_RETRY_BASE_DELAY,
    ):
        if not api_key:
            raise ValueError("ResendNotifier requires an API key")
        self.api_key = api_key
        self.from_email = from_email
        self.templates = dict(templates or TEMPLATES)
        self.send_url = send_url
        self._transport = transport
        self._base_delay = base_delay

    async def send(
        self,
        workflow_type: WorkflowType,
        recipient: str,
        variables: Mapping[str, str],
        *,
        subject_id: UUID | None = None,
    ) -> NotifyResult:
        template = self.templates.get(workflow_type)
        if template is None:
            return NotifyResult(success=False, error=f"No template for {workflow_type.value}")

        subject, html = render_template(template, variables)
        payload = {
            "from": self.from_email,
            "to": [recipient],
            "subject": subject,
            "html": html,
        }
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        key = idempotency_key(workflow_type, subject_id)
        if key:
            headers["Idempotency-Key"] = key

        try:
            async with httpx.AsyncClient(
                timeout=RESEND_TIMEOUT_SECONDS, transport=self._transport
            ) as client:

                async def post() -> httpx.Response:
                    return await client.post(self.send_url, headers=headers, json=payload)

                response = await request_with_retries(
                    post,
                    max_attempts=RESEND_MAX_ATTEMPTS,
                    base_delay=self._base_delay,
                    max_delay=RESEND_RETRY_MAX_DELAY,
                    retry_statuses=RETRYABLE_STATUSES,
                )
        except httpx.RequestError as exc:
            logger.warning(
                "Resend request failed for %s to %s: %s",
                workflow_type.value,
                mask_email(recipient),
                type(exc).__name__,
            )
            return NotifyResult(success=False, error=f"Request failed: {type(exc).__name__}")

        return self._result_from_response(response)

    @staticmethod
    def _result_from_response(response: httpx.Response) -> NotifyResult:
        # Resend answers 409 when the idempotency key was already used: the email went out
        if 200 <= response.status_code < 300 or response.status_code == 409:
            message_id = None
            try:
                data = response.json()
            except ValueError:
                data = None
            if isinstance(data, dict) and isinstance(data.get("id"), str):
                message_id = data["id"]
            return NotifyResult(success=True, message_id=message_id)

        detail = response.text[:500] if response.text else ""
        return NotifyResult(
            success=False,
            error=f"Resend API error {response.status_code}: {detail}".rstrip(": "),
        )


def build_notifier(api_key: str, from_email: str) -> Notifier:
    """Resend when an API key is configured, otherwise a dry-run notifier."""
    if api_key:
        return ResendNotifier(api_key, from_email)
    logger.info("RESEND_API_KEY not set; automation emails run in dry-run mode")
    return LoggingNotifier()
