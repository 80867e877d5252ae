"""Propose-then-send email flow built on the deferred action registry."""

from __future__ import annotations

import html
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol, Sequence

from pydantic import Field

from .handles import consumption_record, new_handle, resolve
from .history import Turn
from .memory.schema import ToolOutputModel

LOGGER = logging.getLogger(__name__)

PROPOSE_EMAIL_TOOL_NAMES: tuple[str, ...] = ("propose-email", "proposeEmailTool")
SEND_EMAIL_TOOL_NAMES: tuple[str, ...] = ("send-email", "sendEmailTool")

DEFAULT_SENDER = "Assistant <onboarding@resend.dev>"
DEFAULT_SUBJECT = "Message from your assistant"

MISSING_TRANSPORT_MESSAGE = (
    "Email sending is not configured. Ask the user to configure an email transport "
    "before sending messages."
)
INVALID_HANDLE_MESSAGE = (
    "Invalid or expired email handle. Please propose the email again and request "
    "user approval before sending."
)


class ProposedEmail(ToolOutputModel):
    """Draft email awaiting (or holding) the user's approval."""

    email_handle: str = Field(min_length=1)
    to: str
    subject: str
    body: str
    approved: Optional[bool] = None


class EmailTransport(Protocol):
    def send(self, *, sender: str, to: str, subject: str, text: str, html: str) -> None: ...


@dataclass(slots=True)
class EmailSendResult:
    """Outcome of a send-by-handle call; recorded as the send tool's result."""

    ok: bool
    response: str
    handle: str

    def to_dict(self) -> Dict[str, Any]:
        if self.ok:
            return consumption_record(self.handle, response=self.response)
        return {"handle": self.handle, "status": "failed", "response": self.response}


def to_html(body: str) -> str:
    """Escape ``body`` for HTML and keep its line breaks."""
    return html.escape(body, quote=True).replace("&#x27;", "&#39;").replace("\n", "<br />")


def propose_email(to: str, subject: str, body: str) -> Dict[str, Any]:
    """Build a propose result carrying a fresh handle."""
    proposal = ProposedEmail(email_handle=new_handle(), to=to, subject=subject, body=body)
    return proposal.to_wire()


def find_proposed_email(history: Sequence[Turn] | None, handle: str) -> Optional[ProposedEmail]:
    """Locate an approved, unsent draft by handle."""
    proposal = resolve(
        history,
        handle,
        tool_names=PROPOSE_EMAIL_TOOL_NAMES,
        schema=ProposedEmail,
        handle_field="email_handle",
        consumed_by=SEND_EMAIL_TOOL_NAMES,
    )
    if proposal is not None and proposal.approved is False:
        return None
    return proposal


def send_email(
    history: Sequence[Turn] | None,
    handle: str,
    transport: EmailTransport | None,
    *,
    sender: str = DEFAULT_SENDER,
) -> EmailSendResult:
    """Deliver the draft identified by ``handle`` through ``transport``."""
    if transport is None:
        LOGGER.warning("Email send requested without a configured transport")
        return EmailSendResult(ok=False, response=MISSING_TRANSPORT_MESSAGE, handle=handle)

    proposal = find_proposed_email(history, handle)
    if proposal is None:
        return EmailSendResult(ok=False, response=INVALID_HANDLE_MESSAGE, handle=handle)

    try:
        transport.send(
            sender=sender,
            to=proposal.to,
            subject=proposal.subject or DEFAULT_SUBJECT,
            text=proposal.body,
            html=to_html(proposal.body),
        )
    except Exception as error:  # noqa: BLE001 - delivery failures are reported to the agent
        LOGGER.warning("Email delivery for handle %s failed: %s", handle, error)
        return EmailSendResult(ok=False, response=f"Email delivery failed: {error}", handle=handle)

    LOGGER.info("Sent email for handle %s", handle)
    return EmailSendResult(ok=True, response="Email sent successfully", handle=handle)
