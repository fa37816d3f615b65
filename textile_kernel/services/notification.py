"""
NotificationBridge -- how the kernel talks back to people.

Responsibility:
    Tells reviewers that a request needs a decision (with approve/reject
    callback data attached) and tells an actor what happened to their
    request.  The chat transport is outside the kernel; it implements
    ``NotificationBridge``.  Two implementations ship here:

    * ``RecordingNotifier`` -- in-memory outbox, for tests and dry runs.
    * ``LoggingNotifier`` -- writes every message to the structured log.

Callback data format: ``approve:<request_id>`` / ``reject:<request_id>``.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Protocol

from textile_kernel.domain.approval import ApprovalRequest
from textile_kernel.logging_config import get_logger

logger = get_logger("services.notification")


class Decision(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"


@dataclass(frozen=True)
class CallbackButton:
    label: str
    data: str


@dataclass(frozen=True)
class ReviewPrompt:
    request_id: str
    text: str
    buttons: tuple[CallbackButton, ...] = field(default_factory=tuple)


def callback_data(decision: Decision, request_id: str) -> str:
    return f"{decision.value}:{request_id}"


def parse_callback(data: str) -> tuple[Decision, str] | None:
    """
    Correlate callback data back to a decision and request id.

    Returns None for data this kernel did not produce.
    """
    verb, sep, request_id = (data or "").partition(":")
    if not sep or not request_id:
        return None
    try:
        return Decision(verb), request_id
    except ValueError:
        return None


def build_review_prompt(request: ApprovalRequest, summary: str) -> ReviewPrompt:
    text = (
        f"Approval needed\n"
        f"Request: {request.request_id}\n"
        f"From: {request.actor_label or request.actor_id}\n"
        f"Action: {summary}\n"
        f"Reason: {request.risk_reason}"
    )
    return ReviewPrompt(
        request_id=request.request_id,
        text=text,
        buttons=(
            CallbackButton("Approve", callback_data(Decision.APPROVE, request.request_id)),
            CallbackButton("Reject", callback_data(Decision.REJECT, request.request_id)),
        ),
    )


class NotificationBridge(Protocol):
    def notify_reviewers(self, request: ApprovalRequest, summary: str) -> None: ...

    def notify_actor(self, actor_id: str, text: str) -> None: ...


class RecordingNotifier:
    """Keeps every outgoing message in memory."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.review_prompts: list[ReviewPrompt] = []
        self.actor_messages: list[tuple[str, str]] = []

    def notify_reviewers(self, request: ApprovalRequest, summary: str) -> None:
        with self._lock:
            self.review_prompts.append(build_review_prompt(request, summary))

    def notify_actor(self, actor_id: str, text: str) -> None:
        with self._lock:
            self.actor_messages.append((actor_id, text))

    def messages_for(self, actor_id: str) -> list[str]:
        with self._lock:
            return [text for who, text in self.actor_messages if who == actor_id]


class LoggingNotifier:
    """Emits notifications as log records."""

    def notify_reviewers(self, request: ApprovalRequest, summary: str) -> None:
        prompt = build_review_prompt(request, summary)
        logger.info(
            "review_requested",
            extra={
                "request_id": request.request_id,
                "summary": summary,
                "callbacks": [b.data for b in prompt.buttons],
            },
        )

    def notify_actor(self, actor_id: str, text: str) -> None:
        logger.info("actor_notified", extra={"recipient": actor_id, "text": text})
