"""
Amazon SES notifier adapter.

Implements NotifierPort by sending one raw MIME message per meeting: a
plain-text rendering of the summary plus the full summary as a JSON
attachment.
"""

from __future__ import annotations

import asyncio
import json
from email.mime.application import MIMEApplication
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr
from typing import List, Optional

import boto3
from botocore.exceptions import ClientError

from domain.models import ActionItem, Meeting, Participant
from shared_utils.constants import Defaults, LogScope
from shared_utils.error_handler import ExternalServiceError
from shared_utils.logging_utils import get_scoped_logger


logger = get_scoped_logger(LogScope.ADAPTER)


class SESNotifierAdapter:
    """Amazon SES implementation of NotifierPort."""

    def __init__(
        self,
        sender: str,
        region: str = Defaults.AWS_REGION,
        endpoint_url: str = "",
        ses_client: Optional[object] = None,
    ) -> None:
        self._sender = sender
        client_kwargs: dict = {"region_name": region}
        if endpoint_url:
            client_kwargs["endpoint_url"] = endpoint_url
        self._client = ses_client or boto3.client("ses", **client_kwargs)

    async def send_meeting_summary(
        self, meeting: Meeting, room_title: str, recipients: List[Participant]
    ) -> int:
        addresses = [
            formataddr((p.name or "Participant", p.email))
            for p in recipients
            if p.email and "@" in p.email
        ]
        if meeting.summary is None or not addresses:
            logger.info(
                "ses_notification_skipped",
                meeting_id=meeting.meeting_id,
                has_summary=meeting.summary is not None,
                recipients=len(addresses),
            )
            return 0

        message = self._build_message(meeting, room_title, addresses)
        await asyncio.to_thread(self._send, message, addresses, meeting.meeting_id)
        logger.info(
            "ses_notification_sent",
            meeting_id=meeting.meeting_id,
            recipients=len(addresses),
        )
        return len(addresses)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _send(self, message: MIMEMultipart, addresses: List[str], meeting_id: str) -> None:
        try:
            self._client.send_raw_email(
                Source=self._sender,
                Destinations=addresses,
                RawMessage={"Data": message.as_string()},
            )
        except ClientError as exc:
            logger.error("ses_send_failed", meeting_id=meeting_id, error=str(exc))
            raise ExternalServiceError(
                "SES", f"Failed to send meeting summary: {exc}"
            ) from exc

    def _build_message(
        self, meeting: Meeting, room_title: str, addresses: List[str]
    ) -> MIMEMultipart:
        summary = meeting.summary
        message = MIMEMultipart("mixed")
        message["Subject"] = f"Meeting Summary: {room_title}"
        message["From"] = self._sender
        message["To"] = ", ".join(addresses)

        lines = [summary.title or room_title, "", summary.content]
        for section in summary.sections:
            lines.extend(["", section.title])
            lines.extend(f"- {point.text}" for point in section.points)
        if summary.action_items:
            lines.extend(["", "Action items"])
            for item in summary.action_items:
                if isinstance(item, ActionItem):
                    lines.append(f"- {item.title} ({item.owner})")
                else:
                    lines.append(f"- {item}")
        if summary.decisions:
            lines.extend(["", "Decisions"])
            lines.extend(f"- {d}" for d in summary.decisions)
        message.attach(MIMEText("\n".join(lines), "plain", "utf-8"))

        attachment = MIMEApplication(
            json.dumps(summary.model_dump(mode="json"), indent=2).encode("utf-8"),
            _subtype="json",
        )
        attachment.add_header(
            "Content-Disposition",
            "attachment",
            filename=f"meeting-summary-{meeting.meeting_id}.json",
        )
        message.attach(attachment)
        return message
