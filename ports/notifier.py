"""
Port interface for participant notifications.

Implementations: SESNotifierAdapter (adapters/)
"""

from __future__ import annotations

from typing import List, Protocol, runtime_checkable

from domain.models import Meeting, Participant


@runtime_checkable
class NotifierPort(Protocol):
    """Sends the post-meeting summary to participants."""

    async def send_meeting_summary(
        self, meeting: Meeting, room_title: str, recipients: List[Participant]
    ) -> int:
        """Email the meeting summary (with attachment) to *recipients*.

        Returns:
            Number of recipients the message was accepted for.

        Raises:
            ExternalServiceError: If the provider rejects the send.
        """
        ...
