"""
Participation Service
Join, leave and QR attendance confirmation for a (user, event) pair
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from eventhub.errors import (
    ALREADY_CONFIRMED,
    ALREADY_JOINED,
    EVENT_DEACTIVATED,
    EVENT_FULL,
    EVENT_NOT_ACTIVE,
    EVENT_NOT_FOUND,
    INVALID_QR_CODE,
    NOT_JOINED,
    DecryptError,
    NotFoundError,
    RejectedError,
)
from eventhub.services.crypto_service import CryptoService, crypto_service
from eventhub.services.qrcode_service import read_scanned_value
from eventhub.stores import EventStore, JoinOutcome, get_event_store

logger = logging.getLogger(__name__)

JOIN_REJECTIONS = {
    JoinOutcome.DEACTIVATED: EVENT_DEACTIVATED,
    JoinOutcome.NOT_ACTIVE: EVENT_NOT_ACTIVE,
    JoinOutcome.ALREADY_JOINED: ALREADY_JOINED,
    JoinOutcome.FULL: EVENT_FULL,
}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ParticipationService:
    """State machine: NotJoined -> Joined -> Left, with Unconfirmed -> Confirmed while Joined"""

    def __init__(self, store: Optional[EventStore] = None, crypto: Optional[CryptoService] = None):
        self._store = store
        self._crypto = crypto

    @property
    def store(self) -> EventStore:
        return self._store or get_event_store()

    @property
    def crypto(self) -> CryptoService:
        return self._crypto or crypto_service

    async def _get_live_event(self, event_id: str):
        event = await self.store.find_by_id(event_id)
        if not event:
            raise NotFoundError(EVENT_NOT_FOUND)
        if event.is_deactivated:
            raise RejectedError(EVENT_DEACTIVATED)
        return event

    async def join(self, user_id: str, event_id: str) -> str:
        """
        Join an event

        Returns:
            The new participation id

        Raises:
            NotFoundError: Event does not exist
            RejectedError: Deactivated, not active, already joined or full
        """
        result = await self.store.join(user_id, event_id, utcnow())

        if result.outcome == JoinOutcome.NOT_FOUND:
            raise NotFoundError(EVENT_NOT_FOUND)
        if result.outcome != JoinOutcome.JOINED:
            raise RejectedError(JOIN_REJECTIONS[result.outcome])

        logger.info("User %s joined event %s", user_id, event_id)
        return result.participation_id

    async def leave(self, user_id: str, event_id: str) -> int:
        """Leave an event; returns how many active participations were closed"""
        await self._get_live_event(event_id)

        left = await self.store.leave(user_id, event_id, utcnow())
        if left == 0:
            raise RejectedError(NOT_JOINED)
        if left > 1:
            logger.warning("User %s had %d active participations in event %s", user_id, left, event_id)

        logger.info("User %s left event %s", user_id, event_id)
        return left

    async def verify(self, user_id: str, event_id: str, scanned: Optional[str]) -> None:
        """
        Confirm attendance with the code scanned at the event

        Every failure of the code itself is reported as "Invalid QR Code".

        Raises:
            ConfigurationError: The QR key is not configured
        """
        event = await self._get_live_event(event_id)

        participation = await self.store.find_active_participation(user_id, event_id)
        if not participation:
            raise RejectedError(NOT_JOINED)
        if participation.is_confirmed:
            raise RejectedError(ALREADY_CONFIRMED)

        scanned_ciphertext = read_scanned_value(scanned)
        if not scanned_ciphertext or not event.has_qr_code:
            raise RejectedError(INVALID_QR_CODE)

        self.crypto.ensure_configured()
        try:
            scanned_text = self.crypto.decrypt(scanned_ciphertext, event.qr_code_iv)
            stored_text = self.crypto.decrypt(event.qr_code_string, event.qr_code_iv)
        except DecryptError as e:
            logger.info("QR verification for event %s failed to decrypt: %s", event_id, e)
            raise RejectedError(INVALID_QR_CODE)

        if scanned_text != stored_text:
            raise RejectedError(INVALID_QR_CODE)

        if not await self.store.confirm_participation(participation.id, utcnow()):
            # Left or confirmed between the check and the write
            current = await self.store.find_active_participation(user_id, event_id)
            if current and current.is_confirmed:
                raise RejectedError(ALREADY_CONFIRMED)
            raise RejectedError(NOT_JOINED)

        logger.info("User %s confirmed attendance at event %s", user_id, event_id)


# Create singleton instance
participation_service = ParticipationService()
