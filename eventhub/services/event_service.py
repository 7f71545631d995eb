"""
Event Service
Admin lifecycle (create, edit, deactivate), QR issuance and event queries
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from eventhub.errors import (
    EVENT_ALREADY_DEACTIVATED,
    EVENT_DEACTIVATED,
    EVENT_NOT_FOUND,
    NO_EVENT_TYPES,
    QR_CODE_NOT_FOUND,
    DecryptError,
    NotFoundError,
    RejectedError,
)
from eventhub.services.crypto_service import CryptoService, crypto_service
from eventhub.services.image_service import ImageResolver, image_resolver
from eventhub.services.qrcode_service import (
    issue_payload,
    parse_payload,
    read_scanned_value,
    render_to_image,
)
from eventhub.stores import EventFilter, EventStore, get_event_store
from eventhub.stores.query import expand_event_type_ids
from eventhub.stores.records import EventRecord, ParticipantView

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class QrCodeResult:
    qr_code_string: str  # PNG data URL
    created: bool


@dataclass
class QrCheckResult:
    is_valid: bool
    event_id: Optional[str] = None
    created_at: Optional[datetime] = None


@dataclass
class EventView:
    """An event with its type names resolved"""
    event: EventRecord
    event_types: list[str] = field(default_factory=list)


@dataclass
class EventDetail(EventView):
    participants: list[ParticipantView] = field(default_factory=list)
    viewer_id: Optional[str] = None

    @property
    def user_has_joined_event(self) -> bool:
        return any(p.user_id == self.viewer_id for p in self.participants)


@dataclass
class EventPage:
    events: list[EventView]
    total_count: int
    page_number: int
    page_size: int

    @property
    def no_pages(self) -> int:
        return -(-self.total_count // self.page_size)


class EventService:
    """Composes the store, cipher, QR codec and image resolver"""

    def __init__(
        self,
        store: Optional[EventStore] = None,
        crypto: Optional[CryptoService] = None,
        images: Optional[ImageResolver] = None,
    ):
        self._store = store
        self._crypto = crypto
        self._images = images

    @property
    def store(self) -> EventStore:
        return self._store or get_event_store()

    @property
    def crypto(self) -> CryptoService:
        return self._crypto or crypto_service

    @property
    def images(self) -> ImageResolver:
        return self._images or image_resolver

    async def _get_event(self, event_id: str) -> EventRecord:
        event = await self.store.find_by_id(event_id)
        if not event:
            raise NotFoundError(EVENT_NOT_FOUND)
        return event

    async def _get_live_event(self, event_id: str) -> EventRecord:
        event = await self._get_event(event_id)
        if event.is_deactivated:
            raise RejectedError(EVENT_DEACTIVATED)
        return event

    async def _resolve_type_ids(self, names: list[str]) -> list[str]:
        types = await self.store.find_event_types(names)
        if not types:
            raise RejectedError(NO_EVENT_TYPES)
        return [t.id for t in types]

    async def _type_names(self) -> dict[str, str]:
        return {t.id: t.name for t in await self.store.list_event_types()}

    # Lifecycle

    async def create_event(
        self,
        admin_id: str,
        fields: dict,
        event_type_names: list[str],
        image_url: Optional[str] = None,
        base64_image: Optional[str] = None,
    ) -> str:
        """
        Create an event and attach its image

        Args:
            admin_id: Creating admin's user id
            fields: snake_case event attributes
            event_type_names: Category names; at least one must exist

        Returns:
            The new event id
        """
        type_ids = await self._resolve_type_ids(event_type_names)
        now = utcnow()

        event = await self.store.create(
            {**fields, "event_type_ids": type_ids, "created_by": admin_id},
            now,
        )

        resolved = await self.images.resolve(image_url, base64_image, admin_id, event.id)
        if resolved:
            await self.store.update(event.id, {"image_url": resolved}, utcnow())

        logger.info("Admin %s created event %s (%s)", admin_id, event.id, event.name)
        return event.id

    async def edit_event(
        self,
        admin_id: str,
        event_id: str,
        fields: dict,
        event_type_names: Optional[list[str]] = None,
        image_url: Optional[str] = None,
        base64_image: Optional[str] = None,
    ) -> EventRecord:
        """Merge-patch an event; absent fields are left alone"""
        await self._get_live_event(event_id)

        patch = dict(fields)
        if event_type_names:
            patch["event_type_ids"] = await self._resolve_type_ids(event_type_names)

        resolved = await self.images.resolve(image_url, base64_image, admin_id, event_id)
        if resolved:
            patch["image_url"] = resolved

        event = await self.store.update(event_id, patch, utcnow())
        if not event:
            raise NotFoundError(EVENT_NOT_FOUND)
        if event.is_deactivated:
            raise RejectedError(EVENT_DEACTIVATED)

        logger.info("Admin %s edited event %s", admin_id, event_id)
        return event

    async def deactivate_event(self, admin_id: str, event_id: str) -> None:
        event = await self._get_event(event_id)
        if event.is_deactivated:
            raise RejectedError(EVENT_ALREADY_DEACTIVATED)

        if not await self.store.deactivate(event_id, utcnow()):
            raise RejectedError(EVENT_ALREADY_DEACTIVATED)

        logger.info("Admin %s deactivated event %s", admin_id, event_id)

    # QR codes

    async def get_or_create_qr_code(self, event_id: str) -> QrCodeResult:
        """
        Return the event's attendance QR code, issuing it on first request

        Concurrent first requests converge on whichever code was stored first.
        """
        event = await self._get_live_event(event_id)
        if event.has_qr_code:
            return QrCodeResult(qr_code_string=render_to_image(event.qr_code_string), created=False)

        self.crypto.ensure_configured()
        cipher = self.crypto.encrypt(issue_payload(event.id))

        stored = await self.store.set_qr_code_if_absent(event.id, cipher.ciphertext, cipher.iv, utcnow())
        if not stored:
            raise NotFoundError(EVENT_NOT_FOUND)
        if stored.is_deactivated or not stored.has_qr_code:
            # Deactivated between the read and the write
            raise RejectedError(EVENT_DEACTIVATED)

        created = stored.qr_code_string == cipher.ciphertext
        if created:
            logger.info("Issued QR code for event %s", event.id)

        return QrCodeResult(qr_code_string=render_to_image(stored.qr_code_string), created=created)

    async def get_qr_code(self, event_id: str) -> QrCodeResult:
        event = await self._get_live_event(event_id)
        if not event.has_qr_code:
            raise RejectedError(QR_CODE_NOT_FOUND)
        return QrCodeResult(qr_code_string=render_to_image(event.qr_code_string), created=False)

    async def check_qr_code(self, event_id: str, scanned: Optional[str]) -> QrCheckResult:
        """
        Tell whether a scanned code belongs to the event, without side effects

        Empty, undecryptable or malformed codes are simply not valid.
        """
        event = await self._get_event(event_id)
        if not event.has_qr_code:
            raise RejectedError(QR_CODE_NOT_FOUND)
        if event.is_deactivated:
            raise RejectedError(EVENT_DEACTIVATED)

        ciphertext = read_scanned_value(scanned)
        if not ciphertext:
            return QrCheckResult(is_valid=False)

        self.crypto.ensure_configured()
        try:
            payload = parse_payload(self.crypto.decrypt(ciphertext, event.qr_code_iv))
        except (DecryptError, ValueError) as e:
            logger.info("Unreadable QR code checked against event %s: %s", event_id, e)
            return QrCheckResult(is_valid=False)

        return QrCheckResult(
            is_valid=payload.event_id == event.id,
            event_id=payload.event_id,
            created_at=payload.issued_at,
        )

    # Queries

    async def get_event_detail(self, event_id: str, viewer_id: Optional[str] = None) -> EventDetail:
        event = await self._get_live_event(event_id)
        return EventDetail(
            event=event,
            event_types=await self.store.event_type_names(event.event_type_ids),
            participants=await self.store.list_active_participants(event_id),
            viewer_id=viewer_id,
        )

    async def get_edit_prefill(self, event_id: str) -> EventView:
        event = await self._get_live_event(event_id)
        return EventView(event=event, event_types=await self.store.event_type_names(event.event_type_ids))

    async def list_events(self, event_filter: EventFilter) -> EventPage:
        catalog = await self.store.list_event_types()
        names = {t.id: t.name for t in catalog}

        type_ids = None
        if event_filter.event_type_names:
            type_ids = expand_event_type_ids(event_filter.event_type_names, catalog)

        events, total = await self.store.list_events(event_filter, type_ids)
        return EventPage(
            events=[self._view(e, names) for e in events],
            total_count=total,
            page_number=event_filter.page_number,
            page_size=event_filter.page_size,
        )

    async def list_recommended(self, user_id: str, page_number: int, page_size: int) -> EventPage:
        names = await self._type_names()
        interests = await self.store.interested_type_ids(user_id)

        events, total = await self.store.list_recommended(interests, page_number, page_size)
        return EventPage(
            events=[self._view(e, names) for e in events],
            total_count=total,
            page_number=page_number,
            page_size=page_size,
        )

    @staticmethod
    def _view(event: EventRecord, names: dict[str, str]) -> EventView:
        return EventView(event=event, event_types=[names[t] for t in event.event_type_ids if t in names])


# Create singleton instance
event_service = EventService()
