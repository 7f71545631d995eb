import asyncio
import base64
from datetime import datetime, timedelta, timezone
from io import BytesIO

import pytest
from PIL import Image

from eventhub.errors import (
    EVENT_ALREADY_DEACTIVATED,
    EVENT_DEACTIVATED,
    EVENT_NOT_FOUND,
    NO_EVENT_TYPES,
    QR_CODE_NOT_FOUND,
    NotFoundError,
    RejectedError,
)
from eventhub.services.crypto_service import crypto_service
from eventhub.services.qrcode_service import DATA_URL_PREFIX, scan_image
from eventhub.stores import EventFilter, EventSort

pytestmark = pytest.mark.asyncio


def png_data_url(size=(2400, 1200)) -> str:
    buffer = BytesIO()
    Image.new("RGB", size, "navy").save(buffer, format="PNG")
    return "data:image/png;base64," + base64.b64encode(buffer.getvalue()).decode("ascii")


class TestCreate:
    async def test_creates_with_types_and_creator(self, event_service, admin, catalog, event_fields, store):
        event_id = await event_service.create_event(
            admin.id, event_fields(), ["Social Service", "Leadership", "Unknown"]
        )

        event = await store.find_by_id(event_id)
        assert event.created_by == admin.id
        assert event.is_active and not event.is_deactivated
        assert event.qr_code_string is None
        assert set(event.event_type_ids) == {catalog["Social Service"].id, catalog["Leadership"].id}

    async def test_no_known_types(self, event_service, admin, catalog, event_fields):
        with pytest.raises(RejectedError) as exc:
            await event_service.create_event(admin.id, event_fields(), ["Unknown"])
        assert exc.value.message == NO_EVENT_TYPES

    async def test_missing_attribute(self, event_service, admin, catalog, event_fields):
        with pytest.raises(RejectedError) as exc:
            await event_service.create_event(admin.id, event_fields(name=None), ["Social Service"])
        assert exc.value.message == "Missing attribute: 'name'"

    async def test_seat_count_must_be_positive(self, event_service, admin, catalog, event_fields):
        with pytest.raises(RejectedError) as exc:
            await event_service.create_event(admin.id, event_fields(total_seats=0), ["Social Service"])
        assert exc.value.message == "'totalSeats' must be at least 1, got 0"

    async def test_image_url_passthrough(self, event_service, admin, catalog, event_fields, store, blob_store):
        event_id = await event_service.create_event(
            admin.id, event_fields(), ["Social Service"], image_url="https://cdn.test/a.png"
        )

        assert (await store.find_by_id(event_id)).image_url == "https://cdn.test/a.png"
        assert blob_store.uploads == []

    async def test_base64_image_is_optimised_and_uploaded(
        self, event_service, admin, catalog, event_fields, store, blob_store
    ):
        event_id = await event_service.create_event(
            admin.id, event_fields(), ["Social Service"], base64_image=png_data_url()
        )

        [(path, content, content_type)] = blob_store.uploads
        assert path.startswith(f"events/{event_id}/")
        assert content_type == "image/jpeg"
        assert path.endswith(".jpg")
        assert max(Image.open(BytesIO(content)).size) == 1600
        assert (await store.find_by_id(event_id)).image_url == f"https://blob.test/{path}"

    async def test_invalid_base64_image(self, event_service, admin, catalog, event_fields):
        not_an_image = base64.b64encode(b"plain text").decode()

        with pytest.raises(RejectedError) as exc:
            await event_service.create_event(
                admin.id, event_fields(), ["Social Service"], base64_image=not_an_image
            )
        assert exc.value.message == "Invalid image data"


class TestEdit:
    async def test_merge_patch_keeps_other_fields(self, event_service, create_event, admin, catalog):
        event = await create_event()

        updated = await event_service.edit_event(
            admin.id, event.id, {"name": "Renamed", "location": None}, event_type_names=["Leadership"]
        )

        assert updated.name == "Renamed"
        assert updated.location == event.location
        assert updated.total_seats == event.total_seats
        assert updated.event_type_ids == [catalog["Leadership"].id]

    async def test_empty_type_list_keeps_types(self, event_service, create_event, admin):
        event = await create_event()

        updated = await event_service.edit_event(admin.id, event.id, {}, event_type_names=[])
        assert updated.event_type_ids == event.event_type_ids

    async def test_unknown_event(self, event_service, admin, catalog):
        with pytest.raises(NotFoundError):
            await event_service.edit_event(admin.id, "missing", {"name": "x"})

    async def test_deactivated_between_read_and_write(
        self, event_service, create_event, store, admin, monkeypatch
    ):
        event = await create_event()
        original = store.find_by_id

        async def find_then_deactivate(event_id):
            found = await original(event_id)
            monkeypatch.setattr(store, "find_by_id", original)
            await store.deactivate(event_id, datetime.now(timezone.utc))
            return found

        monkeypatch.setattr(store, "find_by_id", find_then_deactivate)

        with pytest.raises(RejectedError) as exc:
            await event_service.edit_event(admin.id, event.id, {"name": "Edited after retire"})
        assert exc.value.message == EVENT_DEACTIVATED

        stored = await store.find_by_id(event.id)
        assert stored.is_deactivated
        assert stored.name == event.name


class TestDeactivate:
    async def test_deactivation_is_terminal(self, event_service, participation_service, create_event, admin, alice):
        event = await create_event()
        await participation_service.join(alice.id, event.id)
        ciphertext = (await event_service.get_or_create_qr_code(event.id)).qr_code_string

        await event_service.deactivate_event(admin.id, event.id)

        stored = await event_service.store.find_by_id(event.id)
        assert stored.is_deactivated and not stored.is_active

        with pytest.raises(RejectedError) as exc:
            await event_service.deactivate_event(admin.id, event.id)
        assert exc.value.message == EVENT_ALREADY_DEACTIVATED

        rejected_calls = [
            participation_service.join(alice.id, event.id),
            participation_service.leave(alice.id, event.id),
            participation_service.verify(alice.id, event.id, ciphertext),
            event_service.edit_event(admin.id, event.id, {"name": "x"}),
            event_service.get_or_create_qr_code(event.id),
            event_service.get_qr_code(event.id),
            event_service.check_qr_code(event.id, stored.qr_code_string),
            event_service.get_event_detail(event.id),
        ]
        for call in rejected_calls:
            with pytest.raises(RejectedError) as exc:
                await call
            assert exc.value.message == EVENT_DEACTIVATED

    async def test_unknown_event(self, event_service, admin):
        with pytest.raises(NotFoundError) as exc:
            await event_service.deactivate_event(admin.id, "missing")
        assert exc.value.message == EVENT_NOT_FOUND


class TestQrCode:
    async def test_issued_once(self, event_service, create_event, store):
        event = await create_event()

        first = await event_service.get_or_create_qr_code(event.id)
        second = await event_service.get_or_create_qr_code(event.id)

        assert first.created and not second.created
        assert first.qr_code_string == second.qr_code_string
        assert first.qr_code_string.startswith(DATA_URL_PREFIX)
        assert scan_image(first.qr_code_string) == (await store.find_by_id(event.id)).qr_code_string

    async def test_concurrent_issuance_converges(self, event_service, create_event):
        event = await create_event()

        results = await asyncio.gather(*(event_service.get_or_create_qr_code(event.id) for _ in range(5)))

        assert len({r.qr_code_string for r in results}) == 1
        assert sum(r.created for r in results) == 1

    async def test_get_before_issue(self, event_service, create_event):
        event = await create_event()

        with pytest.raises(RejectedError) as exc:
            await event_service.get_qr_code(event.id)
        assert exc.value.message == QR_CODE_NOT_FOUND

    async def test_payload_names_event(self, event_service, create_event, store):
        event = await create_event()
        await event_service.get_or_create_qr_code(event.id)
        stored = await store.find_by_id(event.id)

        plaintext = crypto_service.decrypt(stored.qr_code_string, stored.qr_code_iv)
        event_id, _, millis = plaintext.partition("|")
        assert event_id == event.id
        assert int(millis) > 0


class TestCheckQrCode:
    async def test_valid_code(self, event_service, create_event, store):
        event = await create_event()
        await event_service.get_or_create_qr_code(event.id)
        stored = await store.find_by_id(event.id)

        result = await event_service.check_qr_code(event.id, stored.qr_code_string)

        assert result.is_valid
        assert result.event_id == event.id
        assert result.created_at <= datetime.now(timezone.utc)

    async def test_empty_and_garbage(self, event_service, create_event):
        event = await create_event()
        await event_service.get_or_create_qr_code(event.id)

        for scanned in (None, "", "garbage"):
            result = await event_service.check_qr_code(event.id, scanned)
            assert not result.is_valid
            assert result.event_id is None

    async def test_code_of_another_event(self, event_service, create_event, store):
        event = await create_event()
        other = await create_event(name="Other")
        await event_service.get_or_create_qr_code(event.id)
        await event_service.get_or_create_qr_code(other.id)
        other_code = (await store.find_by_id(other.id)).qr_code_string

        result = await event_service.check_qr_code(event.id, other_code)
        assert not result.is_valid

    async def test_no_code_issued(self, event_service, create_event):
        event = await create_event()

        with pytest.raises(RejectedError) as exc:
            await event_service.check_qr_code(event.id, "anything")
        assert exc.value.message == QR_CODE_NOT_FOUND


class TestQueries:
    async def test_detail_marks_viewer(self, event_service, participation_service, create_event, alice, bob):
        event = await create_event(event_types=["Leadership"])
        await participation_service.join(alice.id, event.id)
        await participation_service.join(bob.id, event.id)

        detail = await event_service.get_event_detail(event.id, viewer_id=alice.id)

        assert detail.event_types == ["Leadership"]
        assert [p.username for p in detail.participants] == ["alice", "bob"]
        assert detail.user_has_joined_event

        anonymous = await event_service.get_event_detail(event.id)
        assert not anonymous.user_has_joined_event

    async def test_list_filters(self, event_service, create_event, admin):
        cleanup = await create_event(name="Campus Cleanup", event_types=["Social Service"])
        workshop = await create_event(name="Python Workshop", event_types=["Digital Skills"])
        retired = await create_event(name="Old Cleanup", event_types=["Social Service"])
        await event_service.deactivate_event(admin.id, retired.id)

        page = await event_service.list_events(EventFilter(name_contains="CLEANUP"))
        assert [v.event.id for v in page.events] == [cleanup.id]

        page = await event_service.list_events(EventFilter(event_type_names=["Competency Development"]))
        assert [v.event.id for v in page.events] == [workshop.id]
        assert page.events[0].event_types == ["Digital Skills"]

        page = await event_service.list_events(EventFilter(event_type_names=["Unknown"]))
        assert page.events == [] and page.total_count == 0

        page = await event_service.list_events(EventFilter(include_deactivated=True))
        assert page.total_count == 3

    async def test_list_pagination_and_sort(self, event_service, participation_service, create_event, store):
        events = [await create_event(name=f"Event {i}") for i in range(5)]
        for i in range(3):
            user = store.add_user(f"auth|p{i}", f"p{i}")
            await participation_service.join(user.id, events[2].id)

        page = await event_service.list_events(
            EventFilter(page_number=1, page_size=2, sort=EventSort.MOST_PARTICIPANTS)
        )
        assert page.total_count == 5
        assert page.no_pages == 3
        assert page.events[0].event.id == events[2].id
        assert page.events[0].event.participants_count == 3

        last = await event_service.list_events(EventFilter(page_number=3, page_size=2))
        assert len(last.events) == 1

    async def test_recommended_prefers_interests(self, event_service, create_event, store, catalog):
        user = store.add_user("auth|fan", "fan", interested_type_ids=[catalog["Leadership"].id])
        liked = await create_event(name="Liked", event_types=["Leadership"])
        await create_event(name="Other", event_types=["Social Service"])

        page = await event_service.list_recommended(user.id, 1, 10)

        assert page.total_count == 2
        assert page.events[0].event.id == liked.id
