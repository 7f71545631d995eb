"""
Event Routes
Browsing, participation, admin lifecycle and QR attendance endpoints
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from eventhub.auth import (
    get_active_user,
    get_admin_user,
    get_member_user,
    get_optional_identity,
    get_optional_user,
)
from eventhub.auth.dependencies import ROLE_ADMIN
from eventhub.config import settings
from eventhub.schemas.event import (
    CheckQrCodeRequest,
    CreateEventRequest,
    CreateEventResponse,
    EditEventRequest,
    EventDetailEnvelope,
    EventDetailResponse,
    EventEditEnvelope,
    EventEditResponse,
    EventListResponse,
    JoinEventResponse,
    MessageResponse,
    QrCheckResponse,
    QrCheckResults,
    QrCodeResponse,
    ScanRequest,
    to_millis,
)
from eventhub.services.event_service import event_service
from eventhub.services.participation_service import participation_service
from eventhub.stores import EventFilter, EventSort
from eventhub.stores.records import UserRecord

router = APIRouter()


@router.get("", response_model=EventListResponse)
async def list_events(
    page_number: int = Query(1, alias="pageNumber"),
    page_size: int = Query(settings.DEFAULT_PAGE_SIZE, alias="pageSize"),
    event_name: Optional[str] = Query(None, alias="eventName"),
    event_type: Optional[list[str]] = Query(None, alias="eventType"),
    sort_type: Optional[str] = Query(None, alias="sortType"),
    sort_active: bool = Query(True, alias="sortActive"),
    include_deactivated: bool = Query(False, alias="includeDeactivated"),
    identity: Optional[dict] = Depends(get_optional_identity),
):
    """
    List events with filters and pagination

    - **eventType**: may repeat; child categories are included
    - **sortType**: 0 newest, 1 latest start, 2 most participants, 3 fewest
    - **includeDeactivated**: honoured for admins only
    """
    is_admin = identity is not None and identity["role"] == ROLE_ADMIN

    event_filter = EventFilter(
        page_number=page_number,
        page_size=page_size,
        name_contains=event_name or None,
        event_type_names=[t for t in (event_type or []) if t],
        sort=EventSort.parse(sort_type),
        sort_active_first=sort_active,
        include_deactivated=include_deactivated and is_admin,
    )

    page = await event_service.list_events(event_filter)
    return EventListResponse.from_page(page)


@router.get("/recommended", response_model=EventListResponse)
async def list_recommended_events(
    page_number: int = Query(1, alias="pageNumber"),
    page_size: int = Query(settings.DEFAULT_PAGE_SIZE, alias="pageSize"),
    current_user: UserRecord = Depends(get_active_user),
):
    """Events ranked by the user's interested event types"""
    page = await event_service.list_recommended(current_user.id, page_number, page_size)
    return EventListResponse.from_page(page)


@router.post("/create", response_model=CreateEventResponse)
async def create_event(
    request: CreateEventRequest,
    current_admin: UserRecord = Depends(get_admin_user),
):
    """Create an event (Admin only)"""
    fields = request.event
    image = fields.image

    event_id = await event_service.create_event(
        current_admin.id,
        fields.store_fields(),
        fields.event_types or [],
        image_url=image.url if image else None,
        base64_image=image.base64_image if image else None,
    )

    return {"message": "Event created successfully", "id": event_id}


@router.post("/check-qrcode", response_model=QrCheckResponse, response_model_exclude_none=True)
async def check_qr_code(
    request: CheckQrCodeRequest,
    current_user: UserRecord = Depends(get_active_user),
):
    """Check a scanned code against an event without confirming anything"""
    result = await event_service.check_qr_code(request.event_id, request.encrypted_string)

    return QrCheckResponse(
        message="QR Code checked successfully",
        results=QrCheckResults(
            is_valid=result.is_valid,
            event_id=result.event_id,
            created_at=to_millis(result.created_at),
        ),
    )


@router.get("/{event_id}", response_model=EventDetailEnvelope)
async def get_event(
    event_id: str,
    current_user: Optional[UserRecord] = Depends(get_optional_user),
):
    """Event details with its active participants"""
    detail = await event_service.get_event_detail(event_id, current_user.id if current_user else None)
    return EventDetailEnvelope(
        message="Event found successfully",
        event=EventDetailResponse.from_detail(detail),
    )


@router.get("/{event_id}/edit", response_model=EventEditEnvelope)
async def get_event_for_edit(
    event_id: str,
    current_admin: UserRecord = Depends(get_admin_user),
):
    """Current values for the edit form (Admin only)"""
    view = await event_service.get_edit_prefill(event_id)
    return EventEditEnvelope(message="Event found successfully", event=EventEditResponse.from_view(view))


@router.post("/{event_id}/edit", response_model=MessageResponse)
async def edit_event(
    event_id: str,
    request: EditEventRequest,
    current_admin: UserRecord = Depends(get_admin_user),
):
    """Update an event; omitted fields keep their values (Admin only)"""
    fields = request.event
    image = fields.image

    await event_service.edit_event(
        current_admin.id,
        event_id,
        fields.store_fields(),
        event_type_names=fields.event_types,
        image_url=image.url if image else None,
        base64_image=image.base64_image if image else None,
    )

    return {"message": "Event updated successfully"}


@router.post("/{event_id}/join", response_model=JoinEventResponse)
async def join_event(
    event_id: str,
    current_user: UserRecord = Depends(get_member_user),
):
    participation_id = await participation_service.join(current_user.id, event_id)
    return JoinEventResponse(message="Event joined successfully", participation_id=participation_id)


@router.post("/{event_id}/leave", response_model=MessageResponse)
async def leave_event(
    event_id: str,
    current_user: UserRecord = Depends(get_member_user),
):
    await participation_service.leave(current_user.id, event_id)
    return {"message": "Event left successfully"}


@router.post("/{event_id}/deactivate", response_model=MessageResponse)
async def deactivate_event(
    event_id: str,
    current_admin: UserRecord = Depends(get_admin_user),
):
    """Permanently retire an event (Admin only)"""
    await event_service.deactivate_event(current_admin.id, event_id)
    return {"message": "Event deactivated successfully"}


@router.get("/{event_id}/qrcode", response_model=QrCodeResponse)
async def get_event_qr_code(
    event_id: str,
    current_admin: UserRecord = Depends(get_admin_user),
):
    """Existing attendance QR code (Admin only)"""
    result = await event_service.get_qr_code(event_id)
    return QrCodeResponse(message="Event QR Code found successfully", qr_code_string=result.qr_code_string)


@router.post("/{event_id}/qrcode", response_model=QrCodeResponse)
async def create_event_qr_code(
    event_id: str,
    current_admin: UserRecord = Depends(get_admin_user),
):
    """Attendance QR code, generated on first call (Admin only)"""
    result = await event_service.get_or_create_qr_code(event_id)
    message = (
        "Event QR Code not yet generated. Successfully generated one."
        if result.created else "Event QR Code found successfully"
    )
    return QrCodeResponse(message=message, qr_code_string=result.qr_code_string)


@router.post("/{event_id}/verify", response_model=MessageResponse)
async def verify_participation(
    event_id: str,
    request: ScanRequest,
    current_user: UserRecord = Depends(get_member_user),
):
    """Confirm attendance with the scanned QR code"""
    await participation_service.verify(current_user.id, event_id, request.encrypted_string)
    return {"message": "Participation confirmed successfully"}
