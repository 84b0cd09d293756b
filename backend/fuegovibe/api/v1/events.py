from __future__ import annotations

from typing import Iterable, List, Literal, NoReturn, Optional

from fastapi import APIRouter, HTTPException, Query, status
from pydantic import ValidationError

from fuegovibe.api.deps import CurrentUser, EventServiceDep
from fuegovibe.core.errors import DomainError, ErrorCode, ForbiddenError
from fuegovibe.models.event import Event, EventCategory, EventStatus
from fuegovibe.models.user import AppUser
from fuegovibe.schemas import EventCreate, EventRead, EventUpdate, MembershipRead
from fuegovibe.services.event_sync import EventSyncService
from fuegovibe.services.membership import check_capacity

router = APIRouter()

ERROR_STATUS = {
    ErrorCode.INVALID_EVENT_ID: status.HTTP_400_BAD_REQUEST,
    ErrorCode.EVENT_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.ALREADY_REGISTERED: status.HTTP_409_CONFLICT,
    ErrorCode.NOT_REGISTERED: status.HTTP_409_CONFLICT,
    ErrorCode.EVENT_FULL: status.HTTP_409_CONFLICT,
    ErrorCode.FORBIDDEN: status.HTTP_403_FORBIDDEN,
    ErrorCode.CAPACITY_BELOW_PARTICIPANTS: status.HTTP_409_CONFLICT,
}


def _raise_domain_error(error: Optional[DomainError]) -> NoReturn:
    if error is None:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Operation failed",
        )
    raise HTTPException(
        status_code=ERROR_STATUS.get(error.code, status.HTTP_502_BAD_GATEWAY),
        detail={"code": error.code.value, "message": error.message},
    )


def _serialize(events: Iterable[Event]) -> List[EventRead]:
    return [EventRead.from_event(event) for event in events]


def _restrict(events: Iterable[Event], subset: Iterable[Event]) -> List[Event]:
    """Keep the order of ``events``, dropping anything not in ``subset``."""
    allowed = {event.id for event in subset}
    return [event for event in events if event.id in allowed]


async def _load_event(service: EventSyncService, event_id: str) -> Event:
    event = await service.get_event(event_id)
    if event is None:
        _raise_domain_error(service.last_error)
    return event


def _ensure_can_manage(event: Event, user: AppUser) -> None:
    if not (event.is_organizer(user.id) or user.is_admin):
        _raise_domain_error(ForbiddenError())


@router.get("/", response_model=List[EventRead], summary="List public events")
async def list_events(
    service: EventServiceDep,
    current_user: CurrentUser,
    q: Optional[str] = Query(default=None, description="Search title, description and location"),
    category: Optional[EventCategory] = None,
    event_status: Optional[EventStatus] = Query(default=None, alias="status"),
    pricing: Optional[Literal["free", "paid"]] = None,
    upcoming: bool = False,
) -> List[EventRead]:
    await service.fetch_all_public_events()
    if service.last_error is not None:
        _raise_domain_error(service.last_error)

    events: List[Event] = list(service.search_events(q or ""))
    if category is not None:
        events = _restrict(events, service.filter_by_category(category))
    if event_status is not None:
        events = _restrict(events, service.filter_by_status(event_status))
    if pricing == "free":
        events = _restrict(events, service.free_events())
    elif pricing == "paid":
        events = _restrict(events, service.paid_events())
    if upcoming:
        events = _restrict(events, service.upcoming_events())
    return _serialize(events)


@router.get("/mine", response_model=List[EventRead], summary="Events organized by me")
async def list_my_events(
    service: EventServiceDep,
    current_user: CurrentUser,
) -> List[EventRead]:
    await service.fetch_my_events(current_user.id)
    if service.last_error is not None:
        _raise_domain_error(service.last_error)
    return _serialize(service.my_events)


@router.get("/joined", response_model=List[EventRead], summary="Events I joined")
async def list_joined_events(
    service: EventServiceDep,
    current_user: CurrentUser,
) -> List[EventRead]:
    await service.fetch_joined_events(current_user.id)
    if service.last_error is not None:
        _raise_domain_error(service.last_error)
    return _serialize(service.joined_events)


@router.get("/{event_id}", response_model=EventRead, summary="Get event by id")
async def get_event(
    event_id: str,
    service: EventServiceDep,
    current_user: CurrentUser,
) -> EventRead:
    event = await _load_event(service, event_id)
    if not event.is_public and not (
        event.is_organizer(current_user.id)
        or event.is_user_participating(current_user.id)
        or current_user.is_admin
    ):
        _raise_domain_error(ForbiddenError("Access to event denied"))
    return EventRead.from_event(event)


@router.post(
    "/",
    response_model=EventRead,
    status_code=status.HTTP_201_CREATED,
    summary="Create event",
)
async def create_event(
    payload: EventCreate,
    service: EventServiceDep,
    current_user: CurrentUser,
) -> EventRead:
    event = Event.new(
        organizer_id=current_user.id,
        organizer_email=current_user.email,
        **payload.model_dump(),
    )
    created = await service.create_event(event)
    if created is None:
        _raise_domain_error(service.last_error)
    return EventRead.from_event(created)


@router.put("/{event_id}", response_model=EventRead, summary="Update event")
async def update_event(
    event_id: str,
    payload: EventUpdate,
    service: EventServiceDep,
    current_user: CurrentUser,
) -> EventRead:
    event = await _load_event(service, event_id)
    _ensure_can_manage(event, current_user)

    changes = payload.model_dump(exclude_unset=True)
    rejection = check_capacity(
        changes.get("max_participants", event.max_participants), event.current_participants
    )
    if rejection is not None:
        _raise_domain_error(rejection)

    try:
        updated = Event.model_validate({**event.model_dump(), **changes})
    except ValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=exc.errors(include_url=False, include_context=False),
        ) from None

    if not await service.update_event(updated):
        _raise_domain_error(service.last_error)
    return EventRead.from_event(await _load_event(service, event_id))


@router.delete(
    "/{event_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete event",
    response_model=None,
)
async def delete_event(
    event_id: str,
    service: EventServiceDep,
    current_user: CurrentUser,
) -> None:
    event = await _load_event(service, event_id)
    _ensure_can_manage(event, current_user)
    if not await service.delete_event(event_id):
        _raise_domain_error(service.last_error)


@router.post("/{event_id}/join", response_model=MembershipRead, summary="Join event")
async def join_event(
    event_id: str,
    service: EventServiceDep,
    current_user: CurrentUser,
) -> MembershipRead:
    event = await _load_event(service, event_id)
    if not await service.join_event(event, current_user.id):
        _raise_domain_error(service.last_error)
    return MembershipRead(event_id=event_id, user_id=current_user.id, action="joined")


@router.post("/{event_id}/leave", response_model=MembershipRead, summary="Leave event")
async def leave_event(
    event_id: str,
    service: EventServiceDep,
    current_user: CurrentUser,
) -> MembershipRead:
    event = await _load_event(service, event_id)
    if not await service.leave_event(event, current_user.id):
        _raise_domain_error(service.last_error)
    return MembershipRead(event_id=event_id, user_id=current_user.id, action="left")
