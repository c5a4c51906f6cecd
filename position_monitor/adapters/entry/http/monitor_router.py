from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field

from ....core.domain.entities.notification_entity import Notification
from ....core.domain.entities.position_entity import Position, Valuation
from ....core.domain.entities.price_tick_entity import PriceTick
from ....core.domain.exceptions import InvalidDocumentError, PersistenceError
from ....core.usecases.close_position_use_case import PositionNotClosableError
from ....workers.monitor_supervisor import MonitorSupervisor
from .deps import get_supervisor

router = APIRouter(prefix="/monitor", tags=["monitor"])

# =========================
# DTOs
# =========================

class StreamStateOutDTO(BaseModel):
    state: str
    attempt: int
    last_delay_ms: Optional[int] = None
    pairs: List[str]


class SummaryOutDTO(BaseModel):
    active_positions: int
    open_pl_usd: float
    pending_timers: int


class NotificationOutDTO(BaseModel):
    id: str
    kind: str
    position_id: str
    title: str
    message: str
    payload: Dict[str, Any]
    created_at: datetime
    dismiss_at: Optional[datetime] = None
    hovered: bool = False


class HoverDTO(BaseModel):
    is_hovering: bool = Field(..., examples=[True])


class NavigateDTO(BaseModel):
    position_id: Optional[str] = Field(None, description="fallback if the notification already expired")


class NavigateOutDTO(BaseModel):
    position_id: Optional[str]


def _notification_out(sup: MonitorSupervisor, n: Notification) -> NotificationOutDTO:
    return NotificationOutDTO(
        id=n.id,
        kind=n.kind.value,
        position_id=n.position_id,
        title=n.title,
        message=n.message,
        payload=n.payload,
        created_at=n.created_at,
        dismiss_at=n.dismiss_at,
        hovered=sup.notifications.is_hovered(n.id),
    )

# =========================
# Prices / valuations
# =========================

@router.get("/prices", response_model=Dict[str, PriceTick])
async def get_prices(sup: MonitorSupervisor = Depends(get_supervisor)):
    """Latest 24h ticker per followed pair."""
    return sup.prices


@router.get("/stream", response_model=StreamStateOutDTO)
async def get_stream_state(sup: MonitorSupervisor = Depends(get_supervisor)):
    return StreamStateOutDTO(
        state=sup.stream.state.value,
        attempt=sup.stream.attempt,
        last_delay_ms=sup.stream.last_delay_ms,
        pairs=sorted(sup.stream.pairs),
    )


@router.get("/valuations", response_model=List[Valuation])
async def get_valuations(sup: MonitorSupervisor = Depends(get_supervisor)):
    return sup.valuations()


@router.get("/summary", response_model=SummaryOutDTO)
async def get_summary(sup: MonitorSupervisor = Depends(get_supervisor)):
    return SummaryOutDTO(
        active_positions=len(sup.active_positions()),
        open_pl_usd=sup.open_pl_usd(),
        pending_timers=sup.pending_timers,
    )

# =========================
# Notifications
# =========================

@router.get("/notifications", response_model=List[NotificationOutDTO])
async def list_notifications(sup: MonitorSupervisor = Depends(get_supervisor)):
    return [_notification_out(sup, n) for n in sup.notifications.active()]


@router.post("/notifications/{notification_id}/dismiss")
async def dismiss_notification(notification_id: str, sup: MonitorSupervisor = Depends(get_supervisor)):
    """Idempotent: dismissing an already expired notification is not an error."""
    return {"dismissed": sup.notifications.dismiss(notification_id)}


@router.post("/notifications/{notification_id}/hover", response_model=Optional[NotificationOutDTO])
async def hover_notification(
    notification_id: str, dto: HoverDTO, sup: MonitorSupervisor = Depends(get_supervisor)
):
    sup.notifications.set_hover(notification_id, dto.is_hovering)
    n = sup.notifications.get(notification_id)
    if n is None:
        raise HTTPException(status_code=404, detail="Notification not found")
    return _notification_out(sup, n)


@router.post("/notifications/{notification_id}/navigate", response_model=NavigateOutDTO)
async def navigate_notification(
    notification_id: str, dto: NavigateDTO, sup: MonitorSupervisor = Depends(get_supervisor)
):
    target = sup.notifications.navigate(notification_id, dto.position_id)
    if target is None:
        raise HTTPException(status_code=404, detail="Notification expired and no position_id given")
    return NavigateOutDTO(position_id=target)


@router.get("/navigation/next", response_model=NavigateOutDTO)
async def next_navigation(
    wait_sec: float = Query(0.0, ge=0.0, le=30.0),
    sup: MonitorSupervisor = Depends(get_supervisor),
):
    """Pop the next navigation request; long-polls up to wait_sec."""
    if wait_sec > 0:
        return NavigateOutDTO(position_id=await sup.navigation.next(wait_sec))
    return NavigateOutDTO(position_id=sup.navigation.next_nowait())

# =========================
# Positions
# =========================

@router.post("/positions/{position_id}/close", response_model=Position)
async def close_position(position_id: str, sup: MonitorSupervisor = Depends(get_supervisor)):
    try:
        return await sup.close_position(position_id)
    except LookupError:
        raise HTTPException(status_code=404, detail="Position not found")
    except PositionNotClosableError as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    except InvalidDocumentError as exc:
        raise HTTPException(status_code=422, detail=str(exc))
    except PersistenceError as exc:
        raise HTTPException(status_code=503, detail=str(exc))
