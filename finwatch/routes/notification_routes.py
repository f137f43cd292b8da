from fastapi import APIRouter, Depends, HTTPException

from finwatch.auth import get_current_user
from finwatch.dependencies import Services, get_services
from finwatch.exceptions import PersistenceError


router = APIRouter(prefix="/api/v1/notifications", tags=["Notifications"])


@router.get("")
async def list_notifications(
    unread_only: bool = False,
    user_id: str = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """Fetch the user's notifications, newest first."""
    try:
        notes = await services.repository.list_notifications(user_id, unread_only=unread_only)
    except PersistenceError as e:
        raise HTTPException(status_code=500, detail=str(e))
    return [n.model_dump(mode="json") for n in notes]


@router.put("/{notification_id}/read")
async def mark_as_read(
    notification_id: str,
    user_id: str = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """Mark a notification as read."""
    try:
        updated = await services.repository.mark_notification_read(user_id, notification_id)
    except PersistenceError as e:
        raise HTTPException(status_code=500, detail=str(e))
    if not updated:
        raise HTTPException(status_code=404, detail="Notification not found")
    return {"status": "success"}
