from fastapi import APIRouter, Depends, HTTPException

from finwatch.auth import get_current_user, require_cron
from finwatch.dependencies import Services, get_services
from finwatch.exceptions import InvalidDispatchRequest, PersistenceError
from finwatch.schemas import Budget, BudgetAlertRequest

router = APIRouter(prefix="/api/v1/alerts", tags=["Alerts"])


@router.post("/budget")
async def dispatch_budget_alert(
    data: BudgetAlertRequest,
    user_id: str = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """Real-time alert for one budget, typically right after a transaction posts."""
    if data.user_id is None:
        data.user_id = user_id
    elif data.user_id != user_id:
        raise HTTPException(status_code=403, detail="Budget belongs to another user")
    # Mail always goes to the account's own address for user callers
    if data.user_email is not None:
        raise HTTPException(status_code=403, detail="user_email may only be set by service callers")

    return await _dispatch(services, data)


@router.post("/dispatch", dependencies=[Depends(require_cron)])
async def dispatch_budget_alert_as_service(
    data: BudgetAlertRequest,
    services: Services = Depends(get_services),
):
    """Same as /budget for trusted callers (database webhooks, cron). user_email overrides lookup."""
    return await _dispatch(services, data, user_email=data.user_email)


async def _dispatch(services: Services, data: BudgetAlertRequest, user_email: str | None = None):
    budget = Budget(**data.model_dump(exclude={"user_email"}))
    try:
        outcome = await services.dispatcher.process_budget(budget, user_email=user_email)
    except InvalidDispatchRequest as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))
    return outcome.model_dump()


@router.post("/sweep", dependencies=[Depends(require_cron)])
async def run_budget_sweep(services: Services = Depends(get_services)):
    """Periodic check of every stored budget."""
    try:
        outcomes = await services.dispatcher.run_sweep()
    except PersistenceError as e:
        raise HTTPException(status_code=500, detail=str(e))

    if not outcomes:
        return {"success": True, "message": "No budgets found", "processed": 0, "sent": 0, "outcomes": []}
    return {
        "success": True,
        "processed": len(outcomes),
        "sent": sum(1 for o in outcomes if o.status == "sent"),
        "outcomes": [o.model_dump() for o in outcomes],
    }


@router.post("/weekly-summary", dependencies=[Depends(require_cron)])
async def run_weekly_summaries(services: Services = Depends(get_services)):
    try:
        outcomes = await services.dispatcher.run_weekly_summaries()
    except PersistenceError as e:
        raise HTTPException(status_code=500, detail=str(e))
    return {
        "success": True,
        "users": len(outcomes),
        "sent": sum(1 for o in outcomes if o.status == "sent"),
        "outcomes": [o.model_dump() for o in outcomes],
    }
