from fastapi import APIRouter, Depends, HTTPException

from finwatch.auth import get_current_user
from finwatch.dependencies import Services, get_services
from finwatch.schemas import ReceiptScanRequest

router = APIRouter(prefix="/api/v1/receipts", tags=["Receipts"])


@router.post("/scan")
async def scan_receipt(
    data: ReceiptScanRequest,
    user_id: str = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    if not data.text and not data.image_base64:
        raise HTTPException(status_code=400, detail="Either text or image must be provided")

    extraction, source = await services.receipt_extractor.scan(text=data.text, image_base64=data.image_base64)
    return {"success": True, "data": extraction.model_dump(by_alias=True), "source": source}
