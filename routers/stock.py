"""
Stock Router
Manual stock-in / stock-out entries and the stock history ledger
"""
from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from typing import Optional
import logging

from services.stock_ledger import StockLedgerService
from services.storage import StorageService, get_storage
from settings import sanitize_user_id

logger = logging.getLogger(__name__)
router = APIRouter()


class StockMovementRequest(BaseModel):
    userId: str
    skuVariant: str
    type: str = Field(..., description="'in' or 'out'")
    quantity: int
    reason: Optional[str] = None
    notes: Optional[str] = None


def serialize_history(entry) -> dict:
    return {
        "id": entry.id,
        "productSkuVariant": entry.product_sku_variant,
        "productName": entry.product_name,
        "type": entry.type,
        "quantity": entry.quantity,
        "previousStock": entry.previous_stock,
        "newStock": entry.new_stock,
        "reason": entry.reason,
        "notes": entry.notes,
        "createdAt": entry.created_at.isoformat() if entry.created_at else None,
    }


@router.post("/stock/movements")
async def create_stock_movement(
    payload: StockMovementRequest,
    storage: StorageService = Depends(get_storage),
):
    user_id = sanitize_user_id(payload.userId)
    if not user_id:
        raise HTTPException(status_code=400, detail="userId is required")

    entry = await StockLedgerService(storage).record_movement(
        user_id,
        payload.skuVariant,
        payload.type,
        payload.quantity,
        reason=payload.reason,
        notes=payload.notes,
    )
    return serialize_history(entry)


@router.get("/stock/history")
async def stock_history(
    userId: str = Query(...),
    limit: int = Query(100, ge=1, le=500),
    storage: StorageService = Depends(get_storage),
):
    user_id = sanitize_user_id(userId)
    if not user_id:
        raise HTTPException(status_code=400, detail="userId is required")
    entries = await storage.get_stock_history(user_id, limit)
    return {"history": [serialize_history(e) for e in entries]}
