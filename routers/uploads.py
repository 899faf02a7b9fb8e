"""
Order Upload Router
Marketplace export ingestion, per-row preview and upload history
"""
from fastapi import APIRouter, UploadFile, File, HTTPException, Depends, Form, Query
from typing import Optional, Tuple
import logging
import uuid

from schemas import StoreAccountRef
from services.errors import IngestionError, StoreAccountNotFoundError
from services.order_ingestion import OrderIngestionService, decode_records
from services.platform_adapters import process_orders
from services.storage import StorageService, get_storage
from services.upload_preview import collect_missing_skus, preview_rows
from settings import (
    ALLOWED_UPLOAD_EXTENSIONS,
    MAX_UPLOAD_BYTES,
    detect_platform_from_filename,
    is_allowed_upload,
    resolve_platform,
    sanitize_user_id,
)

logger = logging.getLogger(__name__)
router = APIRouter()


def _require_user(user_id: Optional[str]) -> str:
    uid = sanitize_user_id(user_id)
    if not uid:
        raise HTTPException(status_code=400, detail="userId is required")
    return uid


async def _read_upload(file: UploadFile, request_id: str) -> Tuple[bytes, str]:
    filename = file.filename or ""
    if not is_allowed_upload(filename):
        logger.warning(f"[{request_id}] Reject filename={filename!r}")
        raise HTTPException(
            status_code=400,
            detail=f"Unsupported file type. Allowed: {', '.join(ALLOWED_UPLOAD_EXTENSIONS)}",
        )

    content = await file.read()
    size = len(content or b"")
    logger.info(f"[{request_id}] Received {filename!r} size={size} bytes")
    if size == 0:
        raise HTTPException(status_code=400, detail="Empty file")
    if size > MAX_UPLOAD_BYTES:
        raise HTTPException(
            status_code=400,
            detail=f"File too large. Maximum size is {MAX_UPLOAD_BYTES // (1024 * 1024)}MB",
        )
    return content, filename


def _pick_platform(explicit: Optional[str], account_platform: Optional[str], filename: str) -> Optional[str]:
    """Explicit form value wins, then the store account's platform, then the file name."""
    if explicit and explicit.strip():
        return explicit
    return account_platform or detect_platform_from_filename(filename)


def serialize_upload(upload) -> dict:
    return {
        "id": upload.id,
        "fileName": upload.file_name,
        "platform": upload.platform,
        "accountId": upload.account_id,
        "accountName": upload.account_name,
        "uploadDate": upload.upload_date.isoformat() if upload.upload_date else None,
        "totalOrders": upload.total_orders,
        "totalRevenue": float(upload.total_revenue or 0),
        "createdAt": upload.created_at.isoformat() if upload.created_at else None,
    }


@router.post("/orders/upload")
async def upload_orders(
    file: UploadFile = File(...),
    platform: Optional[str] = Form(None),
    storeAccountId: str = Form(...),
    userId: str = Form(...),
    storage: StorageService = Depends(get_storage),
):
    request_id = str(uuid.uuid4())
    try:
        user_id = _require_user(userId)
        content, filename = await _read_upload(file, request_id)

        account = await storage.get_store_account(storeAccountId, user_id)
        if account is None:
            raise StoreAccountNotFoundError(f"Store account {storeAccountId!r} not found")

        chosen = _pick_platform(platform, account.platform, filename)
        logger.info(f"[{request_id}] Ingest start user={user_id} account={account.id} platform={chosen!r}")

        service = OrderIngestionService(storage)
        result = await service.ingest(
            content,
            filename,
            chosen,
            StoreAccountRef(id=account.id, name=account.name, platform=account.platform),
            user_id,
        )
        logger.info(
            f"[{request_id}] Ingest done new={result.new_orders_count} "
            f"skipped={result.skipped_count} invalid={result.invalid_count} upload={result.upload_id}"
        )
        return result.to_dict()

    except (HTTPException, IngestionError):
        raise
    except Exception as e:
        logger.exception(f"[{request_id}] Upload failed: {e}")
        raise HTTPException(status_code=500, detail=f"Upload failed: {str(e)}")


@router.post("/orders/upload/preview")
async def preview_upload(
    file: UploadFile = File(...),
    platform: Optional[str] = Form(None),
    storeAccountId: Optional[str] = Form(None),
    userId: str = Form(...),
    storage: StorageService = Depends(get_storage),
):
    """Match/duplicate status per row, without writing anything."""
    request_id = str(uuid.uuid4())
    try:
        user_id = _require_user(userId)
        content, filename = await _read_upload(file, request_id)

        account_platform = None
        if storeAccountId:
            account = await storage.get_store_account(storeAccountId, user_id)
            if account is None:
                raise StoreAccountNotFoundError(f"Store account {storeAccountId!r} not found")
            account_platform = account.platform

        chosen = _pick_platform(platform, account_platform, filename)
        records = decode_records(content, filename)
        catalog_map, existing_ids = await OrderIngestionService(storage).load_snapshots(user_id)

        previews = preview_rows(records, chosen, catalog_map, existing_ids)
        summary = process_orders(chosen, records, catalog_map, existing_ids)
        logger.info(f"[{request_id}] Preview rows={len(previews)} platform={chosen!r}")

        return {
            "platform": resolve_platform(chosen),
            "rows": [p.to_dict() for p in previews],
            "missingSkus": collect_missing_skus(previews),
            "newOrdersCount": len(summary.new_orders),
            "skippedCount": summary.skipped_count,
            "invalidCount": summary.invalid_count,
        }

    except (HTTPException, IngestionError):
        raise
    except Exception as e:
        logger.exception(f"[{request_id}] Preview failed: {e}")
        raise HTTPException(status_code=500, detail=f"Preview failed: {str(e)}")


@router.get("/uploads")
async def list_uploads(
    userId: str = Query(...),
    limit: int = Query(10, ge=1, le=100),
    storage: StorageService = Depends(get_storage),
):
    user_id = _require_user(userId)
    uploads = await storage.get_recent_uploads(user_id, limit)
    return {"uploads": [serialize_upload(u) for u in uploads]}
