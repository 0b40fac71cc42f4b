# recordshop/api/routers/records.py
from fastapi import APIRouter, Depends, HTTPException, Query

from recordshop.api.deps import get_record_service
from recordshop.domain.errors import ConfigurationError, InvalidExternalId, RetryExhaustedError
from recordshop.domain.ids import parse_external_id
from recordshop.services.record_service import CATEGORIES, SORTS, RecordService
from recordshop.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/records", tags=["records"])


@router.get("/")
def search_records(
    search: str | None = Query(None, max_length=200),
    sort: str | None = Query(None),
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    category: str = Query("everything"),
    cb: str | None = Query(None, description="Cache buster - krotszy TTL"),
    records: RecordService = Depends(get_record_service),
):
    if sort is not None and sort not in SORTS:
        raise HTTPException(status_code=400, detail=f"Unknown sort: {sort}")
    if category not in CATEGORIES:
        raise HTTPException(status_code=400, detail=f"Unknown category: {category}")
    return records.search_inventory(search, sort, page, per_page, category, cb)


@router.get("/{listing_id}")
def get_record(listing_id: str, records: RecordService = Depends(get_record_service)):
    try:
        record = records.get_record(parse_external_id(listing_id))
    except InvalidExternalId as e:
        raise HTTPException(status_code=400, detail=str(e))
    except (RetryExhaustedError, ConfigurationError) as e:
        logger.error(f"Marketplace unavailable for record {listing_id}: {e}")
        raise HTTPException(status_code=503, detail="Marketplace unavailable, please try again")

    if record is None:
        raise HTTPException(status_code=404, detail="Record not found")
    return record
