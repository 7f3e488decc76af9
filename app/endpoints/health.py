from datetime import datetime
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.core.cache import CacheManager
from app.core.database import check_database
from app.schemas.health import HealthStatus
from app.utils import deps

router = APIRouter()


@router.get("/health", response_model=HealthStatus)
async def health(
    db: Session = Depends(deps.get_db),
    cache: CacheManager = Depends(deps.get_cache),
):
    database_ok = check_database(db)
    if cache.enabled:
        cache_state = "CONNECTED" if await cache.health_check() else "DISCONNECTED"
    else:
        cache_state = "DISABLED"

    return HealthStatus(
        status="UP" if database_ok and cache_state == "CONNECTED" else "DEGRADED",
        database="CONNECTED" if database_ok else "DISCONNECTED",
        cache=cache_state,
        timestamp=datetime.utcnow().isoformat(),
    )
