import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.orm import Session

from focusapi.database.session import get_db
from focusapi.schemas.health import HealthCheckResponse

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health", response_model=HealthCheckResponse)
def health_check(db: Session = Depends(get_db)):
    """Health check endpoint."""
    try:
        db.execute(text("SELECT 1"))
    except Exception as e:
        logger.error(f"Health check database probe failed: {str(e)}")
        body = HealthCheckResponse(status="unhealthy", database="error", error=str(e))
        return JSONResponse(status_code=503, content=body.model_dump())

    return HealthCheckResponse()
