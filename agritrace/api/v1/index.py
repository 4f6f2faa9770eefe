from fastapi import APIRouter, Depends, HTTPException, status
from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from agritrace.core.config import settings
from agritrace.db.core import get_session
from agritrace.db.schema import Batch

router = APIRouter()


@router.get("/", status_code=status.HTTP_200_OK)
def index():
    return {"status": "API is running", "service": settings.app_name}


@router.get(
    "/readiness",
    status_code=status.HTTP_200_OK,
    summary="Readiness probe",
    description="Ready once the database answers and the batch table exists."
)
def readiness_check(session: Session = Depends(get_session)):
    try:
        session.exec(select(Batch.id).limit(1)).first()
    except SQLAlchemyError:
        logger.exception("Readiness check failed: batch table unreachable")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Database not ready"
        )

    return {"status": "ready", "database": "online"}
