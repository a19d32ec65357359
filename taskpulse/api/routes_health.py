from fastapi import APIRouter, Depends
from loguru import logger
from sqlalchemy import text

from taskpulse.api.deps import get_session_factory
from taskpulse.db.session import SessionFactory
from taskpulse.errors import StoreError

router = APIRouter()


@router.get("/health")
def health(session_factory: SessionFactory = Depends(get_session_factory)) -> dict:
    try:
        with session_factory() as session:
            session.execute(text("SELECT 1"))
    except StoreError as exc:
        logger.error("health db check failed: {}", exc)
        return {"ok": False, "db": False}
    return {"ok": True, "db": True}
