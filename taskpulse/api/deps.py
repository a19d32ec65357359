from fastapi import HTTPException, Request

from taskpulse.board.planka_client import PlankaClient
from taskpulse.db.session import SessionFactory, get_session
from taskpulse.errors import AppError, BoardError, InvalidStatusTransition, NotFound, StoreError, user_message
from taskpulse.jobs.scheduler import JobScheduler

_STATUS_CODES = {
    NotFound: 404,
    InvalidStatusTransition: 409,
    BoardError: 502,
    StoreError: 503,
}


def get_scheduler(request: Request) -> JobScheduler:
    scheduler = getattr(request.app.state, "scheduler", None)
    if scheduler is None:
        raise HTTPException(status_code=503, detail="Scheduler is not running")
    return scheduler


def get_board(request: Request) -> PlankaClient:
    board = getattr(request.app.state, "board", None)
    if board is None:
        raise HTTPException(status_code=503, detail="Board client is not configured")
    return board


def get_session_factory(request: Request) -> SessionFactory:
    return getattr(request.app.state, "session_factory", None) or get_session


def http_error(exc: AppError) -> HTTPException:
    for error_type, status_code in _STATUS_CODES.items():
        if isinstance(exc, error_type):
            break
    else:
        status_code = 500
    return HTTPException(
        status_code=status_code,
        detail={"code": exc.code, "message": user_message(exc), "meta": exc.meta},
    )
