from fastapi import APIRouter, Request
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

router = APIRouter(tags=["Health"])


@router.get("/health")
def health(request: Request):
    state = request.app.state
    db_ok = True
    try:
        with state.session_factory() as db:
            db.execute(text("SELECT 1"))
    except SQLAlchemyError:
        db_ok = False
    return {
        "status": "ok" if db_ok else "degraded",
        "database": db_ok,
        "app": state.settings.APP_NAME,
        "version": state.settings.APP_VERSION,
    }
