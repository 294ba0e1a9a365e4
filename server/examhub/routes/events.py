import asyncio
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from examhub.config import settings
from examhub.database import get_db
from examhub.errors import PermissionDenied
from examhub.models import User
from examhub.security import user_from_token
from examhub.services.notifications import format_sse, teacher_notifier

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Events"])


def teacher_from_query_token(token: Optional[str] = Query(None), db: Session = Depends(get_db)) -> User:
    # EventSource cannot send headers, so the token comes in the query string
    user = user_from_token(db, token)
    if not user.is_teacher:
        raise PermissionDenied("Access denied. Teacher or admin role required.")
    return user


@router.get("/teachers")
async def teacher_events(request: Request, teacher: User = Depends(teacher_from_query_token)):
    """
    SSE stream of student-added, student-deleted and exam-submitted events
    for teacher dashboards.
    """
    teacher_id = teacher.id

    async def event_generator():
        queue = await teacher_notifier.connect()
        logger.info("Teacher %s connected to event stream", teacher_id)
        try:
            yield ": connected\n\n"
            while True:
                if await request.is_disconnected():
                    break
                try:
                    message = await asyncio.wait_for(queue.get(), timeout=settings.sse_keepalive_seconds)
                    yield format_sse(message)
                except asyncio.TimeoutError:
                    yield ": ping\n\n"
        except asyncio.CancelledError:
            pass
        finally:
            teacher_notifier.disconnect(queue)
            logger.info("Teacher %s disconnected from event stream", teacher_id)

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )
