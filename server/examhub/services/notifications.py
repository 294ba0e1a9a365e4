"""
SSE (Server-Sent Events) fan-out of roster and submission events to teachers.

Delivery is best effort: a publish never waits on a slow dashboard, and a
stream whose queue is full loses the event.
"""
import asyncio
import json
import logging
from datetime import datetime, timezone
from typing import List, Optional

from examhub.config import settings

logger = logging.getLogger(__name__)

EXAM_SUBMITTED = "exam-submitted"
STUDENT_ADDED = "student-added"
STUDENT_DELETED = "student-deleted"


class TeacherNotifier:
    """Manages SSE connections of teacher dashboards."""

    def __init__(self, max_queue_size: Optional[int] = None):
        self.max_queue_size = max_queue_size if max_queue_size is not None else settings.sse_queue_size
        self.active_connections: List[asyncio.Queue] = []

    async def connect(self) -> asyncio.Queue:
        """Create a new connection for a teacher stream."""
        queue: asyncio.Queue = asyncio.Queue(maxsize=self.max_queue_size)
        self.active_connections.append(queue)
        return queue

    def disconnect(self, queue: asyncio.Queue) -> None:
        if queue in self.active_connections:
            self.active_connections.remove(queue)

    async def broadcast(self, event: str, payload: dict) -> int:
        """Hand an event to every connected stream; returns how many took it."""
        message = {"event": event, "data": {**payload, "timestamp": datetime.now(timezone.utc).isoformat()}}
        delivered = 0
        for queue in list(self.active_connections):
            try:
                queue.put_nowait(message)
                delivered += 1
            except asyncio.QueueFull:
                logger.warning("Teacher stream queue full, dropping %s event", event)
        return delivered


def format_sse(message: dict) -> str:
    data = json.dumps(message["data"], ensure_ascii=False, default=str)
    return f"event: {message['event']}\ndata: {data}\n\n"


# Global notifier instance
teacher_notifier = TeacherNotifier()
