# backend/session.py

import logging
from typing import Optional

import redis.asyncio as redis

from config.settings import settings

from .errors import SessionBusyError
from .model import ThumbnailSession

logger = logging.getLogger(__name__)

SESSION_KEY_PREFIX = "session:"        # session:{session_id}
ACTIVE_JOB_PREFIX = "active_job:"      # active_job:{session_id}

# Lock outlives the poll ceiling a little so a crashed request frees it
ACTIVE_JOB_TTL = int(settings.POLL_INTERVAL * settings.MAX_POLL_ATTEMPTS) + 60


async def get_redis_client() -> redis.Redis:
    return redis.from_url(settings.REDIS_URL, decode_responses=True)


class SessionStore:
    """
    Per-session state: the last generation request, the current thumbnails
    and the selected one, plus the one-active-job guard.
    """

    def __init__(self, rds: redis.Redis, ttl: int = settings.SESSION_TTL):
        self.rds = rds
        self.ttl = ttl

    async def load(self, session_id: str) -> Optional[ThumbnailSession]:
        data = await self.rds.get(f"{SESSION_KEY_PREFIX}{session_id}")
        if not data:
            return None
        return ThumbnailSession.model_validate_json(data)

    async def load_or_new(self, session_id: str) -> ThumbnailSession:
        return await self.load(session_id) or ThumbnailSession(session_id=session_id)

    async def save(self, session: ThumbnailSession) -> None:
        await self.rds.set(
            f"{SESSION_KEY_PREFIX}{session.session_id}",
            session.model_dump_json(),
            ex=self.ttl,
        )

    async def acquire(self, session_id: str, ttl: int = ACTIVE_JOB_TTL) -> None:
        """Mark a job active for the session, or fail if one already is."""
        ok = await self.rds.set(f"{ACTIVE_JOB_PREFIX}{session_id}", "1", nx=True, ex=ttl)
        if not ok:
            logger.warning("Session %s already has an active job", session_id)
            raise SessionBusyError()

    async def release(self, session_id: str) -> None:
        await self.rds.delete(f"{ACTIVE_JOB_PREFIX}{session_id}")
