from __future__ import annotations

import datetime as dt
import logging
from dataclasses import dataclass

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session, sessionmaker

from .domain import utcnow
from .models import StreamingSession

logger = logging.getLogger(__name__)

STARTED = "STARTED"
STREAMING = "STREAMING"
COMPLETED = "COMPLETED"
ERROR = "ERROR"
CANCELLED = "CANCELLED"

ACTIVE_STATUSES = (STARTED, STREAMING)


@dataclass(frozen=True)
class StreamingStats:
    active_sessions: int
    total_sessions: int
    total_bytes: int
    avg_duration_ms: float


@dataclass(frozen=True)
class FileStreamingStats:
    file_id: str
    stream_count: int
    total_bytes_sent: int


class StreamingMonitor:
    """
    Учёт сессий отдачи файлов. Ошибки учёта логируются и не прерывают стрим.
    """

    def __init__(self, session_factory: sessionmaker[Session]):
        self._session_factory = session_factory

    def start_session(
        self,
        file_id: str,
        client_ip: str | None = None,
        user_agent: str | None = None,
        range_start: int | None = None,
        range_end: int | None = None,
    ) -> int | None:
        try:
            with self._session_factory() as db:
                session = StreamingSession(
                    file_id=file_id,
                    client_ip=client_ip,
                    user_agent=(user_agent or "")[:500] or None,
                    range_start=range_start,
                    range_end=range_end,
                    bytes_sent=0,
                    status=STARTED,
                    started_at=utcnow(),
                )
                db.add(session)
                db.commit()
                logger.debug("Streaming session started: id=%s file=%s", session.id, file_id)
                return session.id
        except Exception:
            logger.exception("Failed to record streaming session for %s", file_id)
            return None

    def update_progress(self, session_id: int | None, bytes_sent: int):
        self._finish(session_id, STREAMING, bytes_sent, ended=False)

    def complete_session(self, session_id: int | None, bytes_sent: int, duration_ms: int):
        self._finish(session_id, COMPLETED, bytes_sent, duration_ms=duration_ms)

    def error_session(self, session_id: int | None, bytes_sent: int):
        self._finish(session_id, ERROR, bytes_sent)

    def cancel_session(self, session_id: int | None, bytes_sent: int):
        self._finish(session_id, CANCELLED, bytes_sent)

    def _finish(
        self,
        session_id: int | None,
        status: str,
        bytes_sent: int,
        duration_ms: int | None = None,
        ended: bool = True,
    ):
        if session_id is None:
            return
        try:
            with self._session_factory() as db:
                session = db.get(StreamingSession, session_id)
                if session is None:
                    return
                session.status = status
                session.bytes_sent = bytes_sent
                if duration_ms is not None:
                    session.duration_ms = duration_ms
                if ended:
                    session.ended_at = utcnow()
                db.commit()
        except Exception:
            logger.exception("Failed to update streaming session %s to %s", session_id, status)

    def recent_sessions(self, limit: int = 20) -> list[StreamingSession]:
        with self._session_factory() as db:
            return list(
                db.execute(
                    select(StreamingSession)
                    .order_by(StreamingSession.started_at.desc(), StreamingSession.id.desc())
                    .limit(limit)
                ).scalars().all()
            )

    def stats(self) -> StreamingStats:
        with self._session_factory() as db:
            active = db.execute(
                select(func.count()).select_from(StreamingSession).where(StreamingSession.status.in_(ACTIVE_STATUSES))
            ).scalar_one()
            total = db.execute(select(func.count()).select_from(StreamingSession)).scalar_one()
            total_bytes = db.execute(select(func.coalesce(func.sum(StreamingSession.bytes_sent), 0))).scalar_one()
            avg_duration = db.execute(
                select(func.avg(StreamingSession.duration_ms)).where(StreamingSession.duration_ms.is_not(None))
            ).scalar_one()
        return StreamingStats(
            active_sessions=active,
            total_sessions=total,
            total_bytes=int(total_bytes),
            avg_duration_ms=float(avg_duration or 0.0),
        )

    def file_stats(self, file_id: str) -> FileStreamingStats:
        with self._session_factory() as db:
            count, total = db.execute(
                select(func.count(), func.coalesce(func.sum(StreamingSession.bytes_sent), 0))
                .where(StreamingSession.file_id == file_id)
            ).one()
        return FileStreamingStats(file_id=file_id, stream_count=count, total_bytes_sent=int(total))

    def cleanup(self, retention_days: int) -> int:
        cutoff = utcnow() - dt.timedelta(days=retention_days)
        logger.info("Cleaning up streaming sessions older than %s", cutoff.isoformat())
        with self._session_factory() as db:
            result = db.execute(delete(StreamingSession).where(StreamingSession.started_at < cutoff))
            db.commit()
        logger.info("Deleted %d old streaming sessions", result.rowcount)
        return result.rowcount
