"""User preference CRUD service and the lookup used by the dashboard."""

import json
import logging
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from advisor.errors import PreferenceLookupFailed
from advisor.models.content import UserPreferences
from advisor.models.preferences import UserPreference

logger = logging.getLogger(__name__)


def _load_list(raw: str | None) -> list[str]:
    if not raw:
        return []
    try:
        value = json.loads(raw)
    except ValueError:
        return []
    return [str(v) for v in value] if isinstance(value, list) else []


def to_preferences(row: UserPreference) -> UserPreferences:
    return UserPreferences(
        assets=_load_list(row.assets),
        investor_type=row.investor_type or "",
        content_types=_load_list(row.content_types),
    )


class PreferenceService:
    """Stores one preference row per user (the onboarding answers)."""

    async def get_row(self, session: AsyncSession, user_id: str) -> UserPreference | None:
        result = await session.execute(
            select(UserPreference).where(UserPreference.user_id == str(user_id))
        )
        return result.scalars().first()

    async def get_preferences(self, session: AsyncSession, user_id: str) -> UserPreferences | None:
        row = await self.get_row(session, user_id)
        return to_preferences(row) if row else None

    async def upsert_preferences(
        self,
        session: AsyncSession,
        user_id: str,
        assets: list[str] | None,
        investor_type: str | None,
        content_types: list[str] | None,
    ) -> UserPreference:
        row = await self.get_row(session, user_id)
        if row is None:
            row = UserPreference(user_id=str(user_id))
            session.add(row)
        row.assets = json.dumps(list(assets or []))
        row.investor_type = investor_type or ""
        row.content_types = json.dumps(list(content_types or []))
        row.updated_at = datetime.now().isoformat()
        await session.commit()
        return row


class PreferenceStore:
    """``get(user_id)`` over a session factory, for callers outside a request."""

    def __init__(self, session_factory: async_sessionmaker, service: PreferenceService | None = None):
        self._session_factory = session_factory
        self._service = service or preference_service

    async def get(self, user_id) -> UserPreferences | None:
        try:
            async with self._session_factory() as session:
                return await self._service.get_preferences(session, str(user_id))
        except SQLAlchemyError as e:
            logger.error(f"Preference lookup failed for user {user_id}: {e}")
            raise PreferenceLookupFailed(str(e)) from e


preference_service = PreferenceService()
