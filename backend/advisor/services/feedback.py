"""Like/dislike votes on dashboard content."""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from advisor.models.preferences import FeedbackVote

VOTE_VALUES = {-1, 0, 1}


class FeedbackService:
    """One vote per (user, target type, target id); same vote twice toggles it off."""

    async def query_votes(
        self, session: AsyncSession, user_id: str, target_type: str, target_ids: list[str]
    ) -> dict[str, int]:
        if not target_ids:
            return {}
        result = await session.execute(
            select(FeedbackVote).where(
                FeedbackVote.user_id == str(user_id),
                FeedbackVote.target_type == target_type,
                FeedbackVote.target_id.in_(target_ids),
            )
        )
        return {v.target_id: v.vote for v in result.scalars().all()}

    async def _upsert(
        self, session: AsyncSession, user_id: str, target_type: str, target_id: str, vote: int
    ) -> None:
        result = await session.execute(
            select(FeedbackVote).where(
                FeedbackVote.user_id == str(user_id),
                FeedbackVote.target_type == target_type,
                FeedbackVote.target_id == target_id,
            )
        )
        row = result.scalars().first()
        if row is None:
            session.add(
                FeedbackVote(
                    user_id=str(user_id), target_type=target_type, target_id=target_id, vote=vote
                )
            )
        else:
            row.vote = vote
        await session.commit()

    async def set_vote(
        self, session: AsyncSession, user_id: str, target_type: str, target_id: str, vote: int
    ) -> int:
        """Store ``vote`` and return the final value (0 when toggled off)."""
        if vote not in VOTE_VALUES:
            raise ValueError(f"vote must be one of {sorted(VOTE_VALUES)}")
        current = (await self.query_votes(session, user_id, target_type, [target_id])).get(target_id, 0)
        final = 0 if current == vote else vote
        await self._upsert(session, user_id, target_type, target_id, final)
        return final

    async def clear_vote(
        self, session: AsyncSession, user_id: str, target_type: str, target_id: str
    ) -> None:
        await self._upsert(session, user_id, target_type, target_id, 0)


feedback_service = FeedbackService()
