"""UserPreference and FeedbackVote models."""

from datetime import datetime
from sqlalchemy import Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from advisor.models.database import Base


class UserPreference(Base):
    __tablename__ = "user_preference"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), unique=True, index=True)
    assets: Mapped[str] = mapped_column(Text, default="[]")  # JSON list of asset ids
    investor_type: Mapped[str] = mapped_column(String(30), default="")
    content_types: Mapped[str] = mapped_column(Text, default="[]")  # JSON list
    created_at: Mapped[str] = mapped_column(
        String(30), default=lambda: datetime.now().isoformat()
    )
    updated_at: Mapped[str] = mapped_column(
        String(30), default=lambda: datetime.now().isoformat()
    )


class FeedbackVote(Base):
    __tablename__ = "feedback_vote"
    __table_args__ = (UniqueConstraint("user_id", "target_type", "target_id"),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), index=True)
    target_type: Mapped[str] = mapped_column(String(20))  # "news" | "meme" | "ai" | ...
    target_id: Mapped[str] = mapped_column(String(200))
    vote: Mapped[int] = mapped_column(Integer, default=0)  # -1, 0, 1
    created_at: Mapped[str] = mapped_column(
        String(30), default=lambda: datetime.now().isoformat()
    )
