from datetime import datetime

from sqlalchemy import BigInteger, DateTime, ForeignKey, Index, Integer, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from backend.app.db.base import Base


class InviteUse(Base):
    __tablename__ = "invite_uses"
    __table_args__ = (
        UniqueConstraint("giveaway_id", "invitee_user_id", name="uq_invite_uses_giveaway_invitee"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    giveaway_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("giveaways.id"), nullable=False
    )
    referrer_participant_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("participants.id"), nullable=False
    )
    invitee_user_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    referrer_points: Mapped[int] = mapped_column(Integer, nullable=False)
    invitee_points: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


Index("ix_invite_uses_referrer", InviteUse.referrer_participant_id)
