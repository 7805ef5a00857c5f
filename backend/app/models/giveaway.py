from datetime import datetime

from sqlalchemy import BigInteger, Boolean, DateTime, Enum, Index, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column

from backend.app.db.base import Base
from backend.app.models.enums import GiveawayStatus, SelectionMode


class Giveaway(Base):
    __tablename__ = "giveaways"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    slug: Mapped[str] = mapped_column(Text, unique=True, nullable=False)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    image_url: Mapped[str | None] = mapped_column(Text)
    prize_details: Mapped[str] = mapped_column(Text, nullable=False, default="")
    status: Mapped[GiveawayStatus] = mapped_column(
        Enum(GiveawayStatus, name="giveaway_status"), nullable=False
    )
    start_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    end_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    max_extensions: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    extensions_used: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    invites_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    invite_cap: Mapped[int] = mapped_column(Integer, nullable=False)
    invite_points_per_referral: Mapped[int] = mapped_column(Integer, nullable=False)
    invite_points_for_invitee: Mapped[int] = mapped_column(Integer, nullable=False)
    winner_id: Mapped[int | None] = mapped_column(BigInteger)
    winner_selection_mode: Mapped[SelectionMode | None] = mapped_column(
        Enum(SelectionMode, name="selection_mode")
    )
    created_by: Mapped[int | None] = mapped_column(BigInteger)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


Index("ix_giveaways_status_start_date", Giveaway.status, Giveaway.start_date)
Index("ix_giveaways_end_date", Giveaway.end_date)
