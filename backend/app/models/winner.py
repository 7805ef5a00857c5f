from datetime import datetime

from sqlalchemy import BigInteger, DateTime, Enum, ForeignKey, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column

from backend.app.db.base import Base
from backend.app.models.enums import SelectionMode


class WinnerLog(Base):
    __tablename__ = "winner_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    giveaway_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("giveaways.id"), nullable=False, index=True
    )
    winner_user_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    selection_mode: Mapped[SelectionMode] = mapped_column(
        Enum(SelectionMode, name="selection_mode"), nullable=False
    )
    selected_by: Mapped[int | None] = mapped_column(BigInteger)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    pool_size: Mapped[int] = mapped_column(Integer, nullable=False)
    selected_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
