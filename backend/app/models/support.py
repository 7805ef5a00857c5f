from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column

from backend.app.db.base import Base


class Support(Base):
    __tablename__ = "supports"
    __table_args__ = (CheckConstraint("amount > 0", name="ck_supports_amount_positive"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    giveaway_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("giveaways.id"), nullable=False
    )
    user_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    donor_name: Mapped[str] = mapped_column(Text, nullable=False, default="")
    donor_email: Mapped[str] = mapped_column(Text, nullable=False, default="")
    is_anonymous: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


Index("ix_supports_giveaway_id", Support.giveaway_id)
Index("ix_supports_giveaway_user", Support.giveaway_id, Support.user_id)
