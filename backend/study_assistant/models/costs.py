"""
SQLAlchemy ORM Model — AI cost ledger (one row per provider call).
"""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import DateTime, Index, Integer, Numeric, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from study_assistant.models.base import Base, JSONType, utcnow


class AICost(Base):
    __tablename__ = "ai_costs"
    __table_args__ = (
        Index("idx_ai_costs_user_created", "user_id", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id:     Mapped[uuid.UUID]           = mapped_column(Uuid, nullable=False)
    document_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)

    # summary | notes | flashcards | quiz | qa | verify_answer | ...
    operation:  Mapped[str] = mapped_column(String(32), nullable=False)
    model_name: Mapped[str] = mapped_column(String(64), nullable=False)

    input_tokens:  Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    output_tokens: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_tokens:  Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    cost_usd: Mapped[Decimal] = mapped_column(Numeric(12, 8), nullable=False, default=Decimal("0"))
    cost_metadata: Mapped[dict] = mapped_column(
        "metadata", JSONType, nullable=False, default=dict,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow,
    )
