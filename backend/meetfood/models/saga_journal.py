"""
Saga journal: persisted high-water mark of multi-step deletions.
"""
import uuid
from datetime import datetime
from sqlalchemy import Column, String, DateTime, Text
from sqlalchemy.dialects.postgresql import UUID, JSONB

from meetfood.db.base import Base


class SagaJournal(Base):
    """One row per saga run, keyed by operation + target id."""

    __tablename__ = "saga_journal"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    operation = Column(String(100), nullable=False, index=True)
    key = Column(String(255), unique=True, nullable=False, index=True)

    # Status values: running, failed, completed
    status = Column(String(20), default="running", nullable=False)
    completed_steps = Column(JSONB, default=lambda: [], nullable=False)
    # Values captured before the first step, needed to resume after the
    # source documents are gone
    context = Column(JSONB, default=lambda: {}, nullable=False)
    last_error = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f"<SagaJournal(key={self.key}, status={self.status})>"
