from sqlalchemy import Column, DateTime, Integer, String, UniqueConstraint, func

from comanda.core.database import Base
from comanda.core.timeutils import utcnow


class IdempotencyKey(Base):
    __tablename__ = "idempotency_keys"
    __table_args__ = (UniqueConstraint("venue_id", "key", name="uq_idempotency_keys_venue_key"),)

    id = Column(Integer, primary_key=True)
    venue_id = Column(Integer, nullable=False, index=True)
    key = Column(String(128), nullable=False)
    operation = Column(String(64), nullable=False)
    entity_id = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)
