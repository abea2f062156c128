from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, Integer, Numeric, String, func

from comanda.core.database import Base
from comanda.core.timeutils import utcnow


class Product(Base):
    __tablename__ = "products"
    __table_args__ = (Index("ix_products_venue_active", "venue_id", "active"),)

    id = Column(Integer, primary_key=True)
    venue_id = Column(Integer, ForeignKey("venues.id"), index=True, nullable=False)
    name = Column(String, nullable=False)
    price = Column(Numeric(10, 2), nullable=False)
    active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)
