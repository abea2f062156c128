from sqlalchemy import Boolean, Column, DateTime, Integer, String, func

from comanda.core.database import Base
from comanda.core.timeutils import utcnow


class Venue(Base):
    __tablename__ = "venues"

    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False, default="Estabelecimento")
    slug = Column(String, unique=True, index=True, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)

    # Módulos contratados pelo estabelecimento
    has_orders = Column(Boolean, nullable=False, default=True)
    has_kitchen = Column(Boolean, nullable=False, default=False)
    has_reports = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now())
