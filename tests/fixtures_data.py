"""Conjunto de dados reutilizável para cenários de teste backend."""
from __future__ import annotations

from decimal import Decimal

from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from comanda.core.database import Base, get_db
from comanda.middleware.venue_context import VenueContextMiddleware
from comanda.models.product import Product
from comanda.models.venue import Venue
from comanda.routers.events import router as events_router
from comanda.routers.kitchen import router as kitchen_router
from comanda.routers.orders import router as orders_router
from comanda.routers.payments import router as payments_router

KITCHEN_VENUE_ID = 1
BAR_VENUE_ID = 2
OTHER_VENUE_ID = 3
INACTIVE_VENUE_ID = 4

CASHIER_ID = 7

PRODUCT_A = {"id": 101, "venue_id": KITCHEN_VENUE_ID, "name": "Burger Classic", "price": Decimal("8.00")}
PRODUCT_B = {"id": 102, "venue_id": KITCHEN_VENUE_ID, "name": "Batata Frita", "price": Decimal("5.00")}
INACTIVE_PRODUCT = {"id": 103, "venue_id": KITCHEN_VENUE_ID, "name": "Milkshake", "price": Decimal("12.00")}
BAR_PRODUCT = {"id": 201, "venue_id": BAR_VENUE_ID, "name": "Chopp", "price": Decimal("9.90")}
OTHER_VENUE_PRODUCT = {"id": 301, "venue_id": OTHER_VENUE_ID, "name": "Pizza", "price": Decimal("40.00")}

HAPPY_PATH_ORDER_PAYLOAD = {
    "code": "Mesa 4",
    "customer_name": "João",
    "items": [
        {"product_id": PRODUCT_A["id"], "qty": 2, "note": "sem cebola"},
        {"product_id": PRODUCT_B["id"], "qty": 1},
    ],
}

HAPPY_PATH_TOTAL = "21.00"


def seed(db: Session) -> None:
    db.add(Venue(id=KITCHEN_VENUE_ID, name="Lanchonete", slug="lanchonete", has_orders=True, has_kitchen=True))
    db.add(Venue(id=BAR_VENUE_ID, name="Bar", slug="bar", has_orders=True, has_kitchen=False))
    db.add(Venue(id=OTHER_VENUE_ID, name="Pizzaria", slug="pizzaria", has_orders=False, has_kitchen=True))
    db.add(Venue(id=INACTIVE_VENUE_ID, name="Fechado", slug="fechado", is_active=False))
    db.flush()
    for product in (PRODUCT_A, PRODUCT_B, BAR_PRODUCT, OTHER_VENUE_PRODUCT):
        db.add(Product(active=True, **product))
    db.add(Product(active=False, **INACTIVE_PRODUCT))
    db.commit()


def build_session_factory(url: str = "sqlite+pysqlite:///:memory:") -> sessionmaker:
    if url.endswith(":memory:"):
        engine = create_engine(url, connect_args={"check_same_thread": False}, poolclass=StaticPool)
    else:
        engine = create_engine(url, connect_args={"check_same_thread": False, "timeout": 30})
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    db = factory()
    try:
        seed(db)
    finally:
        db.close()
    return factory


def build_client() -> tuple[TestClient, Session]:
    factory = build_session_factory()
    db = factory()

    app = FastAPI()
    app.add_middleware(VenueContextMiddleware)
    app.include_router(orders_router)
    app.include_router(payments_router)
    app.include_router(kitchen_router)
    app.include_router(events_router)
    app.dependency_overrides[get_db] = lambda: db

    return TestClient(app), db


def headers(venue_id: int = KITCHEN_VENUE_ID, user_id: int = CASHIER_ID, **extra: str) -> dict:
    data = {"X-Venue-ID": str(venue_id), "X-User-ID": str(user_id)}
    data.update(extra)
    return data
