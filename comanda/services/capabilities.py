from __future__ import annotations

from dataclasses import dataclass

from comanda.core.errors import FeatureDisabledError
from comanda.models.venue import Venue


@dataclass(frozen=True)
class VenueCapabilities:
    venue_id: int
    orders_enabled: bool
    kitchen_enabled: bool
    reports_enabled: bool

    @classmethod
    def from_venue(cls, venue: Venue) -> "VenueCapabilities":
        return cls(
            venue_id=int(venue.id),
            orders_enabled=bool(venue.has_orders),
            kitchen_enabled=bool(venue.has_kitchen),
            reports_enabled=bool(venue.has_reports),
        )

    def require_orders(self) -> None:
        if not self.orders_enabled:
            raise FeatureDisabledError("Módulo de comandas desabilitado para este estabelecimento")

    def require_kitchen(self) -> None:
        if not self.kitchen_enabled:
            raise FeatureDisabledError("Módulo de cozinha desabilitado para este estabelecimento")
