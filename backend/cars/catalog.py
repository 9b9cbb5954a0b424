"""Read-only car lookups used by the booking core."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable

from .models import Car


@dataclass(frozen=True)
class CarSnapshot:
    """Price, deposit and owner of a car at the moment it was read."""

    id: int
    owner_id: int
    brand: str
    model: str
    license_plate: str
    price_per_day: Decimal
    deposit: Decimal
    is_available: bool

    @property
    def display_name(self) -> str:
        return f"{self.brand} {self.model} ({self.license_plate})"

    @classmethod
    def from_car(cls, car: Car) -> "CarSnapshot":
        return cls(
            id=car.pk,
            owner_id=car.owner_id,
            brand=car.brand,
            model=car.model,
            license_plate=car.license_plate,
            price_per_day=car.base_price_per_day,
            deposit=car.required_deposit,
            is_available=car.is_available,
        )


def get_cars(car_ids: Iterable[int]) -> dict[int, CarSnapshot]:
    """Return snapshots keyed by id; unknown ids are simply absent."""
    ids = set(car_ids)
    if not ids:
        return {}
    return {car.pk: CarSnapshot.from_car(car) for car in Car.objects.filter(pk__in=ids)}
