from __future__ import annotations

import math
from typing import Dict, Mapping, Optional

from app.core.errors import ConfigurationError, ValidationError
from app.models.domain import PriceQuote, TowTruckRate, TowTruckType, VehicleSize

SIZE_TO_TOW_TRUCK: Dict[str, TowTruckType] = {
    VehicleSize.small.value: TowTruckType.light_duty,
    VehicleSize.medium.value: TowTruckType.standard,
    VehicleSize.large.value: TowTruckType.heavy_duty,
    VehicleSize.extra_large.value: TowTruckType.flatbed,
}

TOW_TRUCK_RATES: Dict[TowTruckType, TowTruckRate] = {
    TowTruckType.light_duty: TowTruckRate(base_price=35.0, per_km=1.5),
    TowTruckType.standard: TowTruckRate(base_price=50.0, per_km=2.0),
    TowTruckType.heavy_duty: TowTruckRate(base_price=75.0, per_km=2.5),
    TowTruckType.flatbed: TowTruckRate(base_price=100.0, per_km=3.0),
}

# Lower-cased model name -> size bucket.
VEHICLE_MODEL_SIZES: Dict[str, VehicleSize] = {
    "mini cooper": VehicleSize.small,
    "fiat 500": VehicleSize.small,
    "yaris": VehicleSize.small,
    "fit": VehicleSize.small,
    "civic": VehicleSize.medium,
    "corolla": VehicleSize.medium,
    "golf": VehicleSize.medium,
    "model 3": VehicleSize.medium,
    "camry": VehicleSize.medium,
    "rav4": VehicleSize.large,
    "cr-v": VehicleSize.large,
    "explorer": VehicleSize.large,
    "model x": VehicleSize.large,
    "f-150": VehicleSize.extra_large,
    "silverado": VehicleSize.extra_large,
    "sprinter": VehicleSize.extra_large,
}


def get_vehicle_size(vehicle_model: str | None) -> Optional[str]:
    if not vehicle_model:
        return None
    size = VEHICLE_MODEL_SIZES.get(vehicle_model.strip().lower())
    return size.value if size else None


class PricingCalculator:
    """
    Resolves a tow-truck category from the vehicle size and prices the round
    trip: base + distance * per_km * 2. Unknown sizes or categories are a
    configuration problem and never fall back to a default tier.
    """

    def __init__(
        self,
        size_map: Mapping[str, TowTruckType] | None = None,
        rates: Mapping[TowTruckType, TowTruckRate] | None = None,
    ):
        self.size_map = dict(SIZE_TO_TOW_TRUCK if size_map is None else size_map)
        self.rates = dict(TOW_TRUCK_RATES if rates is None else rates)

    def get_tow_truck_type(self, vehicle_size: str | None) -> TowTruckType:
        key = vehicle_size.value if isinstance(vehicle_size, VehicleSize) else vehicle_size
        if not key or key not in self.size_map:
            raise ConfigurationError(
                f"No tow truck category configured for vehicle size {vehicle_size!r}"
            )
        return self.size_map[key]

    def get_tow_truck_pricing(self, tow_truck_type: TowTruckType) -> TowTruckRate:
        rate = self.rates.get(tow_truck_type)
        if rate is None:
            raise ConfigurationError(f"No rate configured for tow truck type {tow_truck_type!r}")
        return rate

    def calculate_total_cost(self, vehicle_size: str, distance: float) -> PriceQuote:
        if distance is None or not math.isfinite(distance) or distance < 0:
            raise ValidationError(
                "Distance must be a finite, non-negative number", {"distance": "must be >= 0"}
            )
        tow_truck_type = self.get_tow_truck_type(vehicle_size)
        rate = self.get_tow_truck_pricing(tow_truck_type)
        total = rate.base_price + distance * rate.per_km * 2
        return PriceQuote(
            vehicle_size=str(vehicle_size.value if isinstance(vehicle_size, VehicleSize) else vehicle_size),
            tow_truck_type=tow_truck_type,
            base_price=rate.base_price,
            per_km=rate.per_km,
            distance=float(distance),
            total_cost=round(total, 2),
        )


default_calculator = PricingCalculator()


def get_tow_truck_type(vehicle_size: str | None) -> TowTruckType:
    return default_calculator.get_tow_truck_type(vehicle_size)


def get_tow_truck_pricing(tow_truck_type: TowTruckType) -> TowTruckRate:
    return default_calculator.get_tow_truck_pricing(tow_truck_type)


def calculate_total_cost(vehicle_size: str, distance: float) -> PriceQuote:
    return default_calculator.calculate_total_cost(vehicle_size, distance)
