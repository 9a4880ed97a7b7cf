"""
Charge models turning aggregated units into an amount.

Amounts in charge properties are decimal strings in currency units.
"""

from dataclasses import dataclass
from decimal import ROUND_CEILING, ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from core.errors import ServiceFailure
from infrastructure.database.models import Charge, ChargeModel


@dataclass
class ChargeModelResult:
    units: Decimal
    amount: Decimal

    @property
    def amount_cents(self) -> int:
        return int((self.amount * 100).quantize(Decimal(1), rounding=ROUND_HALF_UP))


def _decimal(properties: dict[str, Any], key: str, default: Any = None) -> Decimal:
    value = properties.get(key, default)
    if value is None or isinstance(value, bool):
        raise ServiceFailure("invalid_charge_properties", f"{key} is missing or invalid")
    try:
        return Decimal(str(value))
    except InvalidOperation as e:
        raise ServiceFailure("invalid_charge_properties", f"{key} is not a number") from e


class BaseChargeModel:
    def __init__(self, charge: Charge):
        self.charge = charge
        self.properties = charge.properties or {}

    def compute_amount(self, units: Decimal) -> Decimal:
        raise NotImplementedError

    def apply(self, units: Decimal) -> ChargeModelResult:
        return ChargeModelResult(units=units, amount=self.compute_amount(units))


class StandardChargeModel(BaseChargeModel):
    def compute_amount(self, units: Decimal) -> Decimal:
        return units * _decimal(self.properties, "amount")


class GraduatedChargeModel(BaseChargeModel):
    """
    Tiered pricing: every range reached adds its flat amount plus its own units
    at its per unit amount. Ranges are ordered and the last one is open ended.
    """

    def _ranges(self) -> list[dict[str, Decimal | None]]:
        raw_ranges = self.properties.get("graduated_ranges")
        if not isinstance(raw_ranges, list) or not raw_ranges:
            raise ServiceFailure("invalid_charge_properties", "graduated_ranges are missing")

        ranges = []
        for raw in raw_ranges:
            if not isinstance(raw, dict):
                raise ServiceFailure("invalid_charge_properties", "graduated range is invalid")
            to_value = raw.get("to_value")
            ranges.append(
                {
                    "from_value": _decimal(raw, "from_value", 0),
                    "to_value": _decimal(raw, "to_value") if to_value is not None else None,
                    "per_unit_amount": _decimal(raw, "per_unit_amount", 0),
                    "flat_amount": _decimal(raw, "flat_amount", 0),
                }
            )
        ranges.sort(key=lambda item: item["from_value"])
        return ranges

    @staticmethod
    def _range_units(units: Decimal, from_value: Decimal, to_value: Decimal | None) -> Decimal:
        # Ranges after the first one start at the unit following the previous bound
        offset = Decimal(0) if from_value == 0 else Decimal(1)
        if to_value is not None and units >= to_value:
            return to_value - from_value + offset
        return units - from_value + offset

    def compute_amount(self, units: Decimal) -> Decimal:
        amount = Decimal(0)
        for item in self._ranges():
            if units > 0:
                amount += item["flat_amount"]
            amount += self._range_units(units, item["from_value"], item["to_value"]) * item["per_unit_amount"]

            if item["to_value"] is None or item["to_value"] >= units:
                break
        return amount


class PackageChargeModel(BaseChargeModel):
    def compute_amount(self, units: Decimal) -> Decimal:
        package_size = _decimal(self.properties, "package_size")
        if package_size <= 0:
            raise ServiceFailure("invalid_charge_properties", "package_size must be positive")
        amount = _decimal(self.properties, "amount")
        free_units = _decimal(self.properties, "free_units", 0)

        paid_units = units - free_units
        if paid_units <= 0:
            return Decimal(0)

        packages = (paid_units / package_size).to_integral_value(rounding=ROUND_CEILING)
        return packages * amount


CHARGE_MODELS: dict[str, type[BaseChargeModel]] = {
    ChargeModel.STANDARD.value: StandardChargeModel,
    ChargeModel.GRADUATED.value: GraduatedChargeModel,
    ChargeModel.PACKAGE.value: PackageChargeModel,
}


def charge_model_for(charge: Charge) -> BaseChargeModel:
    model_class = CHARGE_MODELS.get(charge.charge_model)
    if model_class is None:
        raise NotImplementedError(f"Charge model {charge.charge_model} is not supported")
    return model_class(charge)
