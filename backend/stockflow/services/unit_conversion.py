# Overview: Pure unit-of-measure resolution between a product's declared units and its base unit.

"""
Unit Conversion Resolver

Every product tracks stock in exactly one base unit. Every other unit names
the unit it converts to and by how much (1 box = 12 dozen, 1 dozen = 12 pcs).
Resolving a unit walks that chain to the base unit, multiplying factors.

Arithmetic is done on fractions.Fraction built from the stored Decimals, so
converting back and forth never drifts. Quantities in and out are ints; a
conversion that would produce a fractional quantity is rejected instead of
being rounded.

No I/O: everything here works on the already-loaded ``product.units``.
"""

from __future__ import annotations

from decimal import Decimal
from fractions import Fraction

from ..errors import InvalidInput, InvalidUnitGraph, UnknownUnit
from ..models import Product, ProductUnit


def get_unit(product: Product, unit_id: int) -> ProductUnit:
    """Return the product's unit with this id, or raise UnknownUnit."""
    for unit in product.units:
        if unit.id == unit_id:
            return unit
    raise UnknownUnit(
        f"Unit {unit_id} does not belong to product {product.id}",
        details={"product_id": product.id, "unit_id": unit_id},
    )


def _factor(unit: ProductUnit) -> Fraction:
    factor = Fraction(Decimal(unit.conversion_factor))
    if factor <= 0:
        raise InvalidUnitGraph(
            f"Unit {unit.name!r} conversion factor must be greater than 0",
            details={"unit_id": unit.id},
        )
    return factor


def resolve_multiplier(product: Product, unit_id: int) -> Fraction:
    """
    Number of base units in one ``unit_id``.

    Raises:
        UnknownUnit: unit is not one of the product's units
        InvalidUnitGraph: cycle, dangling reference or chain without a base unit
    """
    units_by_id = {u.id: u for u in product.units}
    unit = get_unit(product, unit_id)

    multiplier = Fraction(1)
    visited: set[int] = set()
    while not unit.is_base:
        if unit.id in visited:
            raise InvalidUnitGraph(
                f"Circular unit reference detected at {unit.name!r}",
                details={"product_id": product.id, "unit_id": unit.id},
            )
        visited.add(unit.id)

        if unit.converts_to_id is None:
            raise InvalidUnitGraph(
                f"Unit {unit.name!r} must convert to another unit",
                details={"product_id": product.id, "unit_id": unit.id},
            )
        parent = units_by_id.get(unit.converts_to_id)
        if parent is None:
            raise InvalidUnitGraph(
                f"Unit {unit.name!r} converts to unit {unit.converts_to_id}, "
                f"which does not belong to the product",
                details={"product_id": product.id, "unit_id": unit.id},
            )
        multiplier *= _factor(unit)
        unit = parent

    if unit.converts_to_id is not None:
        raise InvalidUnitGraph(
            f"Base unit {unit.name!r} must not convert to another unit",
            details={"product_id": product.id, "unit_id": unit.id},
        )
    return multiplier


def _require_quantity(value, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidInput(f"{field} must be an integer")
    if value < 0:
        raise InvalidInput(f"{field} cannot be negative")
    return value


def to_base_quantity(product: Product, unit_id: int, quantity: int) -> int:
    """Convert ``quantity`` of ``unit_id`` into the product's base unit."""
    quantity = _require_quantity(quantity, "quantity")
    base = quantity * resolve_multiplier(product, unit_id)
    if base.denominator != 1:
        raise InvalidInput(
            f"{quantity} x unit {unit_id} is not a whole number of base units",
            details={"unit_id": unit_id, "quantity": quantity},
        )
    return int(base)


def from_base_quantity(product: Product, unit_id: int, base_quantity: int) -> int:
    """Convert a base-unit quantity into ``unit_id``; must divide exactly."""
    base_quantity = _require_quantity(base_quantity, "base_quantity")
    qty = base_quantity / resolve_multiplier(product, unit_id)
    if qty.denominator != 1:
        raise InvalidInput(
            f"{base_quantity} base units is not a whole number of unit {unit_id}",
            details={"unit_id": unit_id, "base_quantity": base_quantity},
        )
    return int(qty)


def validate_unit_graph(product: Product) -> None:
    """
    Check the product's unit set as a whole.

    Exactly one base unit, and every unit resolves to it.
    """
    base_units = [u for u in product.units if u.is_base]
    if len(base_units) != 1:
        raise InvalidUnitGraph(
            f"Product {product.id} must have exactly one base unit, found {len(base_units)}",
            details={"product_id": product.id},
        )
    for unit in product.units:
        resolve_multiplier(product, unit.id)


def resolve_unit_dependency_order(units: list[ProductUnit]) -> list[ProductUnit]:
    """
    Order units so each one appears after the unit it converts to.

    Used when materializing a new unit set whose rows reference each other.
    """
    by_id = {u.id: u for u in units}
    ordered: list[ProductUnit] = []
    done: set[int] = set()
    visiting: set[int] = set()

    def visit(unit: ProductUnit) -> None:
        if unit.id in done:
            return
        if unit.id in visiting:
            raise InvalidUnitGraph(
                f"Circular unit reference detected at {unit.name!r}",
                details={"unit_id": unit.id},
            )
        visiting.add(unit.id)
        if not unit.is_base and unit.converts_to_id is not None:
            parent = by_id.get(unit.converts_to_id)
            if parent is None:
                raise InvalidUnitGraph(
                    f"Unit {unit.name!r} converts to unknown unit {unit.converts_to_id}",
                    details={"unit_id": unit.id},
                )
            visit(parent)
        visiting.discard(unit.id)
        done.add(unit.id)
        ordered.append(unit)

    for unit in units:
        visit(unit)
    return ordered


def refresh_to_base_units(product: Product) -> None:
    """
    Recompute the cached ``to_base_unit`` of every unit from its chain.

    Caller flushes/commits. Raises InvalidUnitGraph without touching any
    unit if the graph is invalid.
    """
    validate_unit_graph(product)
    multipliers = {u.id: resolve_multiplier(product, u.id) for u in product.units}
    for unit in product.units:
        m = multipliers[unit.id]
        unit.to_base_unit = Decimal(m.numerator) / Decimal(m.denominator)
