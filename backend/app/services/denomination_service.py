# Overview: Service-layer operations for the denomination catalog and cash counts.

"""
Denomination Catalog

WHY: Cashiers count the drawer by bill and coin, not by total. The catalog
turns a physical count ({value: count} plus loose coins) into a monetary
total, both when a register opens and at the blind close.

DESIGN:
- Soft delete only; historical breakdowns copy value and label at capture time
- value is unique across active and inactive rows
- Unknown or inactive keys in a count are ignored (stale client caches)
- Reorder is all-or-nothing
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation

from flask import current_app

from ..errors import DuplicateValueError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Denomination
from app.validation import (
    CENT,
    ModelValidationPolicy,
    enforce_rules_denomination,
    to_count,
    to_non_negative_money,
    validate_payload,
)
from .concurrency import run_with_retry

_BILLS_PREFIX = "bills_"
_COINS_KEY = "coins"

DENOMINATION_POLICY = ModelValidationPolicy(
    writable_fields={"value", "label", "display_order", "is_active"},
    required_on_create={"value", "label"},
)


# =============================================================================
# CATALOG
# =============================================================================

def list_denominations(include_inactive: bool = False) -> list[Denomination]:
    query = db.session.query(Denomination)
    if not include_inactive:
        query = query.filter(Denomination.is_active.is_(True))
    return query.order_by(Denomination.display_order.asc(), Denomination.value.desc()).all()


def get_denomination(denomination_id: int) -> Denomination:
    denomination = db.session.get(Denomination, denomination_id)
    if not denomination:
        raise NotFoundError("Denomination not found")
    return denomination


def _ensure_unique_value(value: Decimal, exclude_id: int | None = None) -> None:
    query = db.session.query(Denomination).filter(Denomination.value == value)
    if exclude_id is not None:
        query = query.filter(Denomination.id != exclude_id)
    existing = query.first()
    if existing:
        state = "active" if existing.is_active else "inactive"
        raise DuplicateValueError(f"A denomination with value {value} already exists ({state})")


def create_denomination(data: dict) -> Denomination:
    """
    Add a denomination to the catalog.

    Raises:
        ValidationError: value <= 0, blank label, negative display_order
        DuplicateValueError: value already present, active or not
    """
    patch = validate_payload(model=Denomination, payload=data, policy=DENOMINATION_POLICY, partial=False)
    enforce_rules_denomination(patch)

    def _op():
        _ensure_unique_value(patch["value"])
        denomination = Denomination(
            value=patch["value"],
            label=patch["label"],
            display_order=patch.get("display_order") or 0,
            is_active=patch.get("is_active", True) is not False,
        )
        db.session.add(denomination)
        db.session.commit()
        return denomination

    denomination = run_with_retry(_op)
    current_app.logger.info("Denomination %s created (value=%s)", denomination.id, denomination.value)
    return denomination


def update_denomination(denomination_id: int, data: dict) -> Denomination:
    patch = validate_payload(model=Denomination, payload=data, policy=DENOMINATION_POLICY, partial=True)
    enforce_rules_denomination(patch)

    def _op():
        denomination = get_denomination(denomination_id)
        if "value" in patch:
            _ensure_unique_value(patch["value"], exclude_id=denomination.id)
        for key, value in patch.items():
            setattr(denomination, key, value)
        db.session.commit()
        return denomination

    return run_with_retry(_op)


def deactivate_denomination(denomination_id: int) -> Denomination:
    """Soft delete. The row stays so historical counts remain readable."""
    def _op():
        denomination = get_denomination(denomination_id)
        denomination.is_active = False
        db.session.commit()
        return denomination

    denomination = run_with_retry(_op)
    current_app.logger.info("Denomination %s deactivated", denomination_id)
    return denomination


def reorder_denominations(items: list[dict]) -> list[Denomination]:
    """
    Bulk update display_order from [{"id": .., "display_order": ..}, ...].

    Every id must exist or nothing changes.
    """
    if not isinstance(items, list) or not items:
        raise ValidationError("items must be a non-empty list")

    orders: dict[int, int] = {}
    for item in items:
        if not isinstance(item, dict) or "id" not in item or "display_order" not in item:
            raise ValidationError("each item needs id and display_order")
        orders[to_count(item["id"], "id")] = to_count(item["display_order"], "display_order")

    def _op():
        rows = db.session.query(Denomination).filter(Denomination.id.in_(list(orders))).all()
        found = {row.id: row for row in rows}
        missing = sorted(set(orders) - set(found))
        if missing:
            raise NotFoundError(f"Denomination(s) not found: {', '.join(str(i) for i in missing)}")
        for denomination_id, order in orders.items():
            row = found[denomination_id]
            if row.display_order != order:
                row.display_order = order
        db.session.commit()
        return rows

    run_with_retry(_op)
    return list_denominations(include_inactive=True)


# =============================================================================
# CASH COUNTS
# =============================================================================

def normalize_breakdown_key(key) -> Decimal | None:
    """
    Turn a breakdown key into a denomination value.

    Accepts numbers, numeric strings and "bills_<value>". Anything else
    yields None and is ignored by callers.
    """
    if isinstance(key, bool):
        return None
    if isinstance(key, (int, float, Decimal)):
        raw = str(key)
    elif isinstance(key, str):
        raw = key.strip()
        if raw.startswith(_BILLS_PREFIX):
            raw = raw[len(_BILLS_PREFIX):]
    else:
        return None
    try:
        value = Decimal(raw)
        if not value.is_finite() or value <= 0:
            return None
        return value.quantize(CENT)
    except InvalidOperation:
        return None


def _parse_breakdown(breakdown: dict | None, active: dict) -> dict[Decimal, int]:
    """
    Validated {value: count} over active denominations.

    Unknown and inactive keys are skipped before their count is looked at;
    counts for the same value are summed.
    """
    if breakdown is None:
        return {}
    if not isinstance(breakdown, dict):
        raise ValidationError("denominations must be an object of {value: count}")

    counts: dict[Decimal, int] = {}
    for key, raw_count in breakdown.items():
        value = normalize_breakdown_key(key)
        if value is None or value not in active:
            continue
        count = to_count(raw_count, f"count for {key}")
        counts[value] = counts.get(value, 0) + count
    return counts


def _active_by_value() -> dict[Decimal, Denomination]:
    rows = db.session.query(Denomination).filter(Denomination.is_active.is_(True)).all()
    return {Decimal(row.value).quantize(CENT): row for row in rows}


@dataclass(frozen=True)
class CashCount:
    """A drawer count as captured on the session (value and label copied)."""
    items: tuple[dict, ...]
    coins: Decimal
    total: Decimal

    def to_dict(self) -> dict:
        return {
            "items": [dict(item) for item in self.items],
            "coins": str(self.coins),
            "total": str(self.total),
        }


def count_cash(breakdown: dict | None, coins=None) -> CashCount:
    """
    Count a drawer. Loose coins come from `coins`, or from a "coins" entry
    inside the breakdown when `coins` is not given.
    """
    active = _active_by_value()
    counts = _parse_breakdown(breakdown, active)
    if coins is None and isinstance(breakdown, dict):
        coins = breakdown.get(_COINS_KEY)
    coins_amount = to_non_negative_money(coins if coins is not None else 0, "coins")

    lines = []
    total = coins_amount
    for value, count in counts.items():
        denomination = active[value]
        if count == 0:
            continue
        subtotal = (value * count).quantize(CENT)
        total += subtotal
        lines.append((denomination.display_order, -value, {
            "value": str(value),
            "label": denomination.label,
            "count": count,
            "subtotal": str(subtotal),
        }))

    lines.sort(key=lambda line: (line[0], line[1]))
    return CashCount(
        items=tuple(line[2] for line in lines),
        coins=coins_amount,
        total=total.quantize(CENT),
    )


def compute_total(breakdown: dict | None, coins=None) -> Decimal:
    """
    Sum value x count over active denominations present, plus coins.

    Deterministic and independent of key order.
    """
    return count_cash(breakdown, coins).total
