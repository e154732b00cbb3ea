# models/listeners/canonical_listeners.py
"""
Canonicalization Listeners - normalize every row at the write boundary.

Applied to all models before INSERT and UPDATE:
    DECIMAL(x, 2) columns  → Decimal quantized to cents
    other DECIMAL columns  → Decimal
    nullable String        → NULL when blank
    DateTime               → naive UTC
    JSON                   → None keys dropped, Decimal/datetime rendered as str

Services can pass floats, strings or aware datetimes; storage never sees them.
"""
import logging
from datetime import datetime
from decimal import Decimal

from sqlalchemy import event, Numeric, String, DateTime, JSON

from ledger_system.config.constants import toMoney
from ledger_system.utils.time_machine import toNaiveUtc

logger = logging.getLogger(__name__)


def canonicalJson(value):
    """Drop None keys and make values JSON-safe (recursive)."""
    if isinstance(value, dict):
        return {k: canonicalJson(v) for k, v in value.items() if v is not None}
    if isinstance(value, (list, tuple)):
        return [canonicalJson(v) for v in value]
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, datetime):
        return toNaiveUtc(value).isoformat()
    return value


def canonicalValue(column, value):
    """Canonical form of value for given column."""
    if value is None:
        return None

    column_type = column.type

    if isinstance(column_type, Numeric):
        if column_type.scale == 2:
            return toMoney(value)
        return value if isinstance(value, Decimal) else Decimal(str(value))

    if isinstance(column_type, String):
        if column.nullable and isinstance(value, str) and not value.strip():
            return None
        return value

    if isinstance(column_type, DateTime):
        return toNaiveUtc(value) if isinstance(value, datetime) else value

    if isinstance(column_type, JSON):
        return canonicalJson(value)

    return value


def _differs(old, new) -> bool:
    if type(old) is not type(new):
        return True
    if isinstance(old, Decimal):
        return str(old) != str(new)
    return old != new


def canonicalize_row(mapper, connection, target):
    """Rewrite column attributes of target to canonical form."""
    for prop in mapper.column_attrs:
        column = prop.columns[0]
        if column.primary_key:
            continue

        value = getattr(target, prop.key, None)
        if value is None:
            continue

        canonical = canonicalValue(column, value)
        if _differs(value, canonical):
            setattr(target, prop.key, canonical)


def register_canonical_listeners():
    """
    Register canonicalization on every model.

    Called once during application startup from models/listeners/__init__.py
    """
    from models.base import Base

    event.listen(Base, 'before_insert', canonicalize_row, propagate=True)
    event.listen(Base, 'before_update', canonicalize_row, propagate=True)
