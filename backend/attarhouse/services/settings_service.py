from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation

from flask import current_app

from ..extensions import db
from ..models import Setting


GST_RATE_KEY = "gst_rate"
FALLBACK_GST_RATE = "18"

# Rates outside this range are almost certainly typos (e.g. 0.18 vs 18 is fine, 1800 is not)
MAX_GST_RATE = Decimal("100")


class SettingsError(ValueError):
    pass


class SettingsValidationError(SettingsError):
    pass


@dataclass(frozen=True)
class OrderSettings:
    """
    Settings the order engine needs, read once per request and passed in
    explicitly so one order never sees two different rates.
    """
    gst_rate: Decimal

    def to_dict(self) -> dict:
        return {"gst_rate": str(self.gst_rate)}


def parse_gst_rate(value) -> Decimal:
    try:
        rate = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise SettingsValidationError(f"{GST_RATE_KEY} must be a number, got {value!r}")
    if not rate.is_finite() or rate < 0 or rate > MAX_GST_RATE:
        raise SettingsValidationError(f"{GST_RATE_KEY} must be between 0 and {MAX_GST_RATE}")
    return rate


def get_setting(key: str, default: str | None = None) -> str | None:
    row = db.session.query(Setting).filter_by(key=key).first()
    if row is None or row.value is None or str(row.value).strip() == "":
        return default
    return row.value


def set_setting(key: str, value: str | None) -> Setting:
    """Upsert a setting. Does not commit."""
    if key == GST_RATE_KEY and value is not None:
        value = str(parse_gst_rate(value))

    row = db.session.query(Setting).filter_by(key=key).first()
    if row is None:
        row = Setting(key=key, value=value)
        db.session.add(row)
    else:
        row.value = value
    db.session.flush()
    return row


def load_order_settings() -> OrderSettings:
    default = current_app.config.get("DEFAULT_GST_RATE", FALLBACK_GST_RATE)
    raw = get_setting(GST_RATE_KEY, default)
    return OrderSettings(gst_rate=parse_gst_rate(raw))
