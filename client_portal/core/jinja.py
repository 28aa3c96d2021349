"""Jinja2 environment and the display filters every page relies on.

Status members are rendered through ``status_label``/``status_badge`` so that
no template needs to know raw store values. Dates are shown in the configured
time zone.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any
from zoneinfo import ZoneInfo

from fastapi.templating import Jinja2Templates

from ..services.billing import format_money
from .config import settings
from .statuses import status_badge, status_label

_LOCAL_TZ = ZoneInfo(settings.TZ) if settings.TZ else None


def _to_dt(value: Any) -> datetime | None:
    """Convert ISO strings or datetimes into aware datetimes in the local zone."""

    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str) and value:
        try:
            dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None

    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    if _LOCAL_TZ:
        dt = dt.astimezone(_LOCAL_TZ)
    return dt


def _fmt_dt(value: Any, fmt: str = "%d/%m/%Y %H:%M") -> str:
    dt = _to_dt(value)
    return dt.strftime(fmt) if dt else ""


def _fmt_date(value: Any, fmt: str = "%d/%m/%Y") -> str:
    dt = _to_dt(value)
    return dt.strftime(fmt) if dt else ""


def _fmt_time(value: Any, fmt: str = "%H:%M") -> str:
    dt = _to_dt(value)
    return dt.strftime(fmt) if dt else ""


def _time_ago(value: Any, now: datetime | None = None) -> str:
    """Short relative time ("hace 5 min") used in chat and activity lists."""

    dt = _to_dt(value)
    if not dt:
        return ""
    reference = now or datetime.now(timezone.utc)
    seconds = int((reference - dt).total_seconds())
    if seconds < 60:
        return "hace un momento"
    minutes = seconds // 60
    if minutes < 60:
        return f"hace {minutes} min"
    hours = minutes // 60
    if hours < 24:
        return f"hace {hours} h"
    return f"hace {hours // 24} d"


def _fmt_money(value: Any, currency: str | None = None) -> str:
    return format_money(value, currency or settings.DEFAULT_CURRENCY)


def get_templates() -> Jinja2Templates:
    """Create a ``Jinja2Templates`` instance with the portal filters registered."""

    templates = Jinja2Templates(directory=str(settings.TEMPLATES_DIR))
    env = templates.env
    env.filters["fmt_dt"] = _fmt_dt
    env.filters["fmt_date"] = _fmt_date
    env.filters["fmt_time"] = _fmt_time
    env.filters["time_ago"] = _time_ago
    env.filters["fmt_money"] = _fmt_money
    env.filters["status_label"] = status_label
    env.filters["status_badge"] = status_badge
    env.globals["app_name"] = settings.APP_NAME
    return templates
