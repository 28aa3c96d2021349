"""Money helpers and the inferred delivery ↔ invoice linkage."""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Iterable

TWOPLACES = Decimal("0.01")
CURRENCY_MARKS = ("€", "$", "EUR", "USD")


def to_decimal(value: Any) -> Decimal:
    """Best-effort conversion of stored amounts (text, numbers) to Decimal."""

    if isinstance(value, Decimal):
        return value
    if value is None or isinstance(value, bool):
        return Decimal("0")
    if isinstance(value, (int, float)):
        return Decimal(str(value))
    if isinstance(value, str):
        cleaned = value.strip()
        for mark in CURRENCY_MARKS:
            cleaned = cleaned.replace(mark, "")
        cleaned = cleaned.replace(" ", "")
        if not cleaned:
            return Decimal("0")
        if "," in cleaned and "." not in cleaned:
            cleaned = cleaned.replace(",", ".")
        else:
            cleaned = cleaned.replace(",", "")
        try:
            return Decimal(cleaned)
        except InvalidOperation:
            return Decimal("0")
    return Decimal("0")


def quantize_money(value: Decimal) -> Decimal:
    return value.quantize(TWOPLACES, rounding=ROUND_HALF_UP) if value else Decimal("0.00")


def format_money(amount: Any, currency: str | None = "EUR") -> str:
    """``format_money("200", "EUR") == "200.00 EUR"``."""

    text = f"{quantize_money(to_decimal(amount)):.2f}"
    return f"{text} {currency}" if currency else text


def _field(record: Any, name: str, default: Any = None) -> Any:
    if isinstance(record, dict):
        return record.get(name, default)
    return getattr(record, name, default)


def line_items_total(items: Iterable[Any]) -> Decimal:
    return quantize_money(sum((to_decimal(_field(item, "amount")) for item in items), Decimal("0")))


def single_invoice_total(invoice: Any) -> Decimal:
    """Stored total, or the sum of line item amounts when the total is missing."""

    stored = _field(invoice, "total")
    if stored not in (None, ""):
        return quantize_money(to_decimal(stored))
    return line_items_total(_field(invoice, "items") or [])


def invoice_total(invoices: Iterable[Any]) -> Decimal:
    return quantize_money(sum((single_invoice_total(inv) for inv in invoices), Decimal("0")))


def invoices_currency(invoices: Iterable[Any], default: str = "EUR") -> str:
    for invoice in invoices:
        currency = _field(invoice, "currency")
        if currency:
            return str(currency)
    return default


def invoices_for_delivery(
    invoices: Iterable[Any],
    milestone_id: str | None,
    backlog_item_ids: Iterable[str],
) -> list[Any]:
    """Invoices with a line item pointing at the milestone or one of its tasks.

    The store does not link invoices to deliveries; the link is inferred from
    ``backlog_item_id`` on the line items.
    """

    targets = {str(item_id) for item_id in backlog_item_ids if item_id}
    if milestone_id:
        targets.add(str(milestone_id))
    if not targets:
        return []
    linked: list[Any] = []
    for invoice in invoices:
        for item in _field(invoice, "items") or []:
            ref = _field(item, "backlog_item_id")
            if ref and str(ref) in targets:
                linked.append(invoice)
                break
    return linked


def is_invoiced(invoices: Iterable[Any], milestone_id: str | None, backlog_item_ids: Iterable[str]) -> bool:
    return bool(invoices_for_delivery(invoices, milestone_id, backlog_item_ids))


__all__ = [
    "format_money",
    "invoice_total",
    "invoices_currency",
    "invoices_for_delivery",
    "is_invoiced",
    "line_items_total",
    "quantize_money",
    "single_invoice_total",
    "to_decimal",
]
