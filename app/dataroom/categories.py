"""
Dataroom file categories (display order).
"""
from __future__ import annotations

CATEGORIES = ("Financials", "Strategy", "Product", "Legal", "Other")


def sort_categories(categories: list[str]) -> list[str]:
    """Order category names by CATEGORIES; unknown names sort last."""
    order = {name: i for i, name in enumerate(CATEGORIES)}
    return sorted(categories, key=lambda c: order.get(c, 999))


def normalize_category(raw: str | None) -> str:
    return (raw or "").strip()
