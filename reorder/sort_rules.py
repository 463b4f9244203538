"""Compact string encoding of sort rules.

Raw rules look like ``artist release_date/desc album``: rules are separated
by a single space, and each rule is ``key`` or ``key/order``.  The ``asc``
order is the default and is elided when encoding, so
``format_sort_rules(parse_sort_rules(raw)) == raw`` for every canonical
string.
"""

from __future__ import annotations

from typing import Dict, List, Sequence

from reorder.models import SortKey, SortOrder, SortRule

RULE_SEPARATOR = " "
ORDER_SEPARATOR = "/"
DEFAULT_ORDER = SortOrder.ASC

SORT_KEY_LABELS: Dict[SortKey, str] = {
    SortKey.ARTIST: "Artist",
    SortKey.ALBUM: "Album",
    SortKey.RELEASE_DATE: "Release date",
    SortKey.TITLE: "Track title",
    SortKey.DISC_NUMBER: "Disc number",
    SortKey.TRACK_NUMBER: "Track number",
}

_VALID_KEYS = {k.value for k in SortKey}
_VALID_ORDERS = {o.value for o in SortOrder}


def parse_sort_rule(raw_rule: str) -> SortRule:
    """Parse ``key`` or ``key/order`` into a SortRule.

    Raises ``ValueError`` on an unknown key or order.
    """
    key, sep, order = raw_rule.partition(ORDER_SEPARATOR)
    if key not in _VALID_KEYS:
        raise ValueError(f"Invalid sort key: {key!r}")
    if sep and order not in _VALID_ORDERS:
        raise ValueError(f"Invalid sort order: {order!r} ('{key}' key)")
    return SortRule(key=SortKey(key), order=SortOrder(order) if sep else DEFAULT_ORDER)


def parse_sort_rules(raw_rules: str) -> List[SortRule]:
    """Parse a space separated rule string.

    Raises ``ValueError`` for an empty string or any invalid rule.
    """
    if not raw_rules:
        raise ValueError("Empty sort rules")
    return [parse_sort_rule(raw) for raw in raw_rules.split(RULE_SEPARATOR)]


def format_sort_rule(rule: SortRule) -> str:
    if rule.order is DEFAULT_ORDER:
        return rule.key.value
    return f"{rule.key.value}{ORDER_SEPARATOR}{rule.order.value}"


def format_sort_rules(rules: Sequence[SortRule]) -> str:
    return RULE_SEPARATOR.join(format_sort_rule(r) for r in rules)


def get_sort_key_label(key: SortKey) -> str:
    return SORT_KEY_LABELS.get(key, key.value)
