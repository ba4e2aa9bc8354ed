"""
Matcher & Deduplicator.

A sold item is attributed to a product by the first rule that fires:

1. exact item code
2. exact item name
3. case-insensitive item name
4. case-insensitive substring on item name, either direction
5. case-insensitive substring on item code, either direction

Sold items with neither code nor name never match. Matching runs per product,
so one sold item can be attributed to several products when names overlap
("AC" and "AC Remote" both match "AC Remote Sale").
"""
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Optional

from .records import Product, SoldItem


class MatchRule(str, Enum):
    EXACT_CODE = 'exact_code'
    EXACT_NAME = 'exact_name'
    CASE_INSENSITIVE_NAME = 'case_insensitive_name'
    PARTIAL_NAME = 'partial_name'
    PARTIAL_CODE = 'partial_code'


@dataclass(frozen=True)
class Match:
    sale: SoldItem
    rule: MatchRule


def _overlaps(left: str, right: str) -> bool:
    return bool(left) and bool(right) and (left in right or right in left)


def match_rule(product: Product, sale: SoldItem) -> Optional[MatchRule]:
    """Return the rule that attributes ``sale`` to ``product``, or None."""
    if sale.is_blank:
        return None

    sale_code, product_code = sale.item_code.strip(), product.item_code.strip()
    sale_name, product_name = sale.item_name.strip(), product.item_name.strip()

    if sale_code and sale_code == product_code:
        return MatchRule.EXACT_CODE
    if sale_name and sale_name == product_name:
        return MatchRule.EXACT_NAME

    sale_name, product_name = sale_name.lower(), product_name.lower()
    if sale_name and sale_name == product_name:
        return MatchRule.CASE_INSENSITIVE_NAME
    if _overlaps(sale_name, product_name):
        return MatchRule.PARTIAL_NAME
    if _overlaps(sale_code.lower(), product_code.lower()):
        return MatchRule.PARTIAL_CODE
    return None


def find_matches(product: Product, sales: Iterable[SoldItem]) -> List[Match]:
    matches = []
    for sale in sales:
        rule = match_rule(product, sale)
        if rule is not None:
            matches.append(Match(sale=sale, rule=rule))
    return matches


def deduplicate(sales: Iterable[SoldItem]) -> List[SoldItem]:
    """
    Drop repeated sold items, keeping the first occurrence.

    Two items are the same sale when code, name, quantity, source and invoice
    all agree; manual copies of bill lines carry the bill's source and invoice.
    """
    seen = set()
    unique = []
    for sale in sales:
        if sale.dedup_key in seen:
            continue
        seen.add(sale.dedup_key)
        unique.append(sale)
    return unique


def deduplicate_matches(matches: Iterable[Match]) -> List[Match]:
    seen = set()
    unique = []
    for match in matches:
        if match.sale.dedup_key in seen:
            continue
        seen.add(match.sale.dedup_key)
        unique.append(match)
    return unique
