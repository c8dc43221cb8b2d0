"""
Budget resolution for a location and month.

Two modes:

  static  no budget month, or no census row for (location, month):
          each category's budget is the allocation's flat_amount
  census  a census row exists for (location, month):
          budget = census_amount x days_in_month x ppd_rate, rounded to cents;
          allocations without a ppd_rate keep their flat_amount

Allocations come from every active budget assigned (actively) to the location.
When several budgets allocate the same category the amounts are summed.
Entries are keyed by master category id; names are derived for lookup.
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, Optional

from amounts import ZERO, money, to_decimal
from categories import decode_category_name
from location_census import get_census_amount
from periods import days_in_month, normalize_budget_month, parse_budget_month

logger = logging.getLogger(__name__)

MODE_NONE = 'none'
MODE_STATIC = 'static'
MODE_CENSUS = 'census'


@dataclass
class BudgetEntry:
    category_id: int
    name: str
    raw_name: str
    amount: Decimal
    flat_amount: Decimal
    ppd_rate: Optional[Decimal] = None


@dataclass
class BudgetMap:
    location_id: Optional[str]
    budget_month: Optional[str] = None
    mode: str = MODE_NONE
    census_amount: Optional[Decimal] = None
    days_in_month: Optional[int] = None
    entries: Dict[int, BudgetEntry] = field(default_factory=dict)

    def __len__(self):
        return len(self.entries)

    def __iter__(self):
        return iter(self.entries.values())

    def entry_for(self, name) -> Optional[BudgetEntry]:
        """Find an entry by decoded or raw category name."""
        if name is None:
            return None
        decoded = decode_category_name(name)
        for entry in self.entries.values():
            if name in (entry.name, entry.raw_name) or decoded == entry.name:
                return entry
        return None

    def get(self, name, default=None):
        entry = self.entry_for(name)
        return entry.amount if entry else default

    def as_name_map(self) -> Dict[str, Decimal]:
        """Category name → amount, with both decoded and raw names as keys."""
        result = {}
        for entry in self.entries.values():
            result[entry.name] = entry.amount
            result[entry.raw_name] = entry.amount
        return result

    @property
    def total(self) -> Decimal:
        return sum((e.amount for e in self.entries.values()), ZERO)


# ---------------------------------------------------------------------------
# Store reads
# ---------------------------------------------------------------------------

def fetch_location_allocations(db, location_id):
    """Allocation rows of every active budget actively assigned to the location."""
    return db.fetch_all('''
        SELECT bcm.id AS category_id,
               bcm.category_name,
               ba.flat_amount,
               ba.ppd_rate,
               b.id AS budget_id
        FROM budget_location_assignments bla
        JOIN budgets b ON b.id = bla.budget_id
        JOIN budget_allocations ba ON ba.budget_id = b.id
        JOIN budget_categories_master bcm ON bcm.id = ba.category_id
        WHERE bla.location_id = ?
          AND bla.status = 'active'
          AND b.status = 'active'
        ORDER BY bcm.sort_order, bcm.category_name
    ''', (str(location_id),))


def _add_entry(budget_map, row, amount):
    category_id = row['category_id']
    flat_amount = money(row['flat_amount'])
    ppd_rate = to_decimal(row['ppd_rate']) if row['ppd_rate'] is not None else None
    entry = budget_map.entries.get(category_id)
    if entry is None:
        raw_name = row['category_name']
        budget_map.entries[category_id] = BudgetEntry(
            category_id=category_id,
            name=decode_category_name(raw_name).strip(),
            raw_name=raw_name,
            amount=amount,
            flat_amount=flat_amount,
            ppd_rate=ppd_rate,
        )
        return
    entry.amount += amount
    entry.flat_amount += flat_amount
    if ppd_rate is not None:
        entry.ppd_rate = (entry.ppd_rate or ZERO) + ppd_rate


# ---------------------------------------------------------------------------
# Modes
# ---------------------------------------------------------------------------

def static_budget_map(db, location_id, budget_month=None, allocations=None):
    """Flat allocation amounts for the location."""
    if allocations is None:
        allocations = fetch_location_allocations(db, location_id)
    budget_map = BudgetMap(location_id=location_id, budget_month=budget_month, mode=MODE_STATIC)
    for row in allocations:
        _add_entry(budget_map, row, money(row['flat_amount']))
    return budget_map


def census_budget_map(db, location_id, budget_month, census_amount, allocations=None):
    """Per-diem budgets: census x days in month x ppd rate per category."""
    month, year = parse_budget_month(budget_month)
    days = days_in_month(month, year)
    census = to_decimal(census_amount)
    if allocations is None:
        allocations = fetch_location_allocations(db, location_id)

    budget_map = BudgetMap(
        location_id=location_id,
        budget_month=budget_month,
        mode=MODE_CENSUS,
        census_amount=census,
        days_in_month=days,
    )
    for row in allocations:
        if row['ppd_rate'] is None:
            amount = money(row['flat_amount'])
        else:
            amount = money(census * days * to_decimal(row['ppd_rate']))
        _add_entry(budget_map, row, amount)
    return budget_map


def resolve_budget_map(db, location_id, budget_month=None):
    """Budget per category for a location, in census mode when a census row exists.

    Args:
        db: open Database.
        location_id: location to resolve; falsy gives an empty map.
        budget_month: optional ``MM-YYYY`` (``M-YYYY`` accepted).

    Returns:
        BudgetMap
    """
    if not location_id:
        return BudgetMap(location_id=None, budget_month=budget_month)
    location_id = str(location_id)

    census_amount = None
    if budget_month:
        budget_month = normalize_budget_month(budget_month)
        census_amount = get_census_amount(db, location_id, budget_month)

    if census_amount is None:
        budget_map = static_budget_map(db, location_id, budget_month)
    else:
        budget_map = census_budget_map(db, location_id, budget_month, census_amount)

    logger.debug("Resolved %s budget for location %s month %s: %s categories, total %s",
                 budget_map.mode, location_id, budget_month, len(budget_map), budget_map.total)
    return budget_map
