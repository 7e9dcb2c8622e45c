"""
Inventory import and recipe allocation.

Raw inventory records are matched to catalog entries and grouped by display
name. Items whose exact float is not known yet get a simulated mid-exterior
value that a later refinement can replace through ``patch_conditions``.
``AllocationOptimizer`` then splits a primary pool and a filler pool into
several ten-item recipes and hill-climbs on filler swaps to raise total EV.
"""

import random
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from rich.console import Console

from price_resolver import ListingNames
from tradeup_config import MAX_SWAP_ATTEMPTS, RECIPE_SIZE, SWAP_EPSILON
from tradeup_engine import FloatCalculator
from tradeup_models import (
    AllocationPlan, CatalogEntry, InsufficientInventory, NoOutcomesFound, Recipe,
    TradeItem, ValidationError
)


@dataclass
class InventoryRecord:
    """One raw asset as supplied by an inventory import."""
    display_name: str
    condition: Optional[float] = None
    is_variant: bool = False
    provenance: Optional[str] = None


@dataclass
class InventoryGroup:
    """All imported assets sharing one display name."""
    display_name: str
    entry: Optional[CatalogEntry]
    is_variant: bool
    exterior: Optional[str]
    base_price: float = 0.0
    records: List[InventoryRecord] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.records)


class InventoryImporter:
    """Turns raw inventory records into grouped, priced trade items."""

    # Only visible in the display name; the matched catalog entry is checked separately
    INELIGIBLE_MARKERS = ['★', 'Souvenir', '纪念品']

    # Weapon fragments whose presence must agree between import name and catalog name
    WEAPON_KEYWORDS = ['usp', 'cz75', 'glock', 'galil', 'famas', 'desert', 'deagle', 'm4a1', 'm4a4']

    def __init__(self, catalog, resolver, console: Optional[Console] = None, debug: bool = False):
        self.catalog = catalog
        self.resolver = resolver
        self.console = console or Console()
        self.debug = debug
        self._match_cache: Dict[str, Optional[CatalogEntry]] = {}

    @staticmethod
    def parse_record(raw) -> InventoryRecord:
        """Accept an InventoryRecord, a dict or a (name, condition, is_variant, provenance) tuple."""
        if isinstance(raw, InventoryRecord):
            return raw
        if isinstance(raw, dict):
            return InventoryRecord(
                display_name=raw['display_name'],
                condition=raw.get('condition'),
                is_variant=bool(raw.get('is_variant', False)),
                provenance=raw.get('provenance'))
        return InventoryRecord(*raw)

    def prefilter(self, records: Iterable[InventoryRecord]) -> List[InventoryRecord]:
        """Drop assets whose display name marks them as special editions."""
        return [record for record in records
                if not any(marker in record.display_name for marker in self.INELIGIBLE_MARKERS)]

    def match_entry(self, display_name: str) -> Optional[CatalogEntry]:
        """
        Find the catalog entry behind an inventory display name.

        Exterior and StatTrak decorations are ignored, spacing is ignored and
        known weapon keywords must agree on both sides, so "USP-S | Cortex"
        never matches a "USP" skin of another pattern family by accident.
        """
        if display_name in self._match_cache:
            return self._match_cache[display_name]

        base = ListingNames.base_name(display_name)
        parts = base.split('|', 1)
        weapon_raw = parts[0].strip().lower()
        pattern = parts[1] if len(parts) > 1 else ''
        weapon_compact = weapon_raw.replace(' ', '')
        pattern_compact = pattern.replace(' ', '').lower()
        base_compact = base.replace(' ', '').lower()

        entries = self.catalog.all_entries()
        match = next((entry for entry in entries
                      if ListingNames.base_name(entry.name).replace(' ', '').lower() == base_compact),
                     None)

        if match is None:
            for entry in entries:
                if self._fuzzy_matches(entry, weapon_raw, weapon_compact, pattern_compact):
                    match = entry
                    break

        if match is None and self.debug:
            self.console.print(f"[yellow]No catalog match for '{display_name}'[/yellow]")

        self._match_cache[display_name] = match
        return match

    def _fuzzy_matches(self, entry: CatalogEntry, weapon_raw: str, weapon_compact: str,
                       pattern_compact: str) -> bool:
        db_name = entry.name.lower()
        db_compact = db_name.replace(' ', '')

        if not pattern_compact:
            return db_compact == weapon_compact or weapon_compact in db_compact

        if pattern_compact not in db_compact:
            return False

        for keyword in self.WEAPON_KEYWORDS:
            if keyword in weapon_raw:
                return keyword in db_name

        db_weapon = db_compact.split('|')[0]
        return weapon_compact in db_compact or (bool(db_weapon) and db_weapon in weapon_compact)

    def group(self, records: Iterable) -> List[InventoryGroup]:
        """
        Group raw records by display name, largest groups first.

        Records whose catalog entry can never be a trade-up input (knives,
        gloves, top-tier skins and the like) are left out. Unmatched records
        are kept so they can still be listed with their market price.
        """
        parsed = self.prefilter(self.parse_record(raw) for raw in records)

        by_name: Dict[Tuple[str, bool], List[InventoryRecord]] = {}
        for record in parsed:
            by_name.setdefault((record.display_name, record.is_variant), []).append(record)

        groups = []
        grouped = 0
        for (display_name, is_variant), group_records in by_name.items():
            entry = self.match_entry(display_name)
            if entry is not None and not self.catalog.is_valid_input(entry):
                if self.debug:
                    self.console.print(f"[yellow]Skipping {display_name}: not a trade-up input[/yellow]")
                continue

            grouped += len(group_records)
            exterior = FloatCalculator.exterior_from_name(display_name)

            if entry is not None:
                condition = FloatCalculator.simulated_float(exterior, entry.min_float, entry.max_float)
                base_price = self.resolver.resolve(entry, condition, is_variant)
            else:
                base_price = self.resolver.feed.price_for_listing_name(display_name) or 0.0

            groups.append(InventoryGroup(
                display_name=display_name, entry=entry, is_variant=is_variant,
                exterior=exterior, base_price=base_price, records=group_records))

        groups.sort(key=lambda g: (-g.count, g.display_name))
        self.console.print(
            f"[green]Grouped {grouped} inventory items into {len(groups)} groups[/green]")
        return groups

    def to_trade_items(self, group: InventoryGroup) -> List[TradeItem]:
        """Trade items of a group; unknown floats get a simulated mid-exterior value."""
        entry = group.entry
        if entry is None or not self.catalog.is_valid_input(entry):
            return []

        simulated = FloatCalculator.simulated_float(group.exterior, entry.min_float, entry.max_float)
        return [
            TradeItem(entry=entry,
                      condition=simulated if record.condition is None else record.condition,
                      stattrak=group.is_variant,
                      provenance=record.provenance,
                      is_exact=record.condition is not None)
            for record in group.records
        ]

    @staticmethod
    def compatible_groups(groups: Sequence[InventoryGroup], base: InventoryGroup) -> List[InventoryGroup]:
        """Groups that can share a recipe with ``base``: same tier and StatTrak status."""
        if base.entry is None:
            return []
        return [group for group in groups
                if group.entry is not None
                and group.is_variant == base.is_variant
                and group.entry.tier == base.entry.tier]


def patch_conditions(items: Sequence[TradeItem], updates: Mapping[str, float]) -> Tuple[TradeItem, ...]:
    """
    Apply refined float values by item id and return a new collection.

    The input collection is left untouched. Ids that are not present are
    ignored; values outside [0, 1] are rejected.
    """
    for item_id, value in updates.items():
        if not 0.0 <= value <= 1.0:
            raise ValidationError(
                'condition_range', f"Condition value {value} is outside [0, 1]",
                item_id=item_id, value=value)

    return tuple(item.with_condition(updates[item.item_id]) if item.item_id in updates else item
                 for item in items)


class AllocationOptimizer:
    """Partitions primary and filler pools into recipes and hill-climbs on total EV."""

    def __init__(self, simulator, rng: Optional[random.Random] = None,
                 max_attempts: int = MAX_SWAP_ATTEMPTS, epsilon: float = SWAP_EPSILON,
                 recipe_size: int = RECIPE_SIZE, console: Optional[Console] = None,
                 debug: bool = False):
        self.simulator = simulator
        self.rng = rng or random.Random()
        self.max_attempts = max_attempts
        self.epsilon = epsilon
        self.recipe_size = recipe_size
        self.console = console or Console()
        self.debug = debug

    def _build_recipe(self, index: int, primaries: Tuple[TradeItem, ...],
                      fillers: Tuple[TradeItem, ...]) -> Recipe:
        """Evaluate a recipe; one without reachable outputs is worth 0."""
        try:
            evaluation = self.simulator.evaluate(primaries + fillers)
        except NoOutcomesFound as e:
            if self.debug:
                self.console.print(f"[yellow]Recipe #{index}: {e}[/yellow]")
            evaluation = None
        return Recipe(index=index, primaries=primaries, fillers=fillers, evaluation=evaluation)

    def seed_recipes(self, primary_pool: Sequence[TradeItem], filler_pool: Sequence[TradeItem],
                     recipe_count: int, primaries_per_recipe: int) -> List[Recipe]:
        """Lowest-float items first, dealt into recipes in contiguous chunks."""
        fillers_per_recipe = self.recipe_size - primaries_per_recipe
        primaries = sorted(primary_pool, key=lambda item: item.condition)[:recipe_count * primaries_per_recipe]
        fillers = sorted(filler_pool, key=lambda item: item.condition)[:recipe_count * fillers_per_recipe]

        return [
            self._build_recipe(
                i + 1,
                tuple(primaries[i * primaries_per_recipe:(i + 1) * primaries_per_recipe]),
                tuple(fillers[i * fillers_per_recipe:(i + 1) * fillers_per_recipe]))
            for i in range(recipe_count)
        ]

    def allocate(self, primary_pool: Sequence[TradeItem], filler_pool: Sequence[TradeItem],
                 recipe_count: int, primaries_per_recipe: int,
                 cancel_event: Optional[threading.Event] = None) -> AllocationPlan:
        """
        Build ``recipe_count`` recipes and improve them by swapping filler slots.

        A swap between two random recipes is kept only when their combined EV
        rises by more than ``epsilon``. The search stops after ``max_attempts``
        swaps, after a full pass without improvement, or when ``cancel_event``
        is set (checked before every swap attempt); in every case the best plan found
        so far is returned.
        """
        if recipe_count < 1 or not 0 <= primaries_per_recipe <= self.recipe_size:
            raise ValidationError(
                'recipe_shape',
                f"Need at least one recipe and 0-{self.recipe_size} primaries per recipe",
                recipe_count=recipe_count, primaries_per_recipe=primaries_per_recipe)

        fillers_per_recipe = self.recipe_size - primaries_per_recipe
        needed_primary = recipe_count * primaries_per_recipe
        needed_filler = recipe_count * fillers_per_recipe
        if len(primary_pool) < needed_primary or len(filler_pool) < needed_filler:
            raise InsufficientInventory(needed_primary, len(primary_pool),
                                        needed_filler, len(filler_pool))

        recipes = self.seed_recipes(primary_pool, filler_pool, recipe_count, primaries_per_recipe)
        seed_ev = sum(recipe.ev for recipe in recipes)

        attempts = 0
        accepted = 0
        cancelled = False

        if recipe_count >= 2 and fillers_per_recipe > 0:
            pass_size = recipe_count * fillers_per_recipe
            while attempts < self.max_attempts:
                improved = False
                for _ in range(min(pass_size, self.max_attempts - attempts)):
                    if cancel_event is not None and cancel_event.is_set():
                        cancelled = True
                        break
                    attempts += 1
                    if self._try_swap(recipes, fillers_per_recipe):
                        accepted += 1
                        improved = True

                if cancelled or not improved:
                    break

        ranked = tuple(sorted(recipes, key=lambda recipe: recipe.ev, reverse=True))
        plan = AllocationPlan(recipes=ranked, seed_ev=seed_ev, attempts=attempts,
                              accepted_swaps=accepted, cancelled=cancelled)

        status = "cancelled" if cancelled else "done"
        self.console.print(
            f"[green]Allocation {status}: {recipe_count} recipes, EV {seed_ev:.2f} -> {plan.total_ev:.2f} "
            f"({accepted}/{attempts} swaps accepted)[/green]")
        return plan

    def _try_swap(self, recipes: List[Recipe], fillers_per_recipe: int) -> bool:
        """Swap one random filler between two random recipes if it raises their EV."""
        i, j = self.rng.sample(range(len(recipes)), 2)
        a = self.rng.randrange(fillers_per_recipe)
        b = self.rng.randrange(fillers_per_recipe)

        first, second = recipes[i], recipes[j]
        first_fillers = list(first.fillers)
        second_fillers = list(second.fillers)
        first_fillers[a], second_fillers[b] = second_fillers[b], first_fillers[a]

        new_first = self._build_recipe(first.index, first.primaries, tuple(first_fillers))
        new_second = self._build_recipe(second.index, second.primaries, tuple(second_fillers))

        if new_first.ev + new_second.ev > first.ev + second.ev + self.epsilon:
            recipes[i], recipes[j] = new_first, new_second
            if self.debug:
                self.console.print(
                    f"[dim]Swap #{first.index}[{a}] <-> #{second.index}[{b}]: "
                    f"{first.ev + second.ev:.2f} -> {new_first.ev + new_second.ev:.2f}[/dim]")
            return True
        return False

    def allocate_in_background(self, primary_pool: Sequence[TradeItem], filler_pool: Sequence[TradeItem],
                               recipe_count: int, primaries_per_recipe: int,
                               cancel_event: Optional[threading.Event] = None,
                               executor: Optional[ThreadPoolExecutor] = None) -> 'Future[AllocationPlan]':
        """Run ``allocate`` on a worker thread and return its future."""
        owns_executor = executor is None
        if owns_executor:
            executor = ThreadPoolExecutor(max_workers=1)

        future = executor.submit(self.allocate, list(primary_pool), list(filler_pool),
                                 recipe_count, primaries_per_recipe, cancel_event)
        if owns_executor:
            executor.shutdown(wait=False)
        return future
