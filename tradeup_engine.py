"""
Trade-up simulation core.

FloatCalculator implements the wear transform and the condition-label
helpers, OutcomeModel turns ten inputs into an outcome distribution and
TradeUpSimulator prices that distribution into EV and ROI.
"""

from typing import Dict, List, Optional, Sequence, Tuple, Union

from rich.console import Console

from tradeup_config import CONDITION_DECIMALS, MAX_TIER, RECIPE_SIZE
from tradeup_models import (
    CatalogEntry, NoOutcomesFound, OutcomeDistribution, OutcomeRow, Recipe,
    TradeItem, TradeUpEvaluation, ValidationError
)


class FloatCalculator:
    """Handles CS2 float value calculations and exterior mapping."""

    # Ordered best -> worst; the last range is closed at 1.0
    EXTERIOR_RANGES = {
        'Factory New': (0.00, 0.07),
        'Minimal Wear': (0.07, 0.15),
        'Field-Tested': (0.15, 0.38),
        'Well-Worn': (0.38, 0.45),
        'Battle-Scarred': (0.45, 1.00)
    }

    EXTERIOR_ABBREVIATIONS = {
        'Factory New': 'FN',
        'Minimal Wear': 'MW',
        'Field-Tested': 'FT',
        'Well-Worn': 'WW',
        'Battle-Scarred': 'BS'
    }

    LOCALIZED_EXTERIORS = {
        'Factory New': '崭新出厂',
        'Minimal Wear': '略有磨损',
        'Field-Tested': '久经沙场',
        'Well-Worn': '破损不堪',
        'Battle-Scarred': '战痕累累'
    }

    # Fragments that identify an exterior inside a free-form display name
    EXTERIOR_KEYWORDS = {
        'Factory New': ['Factory New', '崭新'],
        'Minimal Wear': ['Minimal Wear', '略有'],
        'Field-Tested': ['Field-Tested', '久经'],
        'Well-Worn': ['Well-Worn', '破损'],
        'Battle-Scarred': ['Battle-Scarred', '战痕']
    }

    @staticmethod
    def normalized_deformation(condition: float, min_float: float, max_float: float) -> float:
        """Position of a condition value inside its skin's own float range, clamped to [0, 1]."""
        span = max_float - min_float
        if span <= 0:
            return 0.0
        return max(0.0, min(1.0, (condition - min_float) / span))

    @classmethod
    def average_deformation(cls, items: Sequence[TradeItem]) -> float:
        if not items:
            return 0.0
        total = sum(cls.normalized_deformation(item.condition, item.entry.min_float, item.entry.max_float)
                    for item in items)
        return total / len(items)

    @staticmethod
    def output_condition(avg_deformation: float, out_min: float, out_max: float,
                         decimals: int = CONDITION_DECIMALS) -> float:
        """
        Condition value of a trade-up output.

        Rounded to the listing granularity of the price source, so outputs that
        land exactly on an exterior boundary are labelled the same way the
        market labels them.
        """
        return round(avg_deformation * (out_max - out_min) + out_min, decimals)

    @classmethod
    def float_to_exterior(cls, float_value: float) -> str:
        """Map float value to exterior condition."""
        for exterior, (min_range, max_range) in cls.EXTERIOR_RANGES.items():
            if min_range <= float_value < max_range:
                return exterior

        # Battle-Scarred is closed at 1.0
        if 0.45 <= float_value <= 1.0:
            return 'Battle-Scarred'

        return 'Factory New'  # Default fallback

    @classmethod
    def better_exterior(cls, exterior: str) -> Optional[str]:
        """The next exterior towards Factory New, None for Factory New itself."""
        exteriors = list(cls.EXTERIOR_RANGES)
        index = exteriors.index(exterior)
        return exteriors[index - 1] if index > 0 else None

    @classmethod
    def exterior_bounds(cls, exterior: str, min_float: float = 0.0,
                        max_float: float = 1.0) -> Tuple[float, float]:
        """Float range of an exterior intersected with a skin's own range (may be empty)."""
        low, high = cls.EXTERIOR_RANGES[exterior]
        return max(low, min_float), min(high, max_float)

    @classmethod
    def position_in_exterior(cls, float_value: float, exterior: str,
                             min_float: float = 0.0, max_float: float = 1.0) -> float:
        """
        How close a float sits to the better edge of its exterior.

        1.0 at the boundary with the next-better exterior, 0.0 at the worse edge.
        """
        low, high = cls.exterior_bounds(exterior, min_float, max_float)
        if high <= low:
            return 0.0
        return max(0.0, min(1.0, (high - float_value) / (high - low)))

    @classmethod
    def exterior_from_name(cls, name: str) -> Optional[str]:
        """Detect the exterior embedded in a display name (English or Chinese)."""
        for exterior, keywords in cls.EXTERIOR_KEYWORDS.items():
            if any(keyword in name for keyword in keywords):
                return exterior
        return None

    @classmethod
    def exterior_label(cls, exterior: str, language: str = 'en') -> str:
        if language == 'zh':
            return cls.LOCALIZED_EXTERIORS[exterior]
        return exterior

    @classmethod
    def simulated_float(cls, exterior: Optional[str], min_float: float = 0.0,
                        max_float: float = 1.0) -> float:
        """Deterministic mid-exterior stand-in for an item whose exact float is unknown."""
        if exterior is None:
            return (min_float + max_float) / 2

        low, high = cls.exterior_bounds(exterior, min_float, max_float)
        if high < low:
            # Exterior not reachable for this skin; use the nearest end of its range
            low = high = min(max(cls.EXTERIOR_RANGES[exterior][0], min_float), max_float)
        return (low + high) / 2


class OutcomeModel:
    """Computes the output distribution of a ten-item recipe."""

    def __init__(self, catalog, max_tier: int = MAX_TIER, recipe_size: int = RECIPE_SIZE):
        self.catalog = catalog
        self.max_tier = max_tier
        self.recipe_size = recipe_size

    def validate(self, items: Sequence[TradeItem]) -> None:
        """Reject recipes that break the trade-up input rules."""
        if len(items) != self.recipe_size:
            raise ValidationError(
                'item_count', f"A trade-up needs exactly {self.recipe_size} items, got {len(items)}",
                required=self.recipe_size, actual=len(items))

        tiers = sorted({item.tier for item in items})
        if len(tiers) > 1:
            raise ValidationError(
                'mixed_tier', "All items must share the same quality tier", tiers=tiers)

        if len({item.stattrak for item in items}) > 1:
            stattrak_count = sum(1 for item in items if item.stattrak)
            raise ValidationError(
                'mixed_stattrak', "Items must be either all StatTrak or all normal",
                stattrak=stattrak_count, normal=len(items) - stattrak_count)

        tier = tiers[0]
        if tier < 0:
            raise ValidationError(
                'unknown_tier', "Items have an unknown quality tier", tier=tier)
        if tier >= self.max_tier:
            raise ValidationError(
                'ceiling_tier', "Items at the highest tier cannot be traded up",
                tier=tier, max_tier=self.max_tier)

    def reachable_outputs(self, entry: CatalogEntry) -> List[CatalogEntry]:
        """Distinct next-tier entries sharing at least one collection with ``entry``."""
        outputs: Dict[str, CatalogEntry] = {}
        for collection in entry.collections:
            for output in self.catalog.reachable_outputs(collection, entry.tier + 1):
                outputs.setdefault(output.id, output)
        return list(outputs.values())

    def simulate(self, items: Sequence[TradeItem]) -> OutcomeDistribution:
        """
        Build the outcome distribution of a validated recipe.

        Each input rolls independently: it spreads an equal share of the
        probability mass over every output reachable from its own
        collection(s). Outputs reachable from several inputs accumulate their
        shares. An input with no reachable output keeps its share out of the
        distribution, so the probabilities then sum to less than one.
        An empty distribution means the catalog has no outputs at all.
        """
        self.validate(items)

        avg_deformation = FloatCalculator.average_deformation(items)
        tier = items[0].tier
        stattrak = items[0].stattrak

        per_item_outputs = [self.reachable_outputs(item.entry) for item in items]
        if not any(per_item_outputs):
            return OutcomeDistribution(rows=[], avg_deformation=avg_deformation,
                                       input_tier=tier, stattrak=stattrak)

        item_share = 1.0 / self.recipe_size
        accumulated: Dict[str, List] = {}  # entry id -> [entry, probability]
        for outputs in per_item_outputs:
            if not outputs:
                continue
            share = item_share / len(outputs)
            for output in outputs:
                if output.id in accumulated:
                    accumulated[output.id][1] += share
                else:
                    accumulated[output.id] = [output, share]

        rows = [
            OutcomeRow(
                entry=entry,
                probability=probability,
                condition=FloatCalculator.output_condition(
                    avg_deformation, entry.min_float, entry.max_float),
                stattrak=stattrak)
            for entry, probability in accumulated.values()
        ]
        rows.sort(key=lambda row: (-row.probability, row.entry.id))

        return OutcomeDistribution(rows=rows, avg_deformation=avg_deformation,
                                   input_tier=tier, stattrak=stattrak)


class TradeUpSimulator:
    """Prices a recipe's outcome distribution into EV, cost and ROI."""

    def __init__(self, catalog, resolver, outcome_model: Optional[OutcomeModel] = None,
                 console: Optional[Console] = None, debug: bool = False):
        self.catalog = catalog
        self.resolver = resolver
        self.outcome_model = outcome_model or OutcomeModel(catalog)
        self.console = console or Console()
        self.debug = debug

    def evaluate(self, recipe: Union[Recipe, Sequence[TradeItem]]) -> TradeUpEvaluation:
        """
        Evaluate one fixed recipe.

        EV uses the neutral base price of each output, cost uses the
        premium-aware price a buyer pays for each input. Raises
        ValidationError for malformed input and NoOutcomesFound when the
        catalog has no next-tier entry for the inputs' collections.
        """
        items = list(recipe.items if isinstance(recipe, Recipe) else recipe)
        distribution = self.outcome_model.simulate(items)

        if distribution.is_empty:
            collections = [c for item in items for c in item.entry.collections]
            raise NoOutcomesFound(distribution.input_tier, collections)

        outcome_prices = {}
        ev = 0.0
        for row in distribution:
            price = self.resolver.resolve(row.entry, row.condition, row.stattrak)
            outcome_prices[row.entry.id] = price
            ev += row.probability * price

            if self.debug:
                self.console.print(
                    f"[dim]{row.entry.name}: p={row.probability:.4f} float={row.condition:.9f} "
                    f"price={price:.2f}[/dim]")

        cost = sum(self.resolver.price_with_premium(item.entry, item.condition, item.stattrak)
                   for item in items)
        roi = (ev - cost) / cost if cost > 0 else 0.0

        if self.debug:
            self.console.print(
                f"[blue]EV {ev:.2f} / cost {cost:.2f} / ROI {roi:.2%}[/blue]")

        return TradeUpEvaluation(ev=ev, cost=cost, roi=roi, distribution=distribution,
                                 outcome_prices=outcome_prices)
