"""
Data model for the trade-up engine.

Catalog records are pydantic models (validated once at load time, immutable
afterwards); everything produced by a simulation or an allocation is a plain
dataclass value that holds no external resources.
"""

import uuid
from dataclasses import dataclass, field, replace
from typing import Dict, Iterator, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, model_validator

from tradeup_config import EQUALITY_TOLERANCE


class CatalogEntry(BaseModel):
    """One skin of the catalog, independent of condition and StatTrak status."""
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    tier: int
    min_float: float = Field(default=0.0, ge=0.0, le=1.0)
    max_float: float = Field(default=1.0, ge=0.0, le=1.0)
    collections: Tuple[str, ...] = ()
    stattrak_eligible: bool = False
    rarity: Optional[str] = None
    weapon: Optional[str] = None
    category: Optional[str] = None

    @model_validator(mode='after')
    def _check_float_bounds(self) -> 'CatalogEntry':
        if self.min_float > self.max_float:
            raise ValueError(
                f"min_float {self.min_float} is above max_float {self.max_float}")
        return self

    @property
    def float_span(self) -> float:
        return self.max_float - self.min_float


@dataclass(frozen=True, eq=False)
class TradeItem:
    """
    One concrete unit owned or selected by the user.

    Equality is structural: same catalog entry, same StatTrak flag and a
    condition value within EQUALITY_TOLERANCE. ``item_id`` only identifies
    the unit for refinement patches and never takes part in comparisons.
    """
    entry: CatalogEntry
    condition: float
    stattrak: bool = False
    provenance: Optional[str] = None  # inspect link or asset URL
    is_exact: bool = False            # True once the condition came from a precise lookup
    item_id: str = field(default_factory=lambda: uuid.uuid4().hex)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, TradeItem):
            return NotImplemented
        return (self.entry.id == other.entry.id
                and self.stattrak == other.stattrak
                and abs(self.condition - other.condition) < EQUALITY_TOLERANCE)

    def __hash__(self) -> int:
        return hash((self.entry.id, self.stattrak))

    @property
    def tier(self) -> int:
        return self.entry.tier

    def with_condition(self, condition: float, exact: bool = True) -> 'TradeItem':
        """Return a copy carrying a refined condition value (same item_id)."""
        return replace(self, condition=condition, is_exact=exact)


@dataclass
class OutcomeRow:
    """A possible output of one recipe."""
    entry: CatalogEntry
    probability: float
    condition: float
    stattrak: bool = False


@dataclass
class OutcomeDistribution:
    """Discrete distribution over the distinct output entries of one recipe."""
    rows: List[OutcomeRow]
    avg_deformation: float
    input_tier: int
    stattrak: bool = False

    def __iter__(self) -> Iterator[OutcomeRow]:
        return iter(self.rows)

    def __len__(self) -> int:
        return len(self.rows)

    @property
    def is_empty(self) -> bool:
        return not self.rows

    @property
    def total_probability(self) -> float:
        return sum(row.probability for row in self.rows)

    def probability_of(self, entry_id: str) -> float:
        for row in self.rows:
            if row.entry.id == entry_id:
                return row.probability
        return 0.0

    def as_dict(self) -> Dict[str, float]:
        """entry id -> probability"""
        return {row.entry.id: row.probability for row in self.rows}


@dataclass
class TradeUpEvaluation:
    """EV/ROI summary of a single ten-item recipe."""
    ev: float
    cost: float
    roi: float
    distribution: OutcomeDistribution
    outcome_prices: Dict[str, float] = field(default_factory=dict)  # entry id -> base price

    @property
    def best_outcome(self) -> Optional[OutcomeRow]:
        """Most likely outcome, ties broken by the higher price."""
        if self.distribution.is_empty:
            return None
        return max(self.distribution.rows,
                   key=lambda row: (row.probability, self.outcome_prices.get(row.entry.id, 0.0)))


@dataclass(frozen=True)
class Recipe:
    """Ten trade items split into primary and filler slots, with a cached evaluation."""
    index: int
    primaries: Tuple[TradeItem, ...]
    fillers: Tuple[TradeItem, ...]
    evaluation: Optional[TradeUpEvaluation] = None

    @property
    def items(self) -> Tuple[TradeItem, ...]:
        return self.primaries + self.fillers

    @property
    def ev(self) -> float:
        return self.evaluation.ev if self.evaluation else 0.0

    @property
    def cost(self) -> float:
        return self.evaluation.cost if self.evaluation else 0.0

    @property
    def roi(self) -> float:
        return self.evaluation.roi if self.evaluation else 0.0

    @property
    def avg_deformation(self) -> Optional[float]:
        if self.evaluation is None:
            return None
        return self.evaluation.distribution.avg_deformation


@dataclass(frozen=True)
class AllocationPlan:
    """Result of one allocation run: recipes ranked by descending EV."""
    recipes: Tuple[Recipe, ...]
    seed_ev: float
    attempts: int = 0
    accepted_swaps: int = 0
    cancelled: bool = False

    @property
    def total_ev(self) -> float:
        return sum(recipe.ev for recipe in self.recipes)

    def __len__(self) -> int:
        return len(self.recipes)


class TradeUpError(Exception):
    """Base class for every error raised by the engine."""


class ValidationError(TradeUpError):
    """A recipe (or pool) violates the trade-up input rules."""

    def __init__(self, constraint: str, message: str, **details):
        super().__init__(message)
        self.constraint = constraint
        self.details = details


class NoOutcomesFound(TradeUpError):
    """The recipe is valid, but the catalog has no next-tier entry for its collections."""

    def __init__(self, tier: int, collections: List[str]):
        self.tier = tier
        self.collections = sorted(set(collections))
        names = ", ".join(self.collections) or "none"
        super().__init__(
            f"No tier {tier + 1} outputs found for collections: {names}")


class InsufficientInventory(TradeUpError):
    """Not enough primaries or fillers to fill the requested number of recipes."""

    def __init__(self, required_primary: int, actual_primary: int,
                 required_filler: int, actual_filler: int):
        self.required_primary = required_primary
        self.actual_primary = actual_primary
        self.required_filler = required_filler
        self.actual_filler = actual_filler
        super().__init__(
            f"Insufficient inventory: need {required_primary} primary / {required_filler} filler, "
            f"have {actual_primary} / {actual_filler} "
            f"(short {self.primary_shortfall} primary, {self.filler_shortfall} filler)")

    @property
    def primary_shortfall(self) -> int:
        return max(0, self.required_primary - self.actual_primary)

    @property
    def filler_shortfall(self) -> int:
        return max(0, self.required_filler - self.actual_filler)


class CatalogLoadError(TradeUpError):
    """Catalog or price data could not be loaded from any source."""
