"""
Fuzzy market-price resolution.

The price feed keys listings by display strings, and those strings disagree
with the catalog on spacing, weapon spelling, StatTrak rendering and bracket
style. ``PriceResolver`` builds the canonical listing name for an
(entry, condition, StatTrak) query and, when that misses, walks a fixed,
ordered chain of alternative spellings. The first hit wins; a full miss is
reported as price 0 ("unpriced"), never as an exception.

On top of the plain lookup, ``price_with_premium`` models the premium a buyer
pays for an item sitting close to the next-better exterior.
"""

from dataclasses import dataclass
from typing import Callable, Dict, Iterator, List, Optional, Sequence, Tuple

from rich.console import Console

from tradeup_config import FLAT_PREMIUM, INTERPOLATION_CAP, TIER_ANCHOR_RATIOS
from tradeup_engine import FloatCalculator
from tradeup_models import CatalogEntry

NAME_DELIMITER = ' | '

# StatTrak rendering used by the feed; inserted right after the weapon segment
VARIANT_MARKER = '（StatTrak™）'
# Alternate StatTrak renderings other sources put in front of the whole name
VARIANT_PREFIXES = ('StatTrak™ ', 'StatTrak ')
# Every StatTrak decoration that can appear inside a catalog name
VARIANT_DECORATIONS = ('StatTrak™ ', 'StatTrak ', ' （StatTrak™）', '（StatTrak™）',
                       ' (StatTrak™)', '(StatTrak™)')

FULLWIDTH_BRACKETS = {'（': '(', '）': ')'}

# (keyword fragment found in the weapon segment, alternate weapon renderings)
# Checked in order; each alternate is tried with the decoration segment unchanged.
WEAPON_KEYWORD_ALTERNATES: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    ('desert', ('Desert Eagle', '沙漠之鹰')),
    ('deagle', ('Desert Eagle', '沙漠之鹰')),
    ('沙漠之鹰', ('Desert Eagle',)),
    ('usp', ('USP-S', 'USP 消音版')),
    ('cz75', ('CZ75-Auto', 'CZ75 自动手枪')),
    ('glock', ('Glock-18', '格洛克 18 型')),
    ('格洛克', ('Glock-18',)),
    ('galil', ('Galil AR', '加利尔 AR')),
    ('加利尔', ('Galil AR',)),
    ('famas', ('FAMAS', '法玛斯')),
    ('法玛斯', ('FAMAS',)),
    ('m4a1', ('M4A1-S', 'M4A1 消音型')),
    ('m4a4', ('M4A4',)),
    ('r8', ('R8 Revolver', 'R8 左轮手枪')),
    ('mp5', ('MP5-SD',)),
)

# Generic category words some sources append to the weapon segment (longest first)
CATEGORY_SUFFIX_TOKENS = ('Sniper Rifle', 'Machinegun', 'Shotgun', 'Pistol', 'Rifle', 'SMG',
                          '狙击步枪', '冲锋枪', '霰弹枪', '手枪', '步枪', '机枪')


@dataclass(frozen=True)
class PriceLookup:
    """A resolved listing: which name matched, its price and the strategy that found it."""
    name: str
    price: float
    strategy: str


class ListingNames:
    """Builds and decomposes listing names."""

    @staticmethod
    def base_name(name: str) -> str:
        """Catalog name with every StatTrak decoration and exterior suffix stripped."""
        base = name
        for decoration in VARIANT_DECORATIONS:
            base = base.replace(decoration, '')

        for exterior in FloatCalculator.EXTERIOR_RANGES:
            for label in (exterior, FloatCalculator.LOCALIZED_EXTERIORS[exterior]):
                base = base.replace(f' ({label})', '').replace(f'({label})', '')

        return base.strip()

    @staticmethod
    def split(base: str) -> Tuple[str, Optional[str]]:
        """Split a base name into (weapon segment, decoration segment)."""
        if NAME_DELIMITER in base:
            weapon, decoration = base.split(NAME_DELIMITER, 1)
            return weapon.strip(), decoration.strip()
        return base.strip(), None

    @staticmethod
    def join(weapon: str, decoration: Optional[str]) -> str:
        if decoration is None:
            return weapon
        return f"{weapon}{NAME_DELIMITER}{decoration}"

    @classmethod
    def render(cls, weapon: str, decoration: Optional[str], label: str, is_variant: bool) -> List[str]:
        """
        Every spelling of one listing, canonical first.

        Normal items have a single spelling. StatTrak items are tried with the
        feed marker, the same marker in ASCII brackets, then the prefix forms.
        """
        if not is_variant:
            return [f"{cls.join(weapon, decoration)} ({label})"]

        marked = cls.join(f"{weapon}{VARIANT_MARKER}", decoration)
        names = [f"{marked} ({label})", f"{cls.normalize_brackets(marked)} ({label})"]
        names.extend(f"{prefix}{cls.join(weapon, decoration)} ({label})" for prefix in VARIANT_PREFIXES)
        return names

    @staticmethod
    def normalize_brackets(name: str) -> str:
        for fullwidth, ascii_bracket in FULLWIDTH_BRACKETS.items():
            name = name.replace(fullwidth, ascii_bracket)
        return name


class PriceResolver:
    """Resolves market prices for catalog entries through an ordered fallback chain."""

    def __init__(self, feed, language: str = 'en',
                 keyword_table: Sequence[Tuple[str, Sequence[str]]] = WEAPON_KEYWORD_ALTERNATES,
                 category_tokens: Sequence[str] = CATEGORY_SUFFIX_TOKENS,
                 anchor_ratios: Optional[Dict[str, float]] = None,
                 interpolation_cap: float = INTERPOLATION_CAP,
                 flat_premium: float = FLAT_PREMIUM,
                 console: Optional[Console] = None, debug: bool = False):
        self.feed = feed
        self.language = language
        self.keyword_table = keyword_table
        self.category_tokens = category_tokens
        self.anchor_ratios = anchor_ratios or dict(TIER_ANCHOR_RATIOS)
        self.interpolation_cap = interpolation_cap
        self.flat_premium = flat_premium
        self.console = console or Console()
        self.debug = debug

        # Weapon-segment spellings, tried in this order
        self.strategies: Tuple[Tuple[str, Callable[[str], List[str]]], ...] = (
            ('canonical', lambda weapon: [weapon]),
            ('no_spaces', self._without_spaces),
            ('keyword', self._keyword_alternates),
            ('category_suffix', self._without_category_suffix),
        )

    # Weapon-segment strategies

    @staticmethod
    def _without_spaces(weapon: str) -> List[str]:
        return [weapon.replace(' ', '')]

    def _keyword_alternates(self, weapon: str) -> List[str]:
        """Alternates of the first keyword found in the weapon segment."""
        lowered = weapon.lower()
        for keyword, alternates in self.keyword_table:
            if keyword in lowered:
                return list(alternates)
        return []

    def _without_category_suffix(self, weapon: str) -> List[str]:
        for token in self.category_tokens:
            if weapon.endswith(token) and len(weapon) > len(token):
                return [weapon[:-len(token)].strip()]
        return []

    # Lookup

    def label_for(self, exterior: str) -> str:
        return FloatCalculator.exterior_label(exterior, self.language)

    def canonical_name(self, entry: CatalogEntry, condition: float, is_variant: bool) -> str:
        """Listing name tried first for a query."""
        exterior = FloatCalculator.float_to_exterior(condition)
        weapon, decoration = ListingNames.split(ListingNames.base_name(entry.name))
        return ListingNames.render(weapon, decoration, self.label_for(exterior), is_variant)[0]

    def candidate_names(self, entry: CatalogEntry, exterior: str,
                        is_variant: bool) -> Iterator[Tuple[str, str]]:
        """Yield (strategy, listing name) in resolution order, skipping repeats."""
        weapon, decoration = ListingNames.split(ListingNames.base_name(entry.name))
        label = self.label_for(exterior)
        seen = set()

        for strategy, spellings in self.strategies:
            for weapon_spelling in spellings(weapon):
                for position, name in enumerate(
                        ListingNames.render(weapon_spelling, decoration, label, is_variant)):
                    if name in seen:
                        continue
                    seen.add(name)
                    if strategy == 'canonical' and position > 0:
                        # Marker spellings of the canonical weapon name
                        yield ('normalized_brackets' if position == 1 else 'variant_prefix'), name
                    else:
                        yield strategy, name

    def lookup_exterior(self, entry: CatalogEntry, exterior: str,
                        is_variant: bool) -> Optional[PriceLookup]:
        """First listing found for an explicit exterior, None when nothing matches."""
        for strategy, name in self.candidate_names(entry, exterior, is_variant):
            price = self.feed.price_for_listing_name(name)
            if price is not None and price > 0:
                if self.debug and strategy != 'canonical':
                    self.console.print(f"[dim]Resolved '{entry.name}' via {strategy}: {name}[/dim]")
                return PriceLookup(name=name, price=price, strategy=strategy)

        if self.debug:
            self.console.print(
                f"[yellow]No listing for {entry.name} ({exterior}, StatTrak: {is_variant})[/yellow]")
        return None

    def lookup(self, entry: CatalogEntry, condition: float, is_variant: bool) -> Optional[PriceLookup]:
        return self.lookup_exterior(entry, FloatCalculator.float_to_exterior(condition), is_variant)

    def resolve_exterior(self, entry: CatalogEntry, exterior: str, is_variant: bool) -> float:
        found = self.lookup_exterior(entry, exterior, is_variant)
        return found.price if found else 0.0

    def resolve(self, entry: CatalogEntry, condition: float, is_variant: bool) -> float:
        """Base market price for the exterior ``condition`` falls in; 0 means unpriced."""
        return self.resolve_exterior(entry, FloatCalculator.float_to_exterior(condition), is_variant)

    def price_with_premium(self, entry: CatalogEntry, condition: float, is_variant: bool) -> float:
        """
        Price a buyer pays for this exact float.

        When the next-better exterior is also listed, the price is blended
        towards it by the exterior's anchor ratio, scaled by how close the
        float sits to that boundary, and capped at INTERPOLATION_CAP of the
        better price. Without a better listing a small flat premium scaled the
        same way is applied instead. Unpriced items stay at 0.
        """
        exterior = FloatCalculator.float_to_exterior(condition)
        base = self.resolve_exterior(entry, exterior, is_variant)
        if base <= 0:
            return 0.0

        position = FloatCalculator.position_in_exterior(
            condition, exterior, entry.min_float, entry.max_float)

        better = FloatCalculator.better_exterior(exterior)
        better_price = self.resolve_exterior(entry, better, is_variant) if better else 0.0

        if better_price > 0:
            cap = better_price * self.interpolation_cap
            if base >= cap:
                return base
            blended = base + (better_price - base) * self.anchor_ratios.get(exterior, 0.0) * position
            return min(blended, cap)

        return base * (1 + self.flat_premium * position)
