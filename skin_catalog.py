"""
Catalog and price-feed collaborators for the trade-up engine.

The engine only needs two read-only lookups: next-tier entries per collection
and a listing-name -> price map. This module provides in-memory versions of
both plus a loader that fills them from local or remote JSON dumps.
"""

import json
import time
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Tuple, Union
from urllib.parse import urlparse

import requests
from pydantic import ValidationError as PydanticValidationError
from rich.console import Console

from tradeup_config import CACHE_MAX_AGE_HOURS, DOWNLOAD_TIMEOUT_SECONDS, MAX_TIER
from tradeup_models import CatalogEntry, CatalogLoadError

# Rarity display names (English and Chinese feeds) -> tier level
RARITY_TIERS = {
    'Consumer Grade': 0, 'Consumer': 0, 'Base Grade': 0, '消费级': 0,
    'Industrial Grade': 1, 'Industrial': 1, '工业级': 1,
    'Mil-Spec Grade': 2, 'Mil-Spec': 2, 'Mil-spec': 2, 'Military': 2, '军规级': 2,
    'Restricted': 3, 'Restricted Grade': 3, '受限': 3, '受限级': 3,
    'Classified': 4, 'Classified Grade': 4, '保密': 4, '保密级': 4,
    'Covert': 5, 'Covert Grade': 5, '隐秘': 5, '隐秘级': 5, '隐密': 5,
    'Contraband': 6, 'Extraordinary': 6, '违禁': 6, '违禁级': 6, '非凡': 6, '非凡级': 6, '金色': 6,
}

# Decorations that differ between sources naming the same collection
COLLECTION_NOISE_TOKENS = ['收藏品', '武器箱', 'collection', 'case',
                           '大行动', 'operation', 'map', '地图']


def rarity_to_tier(rarity: Optional[str]) -> int:
    """Map a rarity name to its tier level, -1 when unknown."""
    if not rarity:
        return -1
    return RARITY_TIERS.get(rarity.strip(), -1)


def normalize_collection_key(name: str) -> str:
    """
    Normalize a collection name so differently decorated spellings collide.

    "Dust 2 Collection", "dust 2" and "Dust2 收藏品" all map to "dust2":
    lowercase, noise tokens removed, every non-alphanumeric dropped.
    """
    key = name.lower()
    for token in COLLECTION_NOISE_TOKENS:
        key = key.replace(token, '')
    return ''.join(ch for ch in key if ch.isalnum())


class CatalogIndex:
    """In-memory catalog service indexed by (collection key, tier)."""

    # Item kinds that never take part in trade-up contracts
    INELIGIBLE_KEYWORDS = [
        'knife', 'glove', 'wraps', 'dagger', 'bayonet', 'karambit', 'souvenir',
        'agent', 'patch', 'music kit', 'sticker',
        '爪子', '手套', '裹手', '匕首', '刺刀', '折叠', '蝴蝶', '短剑', '系带',
        '纪念品', '探员', '布章', '音乐盒', '印花',
    ]

    def __init__(self, entries: Iterable[CatalogEntry], console: Optional[Console] = None,
                 debug: bool = False):
        self.entries = list(entries)
        self.console = console or Console()
        self.debug = debug

        self._by_id: Dict[str, CatalogEntry] = {}
        self._by_key_tier: Dict[Tuple[str, int], List[CatalogEntry]] = {}
        self._build_indexes()

    def _build_indexes(self) -> None:
        """Build id and (collection key, tier) indexes."""
        for entry in self.entries:
            self._by_id[entry.id] = entry

            seen_keys = set()
            for collection in entry.collections:
                key = normalize_collection_key(collection)
                if not key or key in seen_keys:
                    continue
                seen_keys.add(key)
                self._by_key_tier.setdefault((key, entry.tier), []).append(entry)

        collection_count = len({key for key, _ in self._by_key_tier})
        self.console.print(
            f"[green]Indexed {len(self.entries)} catalog entries across {collection_count} collections[/green]")

    def all_entries(self) -> List[CatalogEntry]:
        return list(self.entries)

    def get(self, entry_id: str) -> Optional[CatalogEntry]:
        return self._by_id.get(entry_id)

    def entries_by_tier_and_collection(self, collection_key: str, tier: int) -> List[CatalogEntry]:
        """Entries of ``tier`` in the collection identified by a normalized key."""
        return list(self._by_key_tier.get((collection_key, tier), []))

    def reachable_outputs(self, collection_name: str, tier: int) -> List[CatalogEntry]:
        """Entries of ``tier`` in a collection given by its display name."""
        return self.entries_by_tier_and_collection(normalize_collection_key(collection_name), tier)

    def is_valid_input(self, entry: CatalogEntry) -> bool:
        """Check if an entry can be used as trade-up input."""
        name = entry.name.lower()
        category = (entry.category or '').lower()
        for keyword in self.INELIGIBLE_KEYWORDS:
            if keyword in name or keyword in category:
                return False

        return 0 <= entry.tier < MAX_TIER


class PriceFeed:
    """Flat listing-name -> price map, fully loaded before any engine call."""

    # Price fields accepted in feed records, in order of preference
    PRICE_FIELDS = ['price', 'yyyp_sell_price', 'steam_price', 'sell_price']

    def __init__(self, prices: Dict[str, float]):
        self.prices = dict(prices)

    def __len__(self) -> int:
        return len(self.prices)

    def price_for_listing_name(self, name: str) -> Optional[float]:
        return self.prices.get(name)

    @classmethod
    def from_records(cls, records: Union[Dict, List]) -> 'PriceFeed':
        """Build a feed from either a name -> price dict or a list of listing records."""
        if isinstance(records, dict):
            return cls({name: float(price) for name, price in records.items()
                        if isinstance(price, (int, float))})

        prices = {}
        for record in records:
            if not isinstance(record, dict) or not record.get('name'):
                continue
            for price_field in cls.PRICE_FIELDS:
                value = record.get(price_field)
                if isinstance(value, (int, float)):
                    prices[record['name']] = float(value)
                    break
        return cls(prices)


class CatalogNormalizer:
    """Normalizes catalog dump records to CatalogEntry."""

    @staticmethod
    def _name_of(value) -> Optional[str]:
        if isinstance(value, dict):
            return value.get('name')
        return value

    @classmethod
    def normalize_record(cls, record: Dict) -> CatalogEntry:
        """
        Normalize one catalog record.

        Accepts both nested dumps (``{"rarity": {"name": ...}, "collections": [{"name": ...}]}``)
        and flat records (``{"rarity": "Covert", "collections": ["..."]}`` or an explicit ``tier``).
        """
        rarity = cls._name_of(record.get('rarity'))
        tier = record.get('tier')
        if tier is None:
            tier = rarity_to_tier(rarity)

        collections = tuple(
            name for name in (cls._name_of(c) for c in record.get('collections') or [])
            if name)
        if not collections and record.get('collection'):
            collections = (record['collection'],)

        min_float = record.get('min_float')
        max_float = record.get('max_float')

        return CatalogEntry(
            id=str(record.get('id') or record['name']),
            name=record['name'],
            tier=tier,
            min_float=0.0 if min_float is None else min_float,
            max_float=1.0 if max_float is None else max_float,
            collections=collections,
            stattrak_eligible=bool(record.get('stattrak', False)),
            rarity=rarity,
            weapon=cls._name_of(record.get('weapon')),
            category=cls._name_of(record.get('category')),
        )


class DatabaseLoader:
    """Loads catalog and price dumps from local files or URLs, caching downloads on disk."""

    def __init__(self, cache_dir: str = "./skins_cache", max_age_hours: int = CACHE_MAX_AGE_HOURS,
                 console: Optional[Console] = None, debug: bool = False):
        self.cache_dir = Path(cache_dir)
        self.max_age_hours = max_age_hours
        self.console = console or Console()
        self.debug = debug

    @staticmethod
    def _is_url(source: str) -> bool:
        return urlparse(source).scheme in ('http', 'https')

    def load_json(self, sources: Sequence[str], cache_name: str, force_refresh: bool = False):
        """Load JSON from the first source that works, trying each in order."""
        cache_path = self.cache_dir / cache_name

        remote = any(self._is_url(source) for source in sources)
        if remote and not force_refresh and self._is_cache_valid(cache_path):
            self.console.print(f"[green]Loading {cache_name} from cache...[/green]")
            return self._load_file(cache_path)

        for source in sources:
            if not self._is_url(source):
                path = Path(source)
                if path.exists():
                    return self._load_file(path)
                self.console.print(f"[red]File not found: {source}[/red]")
                continue

            try:
                self.console.print(f"[yellow]Downloading {source}...[/yellow]")
                response = requests.get(source, timeout=DOWNLOAD_TIMEOUT_SECONDS)
                response.raise_for_status()
                data = response.json()
            except (requests.RequestException, ValueError) as e:
                self.console.print(f"[red]Failed to download from {source}: {e}[/red]")
                continue

            self._save_to_cache(cache_path, data)
            return data

        raise CatalogLoadError(f"Failed to load {cache_name} from any source")

    def _is_cache_valid(self, cache_path: Path) -> bool:
        if not cache_path.exists():
            return False
        cache_age = time.time() - cache_path.stat().st_mtime
        return cache_age < self.max_age_hours * 3600

    @staticmethod
    def _load_file(path: Path):
        with open(path, 'r', encoding='utf-8') as f:
            return json.load(f)

    def _save_to_cache(self, cache_path: Path, data) -> None:
        cache_path.parent.mkdir(parents=True, exist_ok=True)
        with open(cache_path, 'w', encoding='utf-8') as f:
            json.dump(data, f, ensure_ascii=False)

    def load_catalog(self, sources: Sequence[str], force_refresh: bool = False) -> CatalogIndex:
        """Load and normalize the catalog dump into a CatalogIndex."""
        raw_data = self.load_json(sources, "catalog.json", force_refresh)
        records = raw_data.get('items', []) if isinstance(raw_data, dict) else raw_data

        entries = []
        skipped = 0
        for record in records:
            try:
                entries.append(CatalogNormalizer.normalize_record(record))
            except (KeyError, TypeError, PydanticValidationError) as e:
                skipped += 1
                if self.debug:
                    self.console.print(f"[dim]Skipping catalog record: {e}[/dim]")

        if skipped:
            self.console.print(f"[yellow]Skipped {skipped} malformed catalog records[/yellow]")
        return CatalogIndex(entries, console=self.console, debug=self.debug)

    def load_price_feed(self, sources: Sequence[str], force_refresh: bool = False) -> PriceFeed:
        """Load the listing price dump into a PriceFeed."""
        raw_data = self.load_json(sources, "prices.json", force_refresh)
        feed = PriceFeed.from_records(raw_data)
        self.console.print(f"[green]Loaded {len(feed)} price listings[/green]")
        return feed
