"""Shared fixtures for the trade-up engine tests."""

import pytest
from rich.console import Console

from price_resolver import PriceResolver
from skin_catalog import CatalogIndex, PriceFeed
from tradeup_engine import TradeUpSimulator
from tradeup_models import CatalogEntry, TradeItem


@pytest.fixture
def console():
    return Console(quiet=True)


@pytest.fixture
def make_entry():
    """Factory for catalog entries with sensible defaults."""
    def _make(entry_id, tier=2, collections=("Dust 2",), min_float=0.0, max_float=1.0, name=None):
        return CatalogEntry(
            id=entry_id,
            name=name or f"Weapon {entry_id} | Pattern {entry_id}",
            tier=tier,
            min_float=min_float,
            max_float=max_float,
            collections=tuple(collections),
        )
    return _make


@pytest.fixture
def make_items():
    """Factory for ``count`` trade items of one entry at one condition."""
    def _make(entry, condition=0.2, count=10, stattrak=False):
        return [TradeItem(entry=entry, condition=condition, stattrak=stattrak) for _ in range(count)]
    return _make


@pytest.fixture
def sample_catalog(make_entry, console):
    """
    Two collections, tier 2 inputs and tier 3 outputs.

    Dust 2 has two outputs (A1, A2), Mirage has one (B1).
    """
    entries = [
        make_entry('in_a', tier=2, collections=("Dust 2 Collection",), max_float=0.5),
        make_entry('in_b', tier=2, collections=("Mirage Collection",)),
        make_entry('out_a1', tier=3, collections=("dust 2",), name="AK-47 | Alpha"),
        make_entry('out_a2', tier=3, collections=("Dust2 收藏品",), name="M4A4 | Beta"),
        make_entry('out_b1', tier=3, collections=("Mirage",), name="AWP | Gamma"),
    ]
    return CatalogIndex(entries, console=console)


@pytest.fixture
def make_simulator(sample_catalog, console):
    """Simulator over ``sample_catalog`` with a price feed built from a dict."""
    def _make(prices, catalog=None):
        resolver = PriceResolver(PriceFeed(prices), console=console)
        return TradeUpSimulator(catalog or sample_catalog, resolver, console=console)
    return _make
