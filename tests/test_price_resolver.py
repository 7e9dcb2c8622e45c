#!/usr/bin/env python3
"""
Unit tests for fuzzy price resolution.
Tests listing-name rendering, the fallback chain order and price interpolation.
"""

import pytest

from price_resolver import ListingNames, PriceResolver
from skin_catalog import PriceFeed


class RecordingFeed(PriceFeed):
    """Price feed that remembers every listing name it was asked for."""

    def __init__(self, prices):
        super().__init__(prices)
        self.queries = []

    def price_for_listing_name(self, name):
        self.queries.append(name)
        return super().price_for_listing_name(name)


class TestListingNames:
    """Test listing name decomposition and rendering."""

    def test_base_name_strips_decorations(self):
        assert ListingNames.base_name("StatTrak™ AK-47 | Redline (Field-Tested)") == "AK-47 | Redline"
        assert ListingNames.base_name("AK-47（StatTrak™） | 红线 (久经沙场)") == "AK-47 | 红线"
        assert ListingNames.base_name("AK-47 | Redline") == "AK-47 | Redline"

    def test_split(self):
        assert ListingNames.split("AK-47 | Redline") == ("AK-47", "Redline")
        assert ListingNames.split("Sticker Capsule") == ("Sticker Capsule", None)

    def test_render_normal(self):
        assert ListingNames.render("AK-47", "Redline", "Field-Tested", False) == \
               ["AK-47 | Redline (Field-Tested)"]

    def test_render_variant(self):
        """The feed marker goes right after the weapon segment, prefix forms come last."""
        assert ListingNames.render("AK-47", "Redline", "Field-Tested", True) == [
            "AK-47（StatTrak™） | Redline (Field-Tested)",
            "AK-47(StatTrak™) | Redline (Field-Tested)",
            "StatTrak™ AK-47 | Redline (Field-Tested)",
            "StatTrak AK-47 | Redline (Field-Tested)",
        ]


class TestFallbackChain:
    """Test the ordered fallback chain of PriceResolver."""

    def test_canonical_hit_queries_once(self, make_entry, console):
        feed = RecordingFeed({"AK-47 | Redline (Field-Tested)": 12.5})
        resolver = PriceResolver(feed, console=console)
        entry = make_entry('ak', name="AK-47 | Redline")

        assert resolver.resolve(entry, 0.2, False) == 12.5
        assert feed.queries == ["AK-47 | Redline (Field-Tested)"]

    def test_canonical_name(self, make_entry, console):
        resolver = PriceResolver(PriceFeed({}), console=console)
        entry = make_entry('ak', name="AK-47 | Redline")
        assert resolver.canonical_name(entry, 0.2, True) == "AK-47（StatTrak™） | Redline (Field-Tested)"

    def test_variant_prefix_fallback(self, make_entry, console):
        """A StatTrak query reaches the prefix spelling but never the normal listing."""
        feed = RecordingFeed({
            "Foo | Bar (Factory New)": 100.0,
            "StatTrak™ Foo | Bar (Factory New)": 150.0,
        })
        resolver = PriceResolver(feed, console=console)
        entry = make_entry('foo', name="Foo | Bar")

        lookup = resolver.lookup(entry, 0.01, True)
        assert lookup.price == 150.0
        assert lookup.strategy == 'variant_prefix'
        assert feed.queries == [
            "Foo（StatTrak™） | Bar (Factory New)",
            "Foo(StatTrak™) | Bar (Factory New)",
            "StatTrak™ Foo | Bar (Factory New)",
        ]
        assert resolver.resolve(entry, 0.01, False) == 100.0

    def test_variant_without_any_listing_is_unpriced(self, make_entry, console):
        resolver = PriceResolver(PriceFeed({"Foo | Bar (Factory New)": 100.0}), console=console)
        assert resolver.resolve(make_entry('foo', name="Foo | Bar"), 0.01, True) == 0.0

    def test_no_spaces_fallback(self, make_entry, console):
        resolver = PriceResolver(PriceFeed({"SSG08 | Acid Fade (Field-Tested)": 5.0}), console=console)
        lookup = resolver.lookup(make_entry('ssg', name="SSG 08 | Acid Fade"), 0.2, False)

        assert lookup.price == 5.0
        assert lookup.strategy == 'no_spaces'

    def test_keyword_fallback(self, make_entry, console):
        resolver = PriceResolver(PriceFeed({"Desert Eagle | Blaze (Factory New)": 300.0}), console=console)
        lookup = resolver.lookup(make_entry('deagle', name="Deagle | Blaze"), 0.03, False)

        assert lookup.price == 300.0
        assert lookup.strategy == 'keyword'

    def test_keyword_fallback_chinese_alternate(self, make_entry, console):
        resolver = PriceResolver(PriceFeed({"格洛克 18 型 | 渐变之色 (崭新出厂)": 80.0}),
                                 language='zh', console=console)
        assert resolver.resolve(make_entry('glock', name="Glock | 渐变之色"), 0.03, False) == 80.0

    def test_category_suffix_fallback(self, make_entry, console):
        resolver = PriceResolver(PriceFeed({"MP9 | Dart (Minimal Wear)": 2.0}), console=console)
        lookup = resolver.lookup(make_entry('mp9', name="MP9 SMG | Dart"), 0.1, False)

        assert lookup.price == 2.0
        assert lookup.strategy == 'category_suffix'

    def test_earlier_strategy_wins(self, make_entry, console):
        """When several spellings are listed, the earliest strategy decides the price."""
        resolver = PriceResolver(PriceFeed({
            "DesertEagle | Blaze (Factory New)": 290.0,
            "Desert Eagle | Blaze (Factory New)": 300.0,
        }), console=console)
        assert resolver.resolve(make_entry('de', name="Desert Eagle | Blaze"), 0.03, False) == 300.0

    def test_localized_labels(self, make_entry, console):
        resolver = PriceResolver(PriceFeed({"AK-47 | 红线 (久经沙场)": 50.0}), language='zh', console=console)
        assert resolver.resolve(make_entry('ak', name="AK-47 | 红线"), 0.2, False) == 50.0

    def test_zero_priced_listing_is_skipped(self, make_entry, console):
        resolver = PriceResolver(PriceFeed({
            "SSG 08 | Acid Fade (Field-Tested)": 0.0,
            "SSG08 | Acid Fade (Field-Tested)": 9.0,
        }), console=console)
        assert resolver.resolve(make_entry('ssg', name="SSG 08 | Acid Fade"), 0.2, False) == 9.0

    def test_unresolved(self, make_entry, console):
        resolver = PriceResolver(PriceFeed({}), console=console)
        entry = make_entry('ak', name="AK-47 | Redline")

        assert resolver.lookup(entry, 0.2, False) is None
        assert resolver.resolve(entry, 0.2, False) == 0.0

    def test_custom_keyword_table(self, make_entry, console):
        resolver = PriceResolver(PriceFeed({"Krieg | Bloom (Field-Tested)": 4.0}),
                                 keyword_table=(('sg553', ('Krieg',)),), console=console)
        assert resolver.resolve(make_entry('sg', name="SG553 | Bloom"), 0.2, False) == 4.0


class TestPriceWithPremium:
    """Test condition-tier interpolation of buyer prices."""

    PRICES = {
        "Foo | Bar (Field-Tested)": 10.0,
        "Foo | Bar (Minimal Wear)": 20.0,
    }

    def test_blends_towards_better_tier(self, make_entry, console):
        resolver = PriceResolver(PriceFeed(self.PRICES), console=console)
        entry = make_entry('foo', name="Foo | Bar")

        # Best Field-Tested float: full anchor weight (0.25) towards Minimal Wear
        assert resolver.price_with_premium(entry, 0.15, False) == pytest.approx(12.5)
        # Halfway through Field-Tested
        assert resolver.price_with_premium(entry, 0.265, False) == pytest.approx(11.25)
        # Worst Field-Tested edge keeps the base price
        assert resolver.price_with_premium(entry, 0.3799999, False) == pytest.approx(10.0, abs=1e-4)

    def test_capped_below_better_tier(self, make_entry, console):
        resolver = PriceResolver(PriceFeed(self.PRICES), anchor_ratios={'Field-Tested': 1.0},
                                 console=console)
        assert resolver.price_with_premium(make_entry('foo', name="Foo | Bar"), 0.15, False) == \
               pytest.approx(19.0)

    def test_base_already_near_better_tier(self, make_entry, console):
        resolver = PriceResolver(PriceFeed({
            "Foo | Bar (Field-Tested)": 10.0,
            "Foo | Bar (Minimal Wear)": 10.2,
        }), console=console)
        assert resolver.price_with_premium(make_entry('foo', name="Foo | Bar"), 0.15, False) == 10.0

    def test_flat_premium_without_better_listing(self, make_entry, console):
        resolver = PriceResolver(PriceFeed({"Foo | Bar (Factory New)": 100.0}), console=console)
        entry = make_entry('foo', name="Foo | Bar")

        assert resolver.price_with_premium(entry, 0.0, False) == pytest.approx(105.0)
        assert resolver.price_with_premium(entry, 0.035, False) == pytest.approx(102.5)

    def test_skin_range_narrows_position(self, make_entry, console):
        """A skin capped at 0.30 measures Field-Tested position over 0.15-0.30."""
        resolver = PriceResolver(PriceFeed(self.PRICES), console=console)
        entry = make_entry('foo', name="Foo | Bar", max_float=0.3)
        assert resolver.price_with_premium(entry, 0.225, False) == pytest.approx(11.25)

    def test_unpriced_stays_zero(self, make_entry, console):
        resolver = PriceResolver(PriceFeed({"Foo | Bar (Minimal Wear)": 20.0}), console=console)
        assert resolver.price_with_premium(make_entry('foo', name="Foo | Bar"), 0.2, False) == 0.0
