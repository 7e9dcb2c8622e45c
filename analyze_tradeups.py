#!/usr/bin/env python3
"""
CS2 Trade-Up Simulator & Inventory Allocator

Usage:
    python analyze_tradeups.py --catalog skins.json --prices prices.json simulate --items recipe.json
    python analyze_tradeups.py --catalog skins.json --prices prices.json groups --inventory inventory.json
    python analyze_tradeups.py --catalog skins.json --prices prices.json allocate --inventory inventory.json \\
        --primary "AK-47 | Elite Build (Field-Tested)" --filler "MP9 | Dart (Field-Tested)" --recipes 3 --primaries 4
"""

import argparse
import json
import random
import sys
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from rich.console import Console
from rich.table import Table
from tabulate import tabulate

from inventory_optimizer import AllocationOptimizer, InventoryGroup, InventoryImporter
from price_resolver import PriceResolver
from skin_catalog import CatalogIndex, DatabaseLoader, PriceFeed
from tradeup_config import MAX_SWAP_ATTEMPTS
from tradeup_engine import FloatCalculator, TradeUpSimulator
from tradeup_models import AllocationPlan, TradeItem, TradeUpError, TradeUpEvaluation, ValidationError


class TradeUpAnalyzer:
    """Wires the catalog, price feed and engine together for the command line."""

    def __init__(self, cache_dir: str = "./skins_cache", language: str = 'en',
                 console: Optional[Console] = None, debug: bool = False):
        self.console = console or Console()
        self.debug = debug
        self.language = language
        self.database_loader = DatabaseLoader(cache_dir, console=self.console, debug=debug)
        self.catalog: Optional[CatalogIndex] = None
        self.feed: Optional[PriceFeed] = None
        self.resolver: Optional[PriceResolver] = None
        self.simulator: Optional[TradeUpSimulator] = None
        self.importer: Optional[InventoryImporter] = None

    def load_data(self, catalog_sources: Sequence[str], price_sources: Sequence[str],
                  force_refresh: bool = False) -> None:
        """Load catalog and prices, then build the engine components."""
        self.console.print("[bold blue]Loading CS2 catalog and prices...[/bold blue]")

        self.catalog = self.database_loader.load_catalog(catalog_sources, force_refresh)
        self.feed = self.database_loader.load_price_feed(price_sources, force_refresh)
        self.resolver = PriceResolver(self.feed, language=self.language,
                                      console=self.console, debug=self.debug)
        self.simulator = TradeUpSimulator(self.catalog, self.resolver,
                                          console=self.console, debug=self.debug)
        self.importer = InventoryImporter(self.catalog, self.resolver,
                                          console=self.console, debug=self.debug)

    def _require_data(self) -> None:
        if not self.simulator:
            raise ValueError("Data not loaded. Call load_data() first.")

    def build_items(self, specs: List[Dict]) -> List[TradeItem]:
        """Turn ``{"entry_id"|"name", "condition", "stattrak"}`` specs into trade items."""
        self._require_data()
        items = []
        for spec in specs:
            entry = None
            if spec.get('entry_id'):
                entry = self.catalog.get(spec['entry_id'])
            elif spec.get('name'):
                entry = self.importer.match_entry(spec['name'])

            if entry is None:
                raise ValidationError(
                    'unknown_item', f"Unknown item: {spec.get('entry_id') or spec.get('name')}",
                    spec=spec)

            condition = spec.get('condition')
            if condition is None:
                exterior = FloatCalculator.exterior_from_name(spec.get('name', ''))
                condition = FloatCalculator.simulated_float(exterior, entry.min_float, entry.max_float)

            items.append(TradeItem(entry=entry, condition=condition,
                                   stattrak=bool(spec.get('stattrak', False)),
                                   provenance=spec.get('provenance'),
                                   is_exact=spec.get('condition') is not None))
        return items

    def simulate(self, specs: List[Dict]) -> TradeUpEvaluation:
        self._require_data()
        return self.simulator.evaluate(self.build_items(specs))

    def groups(self, records: List) -> List[InventoryGroup]:
        self._require_data()
        return self.importer.group(records)

    def allocate(self, records: List, primary_name: str, filler_name: str, recipe_count: int,
                 primaries_per_recipe: int, seed: Optional[int] = None,
                 max_attempts: int = MAX_SWAP_ATTEMPTS, stattrak: Optional[bool] = None) -> AllocationPlan:
        """
        Allocate the named primary and filler groups of an inventory into recipes.

        ``stattrak`` picks between a StatTrak and a normal group sharing a
        display name; it may be left as None when the name is unambiguous.
        """
        self._require_data()
        groups = self.importer.group(records)

        pools = []
        for name in (primary_name, filler_name):
            group = self._find_group(groups, name, stattrak)
            pools.append(self.importer.to_trade_items(group))

        optimizer = AllocationOptimizer(
            self.simulator, rng=random.Random(seed), max_attempts=max_attempts,
            console=self.console, debug=self.debug)
        return optimizer.allocate(pools[0], pools[1], recipe_count, primaries_per_recipe)

    @staticmethod
    def _find_group(groups: List[InventoryGroup], name: str,
                    stattrak: Optional[bool]) -> InventoryGroup:
        matches = [group for group in groups if group.display_name == name
                   and (stattrak is None or group.is_variant == stattrak)]
        if not matches:
            raise ValidationError('unknown_group', f"No inventory group named '{name}'",
                                  name=name, stattrak=stattrak)
        if len(matches) > 1:
            raise ValidationError(
                'ambiguous_group', f"'{name}' has both StatTrak and normal groups; pick one",
                name=name)
        return matches[0]

    # Output

    def print_evaluation(self, evaluation: TradeUpEvaluation, plain: bool = False) -> None:
        """Print a single recipe evaluation."""
        distribution = evaluation.distribution
        rows = [
            [f"{row.probability:.1%}",
             row.entry.name,
             f"{row.condition:.9f}",
             FloatCalculator.EXTERIOR_ABBREVIATIONS[FloatCalculator.float_to_exterior(row.condition)],
             f"{evaluation.outcome_prices.get(row.entry.id, 0.0):.2f}"]
            for row in distribution
        ]
        headers = ["Probability", "Item", "Float", "Ext", "Price"]

        if plain:
            print(tabulate(rows, headers=headers, tablefmt="simple", disable_numparse=True))
            print(f"Avg deformation: {distribution.avg_deformation:.6f}")
            print(f"Cost: {evaluation.cost:.2f}  EV: {evaluation.ev:.2f}  ROI: {evaluation.roi:.1%}")
            return

        table = Table(show_header=True, header_style="bold magenta")
        for header in headers:
            table.add_column(header, justify="left" if header == "Item" else "right")
        for row in rows:
            table.add_row(*row)
        self.console.print(table)

        self.console.print(
            f"[blue]Avg Deformation:[/blue] {distribution.avg_deformation:.6f}")
        profit_color = "green" if evaluation.roi > 0 else "red"
        self.console.print(
            f"[bold {profit_color}]Cost {evaluation.cost:.2f} → EV {evaluation.ev:.2f} "
            f"(ROI: {evaluation.roi:.1%})[/bold {profit_color}]")

    def print_groups(self, groups: List[InventoryGroup], plain: bool = False) -> None:
        rows = [
            [group.display_name, group.count,
             group.entry.name if group.entry else "-",
             group.entry.tier if group.entry else "-",
             f"{group.base_price:.2f}" if group.base_price > 0 else "---"]
            for group in groups
        ]
        headers = ["Group", "Count", "Catalog Match", "Tier", "Price"]

        if plain:
            print(tabulate(rows, headers=headers, tablefmt="simple", disable_numparse=True))
            return

        table = Table(show_header=True, header_style="bold magenta")
        for header in headers:
            table.add_column(header)
        for row in rows:
            table.add_row(*[str(value) for value in row])
        self.console.print(table)

    def print_plan(self, plan: AllocationPlan, plain: bool = False) -> None:
        """Print an allocation plan, best recipe first."""
        rows = []
        for recipe in plan.recipes:
            deformation = recipe.avg_deformation
            rows.append([
                f"#{recipe.index}",
                f"{deformation:.6f}" if deformation is not None else "-",
                f"{recipe.cost:.2f}",
                f"{recipe.ev:.2f}",
                f"{recipe.roi:.1%}",
                ", ".join(f"{item.condition:.3f}" for item in recipe.items),
            ])
        headers = ["Recipe", "Avg Deformation", "Cost", "EV", "ROI", "Floats"]

        if plain:
            print(tabulate(rows, headers=headers, tablefmt="simple", disable_numparse=True))
        else:
            table = Table(show_header=True, header_style="bold magenta")
            for header in headers:
                table.add_column(header)
            for row in rows:
                table.add_row(*row)
            self.console.print(table)

        summary = (f"Total EV {plan.seed_ev:.2f} → {plan.total_ev:.2f} "
                   f"({plan.accepted_swaps} of {plan.attempts} swaps accepted)")
        if plain:
            print(summary)
        else:
            self.console.print(f"[bold green]{summary}[/bold green]")


def _load_json_file(path: str):
    with open(Path(path), 'r', encoding='utf-8') as f:
        return json.load(f)


def main(argv: Optional[Sequence[str]] = None):
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="CS2 Trade-Up Simulator & Inventory Allocator",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python analyze_tradeups.py --catalog skins.json --prices prices.json simulate --items recipe.json
  python analyze_tradeups.py --catalog skins.json --prices prices.json allocate --inventory inv.json \\
      --primary "AK-47 | Elite Build (Field-Tested)" --filler "MP9 | Dart (Field-Tested)" --recipes 3 --primaries 4
        """
    )

    parser.add_argument('--catalog', nargs='+', required=True,
                        help='Catalog JSON sources (file paths or URLs, tried in order)')
    parser.add_argument('--prices', nargs='+', required=True,
                        help='Price listing JSON sources (file paths or URLs, tried in order)')
    parser.add_argument('--language', choices=['en', 'zh'], default='en',
                        help='Exterior label language used by the price feed (default: en)')
    parser.add_argument('--cache_dir', default='./skins_cache',
                        help='Directory for downloaded data')
    parser.add_argument('--force_refresh', action='store_true',
                        help='Ignore cached downloads')
    parser.add_argument('--plain', action='store_true',
                        help='Plain-text tables instead of rich output')
    parser.add_argument('--debug', action='store_true',
                        help='Enable debug output for detailed progress tracking')

    subparsers = parser.add_subparsers(dest='command', required=True)

    simulate_parser = subparsers.add_parser('simulate', help='Evaluate one ten-item recipe')
    simulate_parser.add_argument('--items', required=True,
                                 help='JSON list of {"entry_id"|"name", "condition", "stattrak"}')

    groups_parser = subparsers.add_parser('groups', help='Group an inventory by display name')
    groups_parser.add_argument('--inventory', required=True,
                               help='JSON list of inventory records')

    allocate_parser = subparsers.add_parser('allocate', help='Split an inventory into optimized recipes')
    allocate_parser.add_argument('--inventory', required=True,
                                 help='JSON list of inventory records')
    allocate_parser.add_argument('--primary', required=True, help='Display name of the primary group')
    allocate_parser.add_argument('--filler', required=True, help='Display name of the filler group')
    allocate_parser.add_argument('--recipes', type=int, default=1,
                                 help='Number of recipes to build (default: 1)')
    allocate_parser.add_argument('--primaries', type=int, default=5,
                                 help='Primary items per recipe (default: 5)')
    allocate_parser.add_argument('--seed', type=int, default=None,
                                 help='Random seed for a reproducible search')
    allocate_parser.add_argument('--max_attempts', type=int, default=MAX_SWAP_ATTEMPTS,
                                 help=f'Maximum swaps to attempt (default: {MAX_SWAP_ATTEMPTS})')
    variant = allocate_parser.add_mutually_exclusive_group()
    variant.add_argument('--stattrak', dest='stattrak', action='store_const', const=True,
                         help='Use the StatTrak groups of the given names')
    variant.add_argument('--normal', dest='stattrak', action='store_const', const=False,
                         help='Use the normal groups of the given names')

    args = parser.parse_args(argv)
    console = Console()

    try:
        analyzer = TradeUpAnalyzer(args.cache_dir, args.language, console=console, debug=args.debug)
        analyzer.load_data(args.catalog, args.prices, args.force_refresh)

        if args.command == 'simulate':
            evaluation = analyzer.simulate(_load_json_file(args.items))
            analyzer.print_evaluation(evaluation, plain=args.plain)
        elif args.command == 'groups':
            groups = analyzer.groups(_load_json_file(args.inventory))
            analyzer.print_groups(groups, plain=args.plain)
        else:
            plan = analyzer.allocate(
                _load_json_file(args.inventory), args.primary, args.filler,
                args.recipes, args.primaries, seed=args.seed, max_attempts=args.max_attempts,
                stattrak=args.stattrak)
            analyzer.print_plan(plan, plain=args.plain)

    except (TradeUpError, OSError, ValueError) as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)


if __name__ == "__main__":
    main()
