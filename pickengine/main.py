"""Main CLI interface for the pick engine."""

import argparse
import datetime as dt
import json
import logging
import sys
from pathlib import Path

from .config import load_engine_config, save_engine_config
from .data.context import load_context
from .data.sample import generate_league
from .errors import ConfigError, SchemaValidationError
from .ml.evaluation.backtest import WalkForwardBacktester, snapshot_gap_report
from .ml.optimization.tier_sweep import WEIGHTS_SPACE, TierSweep, WeightSweep, apply_best
from .models.sport import Market, Sport
from .pipeline.picks import PickGenerator


def _pct(rate: float) -> str:
    return f"{100 * rate:5.1f}%"


def _load(args):
    """Config and run context, or None after printing the diagnostic."""
    try:
        config = load_engine_config(args.config)
        return config, load_context(args.data_dir, config)
    except (SchemaValidationError, ConfigError) as exc:
        print(f"Error: {exc}")
    except FileNotFoundError as exc:
        print(f"Error: missing input file: {exc.filename}")
    return None


def print_backtest(report, markets):
    for market in markets:
        runs = report.runs_for(market)
        print(f"\n{market.value.upper()} walk-forward ({len(runs)} seasons)")
        if not runs:
            print("  no season had enough earlier games to train on")
            continue
        tiers = sorted(runs[0].tiers, reverse=True)
        header = "  season  games   rmse   model           " + "".join(f"{t}*{'':14}" for t in tiers) + "picks/wk"
        print(header)
        for run in runs:
            rmse = f"{run.rmse:6.2f}" if run.rmse is not None else "   n/a"
            cells = "".join(f"{str(run.tiers[t]):>9} {_pct(run.tiers[t].win_rate)} " for t in tiers)
            print(
                f"  {run.season:>6}  {run.n_games:>5}  {rmse}  {str(run.model_record):>9} "
                f"{_pct(run.model_record.win_rate)} {cells}{run.picks_per_week:7.1f}"
            )
        totals = report.aggregate(market)
        model = report.aggregate_model_record(market)
        headline = report.aggregate_model_record(market, headline=True)
        cells = "".join(f"{str(totals[t]):>9} {_pct(totals[t].win_rate)} " for t in tiers)
        print(f"  {'ALL':>6}  {'':>5}  {'':>6}  {str(model):>9} {_pct(model.win_rate)} {cells}")
        print(f"  model at |edge| >= headline threshold: {headline} ({_pct(headline.win_rate).strip()})")
    for season, market, reason in report.skipped:
        print(f"  skipped {market.value} {season}: {reason}")


def run_backtest(args):
    """Run one walk-forward backtest and print per-season and aggregate tables."""
    loaded = _load(args)
    if loaded is None:
        return 1
    config, context = loaded
    markets = [Market(m) for m in args.markets] if args.markets else list(config.backtest.markets)
    print(f"Backtesting {context.sport.value}: seasons {context.seasons}, markets {[m.value for m in markets]}")
    report = WalkForwardBacktester(context, markets).run()
    print_backtest(report, markets)

    if args.gap:
        gap = snapshot_gap_report(context, Market.TOTAL)
        print("\nPoint-in-time vs end-of-season snapshots (totals)")
        if gap.empty:
            print("  no rating snapshots to compare")
        else:
            print(gap.to_string(index=False, float_format=lambda v: f"{v:.3f}"))

    if args.output:
        Path(args.output).parent.mkdir(parents=True, exist_ok=True)
        with open(args.output, "w") as f:
            json.dump({"runs": [r.to_dict() for r in report.runs]}, f, indent=2)
        print(f"\n✓ Report written to {args.output}")
    return 0


def run_sweep(args):
    """Sweep a named tier space, or the weight tables, and print the top configurations."""
    loaded = _load(args)
    if loaded is None:
        return 1
    config, context = loaded
    if args.workers:
        config.sweep.parallel_workers = args.workers
    if args.top:
        config.sweep.top_n = args.top
    market = Market(args.market)
    sport = context.sport
    space = args.space or config.sweep.space
    weights = space == WEIGHTS_SPACE
    try:
        sweep = None if weights else TierSweep(config.sweep, space)
    except ConfigError as exc:
        print(f"Error: {exc}")
        return 1

    report = WalkForwardBacktester(context, [market]).run()
    if weights:
        outcome = WeightSweep(config.sweep).run(
            report, market, config.weight_table(sport, market), config.tier_scheme(sport, market)
        )
    else:
        outcome = sweep.run(report, market)
    print(
        f"Space '{outcome.space}': {outcome.evaluated} configurations over seasons {outcome.seasons}, "
        f"{len(outcome.ranked)} shown"
    )
    for reason, count in sorted(outcome.rejection_counts.items(), key=lambda kv: -kv[1]):
        print(f"  rejected on {reason}: {count}")
    for rank, result in enumerate(outcome.ranked, 1):
        tiers = "  ".join(
            f"{t}* {result.tiers[t]} {_pct(result.win_rate(t)).strip()} ({result.picks_per_week[t]:.1f}/wk)"
            for t in sorted(result.tiers, reverse=True)
        )
        print(f"\n#{rank}  monotone in {result.monotone_seasons}/{result.full_seasons} seasons")
        print(f"    {result.scheme.describe() if result.scheme else result.weights.describe()}")
        print(f"    {tiers}")

    if args.write_config:
        if outcome.best is None:
            print("Error: no configuration passed the acceptance constraints")
            return 1
        save_engine_config(apply_best(config, sport, outcome), args.write_config)
        kind = "weight table" if weights else "tier scheme"
        print(f"\n✓ Winning {kind} written to {args.write_config}")
    return 0


def show_misses(args):
    """Print the resolution-miss list for alias-table maintenance."""
    loaded = _load(args)
    if loaded is None:
        return 1
    _, context = loaded
    rows = context.misses.to_rows()
    if not rows:
        print("No unresolved team names.")
        return 0
    print(f"{context.misses.total} unresolved lookups, {len(rows)} distinct names:")
    for row in rows[: args.top] if args.top else rows:
        sources = row["sources"] or "-"
        print(f"  {row['count']:>5}  {row['raw_name']:<32} best guess: {row['best_effort']:<24} [{sources}]")
    return 0


def generate_picks(args):
    """Generate the picks for one date."""
    loaded = _load(args)
    if loaded is None:
        return 1
    _, context = loaded
    try:
        day = dt.date.fromisoformat(args.date)
    except ValueError:
        print(f"Error: --date must be YYYY-MM-DD, got {args.date}")
        return 1
    markets = [Market(m) for m in args.markets] if args.markets else [Market.SPREAD, Market.TOTAL]
    generator = PickGenerator(context, markets)
    picks = generator.generate(day)
    if not picks:
        print(f"No {context.sport.value} picks on {day}.")
        return 0
    if generator.store.grade(context.games):
        picks = generator.store.picks_on(day, context.sport)
    print(f"{len(picks)} {context.sport.value} picks on {day}:")
    names = context.resolver.get_display_name
    for pick in picks:
        matchup = f"{names(pick.away_id)} @ {names(pick.home_id)}"
        line = f"{pick.line:+g}" if pick.market is Market.SPREAD else f"{pick.line:g}"
        result = pick.result.value if pick.result is not None else "-"
        print(
            f"  {'*' * pick.tier:<5} {pick.score:>3}  {pick.market.value:<6} {pick.side.value:<5} {line:>6}  "
            f"{result}  {matchup}"
        )
        print(f"        {pick.headline}")
        for reason in pick.reasons[:4]:
            print(f"          - {reason.label}")
    if args.output:
        generator.store.save_json(args.output)
        print(f"\n✓ Picks written to {args.output}")
    return 0


def create_sample(args):
    """Write a synthetic league data directory."""
    sport = Sport(args.sport)
    seasons = tuple(range(args.first_season, args.first_season + args.seasons))
    print(f"Creating sample {sport.value} data at {args.output}...")
    league = generate_league(sport=sport, seasons=seasons, seed=args.seed)
    league.write(args.output)
    print(f"✓ {len(league.game_rows)} games, {len(league.snapshot_rows)} snapshots")
    print("\nYou can now run a backtest with:")
    print(f"  pick-engine backtest --data-dir {args.output}")
    return 0


def _add_data_args(parser):
    parser.add_argument("--data-dir", "-d", required=True,
                        help="Directory with teams.json, snapshots.csv and games.json")
    parser.add_argument("--config", "-c", default=None, help="Engine config JSON (default: built-in)")


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Point-in-time signal convergence pick engine"
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    parser.add_argument("--quiet", "-q", action="store_true", help="Warnings and errors only")

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # Backtest command
    backtest_parser = subparsers.add_parser("backtest", help="Walk-forward backtest under one configuration")
    _add_data_args(backtest_parser)
    backtest_parser.add_argument("--markets", nargs="+", choices=[m.value for m in Market], default=None,
                                 help="Markets to evaluate (default: from config)")
    backtest_parser.add_argument("--gap", action="store_true",
                                 help="Also compare point-in-time against end-of-season snapshots")
    backtest_parser.add_argument("--output", "-o", default=None, help="Write the per-season report as JSON")

    # Sweep command
    sweep_parser = subparsers.add_parser("sweep", help="Sweep a named space of tier configurations")
    _add_data_args(sweep_parser)
    sweep_parser.add_argument("--space", default=None, help="Sweep space: totals, convergence, or weights (default: config)")
    sweep_parser.add_argument("--market", choices=[m.value for m in Market], default=Market.TOTAL.value)
    sweep_parser.add_argument("--top", type=int, default=None, help="Configurations to show (default: config)")
    sweep_parser.add_argument("--workers", type=int, default=None, help="Worker processes (default: config)")
    sweep_parser.add_argument("--write-config", default=None,
                              help="Write the engine config with the winning tier scheme to this path")

    # Misses command
    misses_parser = subparsers.add_parser("misses", help="Print unresolved team names")
    _add_data_args(misses_parser)
    misses_parser.add_argument("--top", type=int, default=None, help="Show only the N most frequent")

    # Picks command
    picks_parser = subparsers.add_parser("picks", help="Generate picks for one date")
    _add_data_args(picks_parser)
    picks_parser.add_argument("--date", required=True, help="Game date, YYYY-MM-DD (league local time)")
    picks_parser.add_argument("--markets", nargs="+", choices=[m.value for m in Market], default=None)
    picks_parser.add_argument("--output", "-o", default=None, help="Write picks as JSON")

    # Sample command
    sample_parser = subparsers.add_parser("sample", help="Create a synthetic league data directory")
    sample_parser.add_argument("--output", "-o", default="sample_league", help="Output directory")
    sample_parser.add_argument("--sport", choices=[s.value for s in Sport], default=Sport.NCAAMB.value)
    sample_parser.add_argument("--first-season", type=int, default=2019)
    sample_parser.add_argument("--seasons", type=int, default=6, help="Number of seasons")
    sample_parser.add_argument("--seed", type=int, default=42)

    args = parser.parse_args()

    level = logging.DEBUG if args.verbose else logging.WARNING if args.quiet else logging.INFO
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    if args.command == "backtest":
        return run_backtest(args)
    elif args.command == "sweep":
        return run_sweep(args)
    elif args.command == "misses":
        return show_misses(args)
    elif args.command == "picks":
        return generate_picks(args)
    elif args.command == "sample":
        return create_sample(args)
    else:
        parser.print_help()
        return 1


if __name__ == "__main__":
    sys.exit(main())
