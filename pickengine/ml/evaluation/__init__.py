from .backtest import BacktestReport, BacktestRun, EvaluatedPick, TierRecord, WalkForwardBacktester, snapshot_gap_report

__all__ = [
    "BacktestReport",
    "BacktestRun",
    "EvaluatedPick",
    "TierRecord",
    "WalkForwardBacktester",
    "snapshot_gap_report",
]
