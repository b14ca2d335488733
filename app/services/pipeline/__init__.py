"""Deal confidence scoring: calculator, lifecycle, ledger, recalculation, aggregates."""
