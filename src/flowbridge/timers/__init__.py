"""Local work timers and live time reconciliation."""
