"""Reconciliation workflow."""

from feedbacklog.workflow.orchestrator import CycleReport, run_cycle, run_feed_cycle

__all__ = ["CycleReport", "run_cycle", "run_feed_cycle"]
