"""HTTP trigger server for on-demand job runs."""

from cohort_scheduler.trigger.server import TriggerServer

__all__ = ["TriggerServer"]
