"""
Job runners for the visit scheduling feature.
"""

from .visit_worker import VisitSchedulingJob, run_visit_scheduler, start_visit_scheduler

__all__ = ["VisitSchedulingJob", "run_visit_scheduler", "start_visit_scheduler"]
