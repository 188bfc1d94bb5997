"""
Visit scheduling feature package.

Everything that turns a pending visit row into a booked appointment lives
here: label and occurrence resolution (domain), the claim/transition SQL
(repository), the booking service client (services), and the polling
worker (jobs).
"""

from .domain.models import ResolvedTime, Visit, VisitStatus  # noqa: F401
from .jobs.visit_worker import VisitSchedulingJob, start_visit_scheduler  # noqa: F401
from .repository.visit_repository import VisitRepository  # noqa: F401
from .services.scheduling_client import SchedulingClient  # noqa: F401
