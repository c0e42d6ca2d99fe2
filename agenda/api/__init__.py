"""API package initialization."""
from agenda.api.models import ErrorResponse, ScheduleCheckResponse, SlotsResponse

__all__ = ["ErrorResponse", "ScheduleCheckResponse", "SlotsResponse"]
