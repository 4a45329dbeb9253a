"""Scheduling error taxonomy.

Every error carries a stable ``code`` and the HTTP status the routers
answer with, so callers can tell "slot just got taken" (``overlap``)
apart from "schedule changed underneath you" (``outside_availability``).
"""


class SchedulingError(Exception):
    code = 'scheduling_error'
    status_code = 400
    default_message = 'Scheduling request failed.'

    def __init__(self, message: str | None = None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message

    def to_detail(self) -> dict:
        return {'error': self.code, 'message': self.message}


class ValidationError(SchedulingError):
    code = 'validation_error'
    status_code = 400
    default_message = 'Invalid scheduling input.'


class OverlapError(SchedulingError):
    code = 'overlap'
    status_code = 409
    default_message = 'Time slot unavailable (overlap).'


class OutsideAvailabilityError(SchedulingError):
    code = 'outside_availability'
    status_code = 422
    default_message = 'Time slot outside availability.'


class NoOpError(SchedulingError):
    """Toggle window covers no open time; callers treat it as success."""

    code = 'no_op'
    status_code = 200
    default_message = 'Nothing to change.'


class LeadConflict(SchedulingError):
    code = 'lead_exists'
    status_code = 409
    default_message = 'Lead already exists.'

    def __init__(self, existing_lead_id: int, message: str | None = None):
        super().__init__(message)
        self.existing_lead_id = existing_lead_id

    def to_detail(self) -> dict:
        detail = super().to_detail()
        detail['lead_id'] = self.existing_lead_id
        return detail


class NotFound(SchedulingError):
    code = 'not_found'
    status_code = 404
    default_message = 'Not found.'


class HoldExpiredError(SchedulingError):
    code = 'hold_expired'
    status_code = 410
    default_message = 'Hold expired.'


class NotAHoldError(SchedulingError):
    code = 'not_a_hold'
    status_code = 409
    default_message = 'Appointment is not a hold.'


class TransientBackendError(SchedulingError):
    code = 'backend_unavailable'
    status_code = 503
    default_message = 'Database unavailable. Verify DATABASE_URL and database credentials.'
