"""
Errors raised by the impact engine services.

Views translate these into HTTP responses; workers record them on the job.
"""


class ImpactEngineError(Exception):
    """ Base class for all engine errors. """
    code = 'impact_engine_error'

    def to_dict(self):
        return {'error': self.code, 'message': str(self)}


class NotFound(ImpactEngineError):
    """ Generic lookup failure. """
    code = 'not_found'


class MaterialNotResolved(NotFound):
    """ No tier of the resolution waterfall produced a usable impact record. """
    code = 'material_not_resolved'

    def __init__(self, material_name, category=None):
        self.material_name = material_name
        self.category = category
        super().__init__(f"No impact data found for '{material_name}' (category={category})")


class InvalidAllocation(ImpactEngineError):
    code = 'invalid_allocation'


class OverlappingPeriod(ImpactEngineError):
    code = 'overlapping_period'

    def __init__(self, message, conflicting_ids=None):
        self.conflicting_ids = list(conflicting_ids or [])
        super().__init__(message)

    def to_dict(self):
        data = super().to_dict()
        data['conflicting_allocation_ids'] = self.conflicting_ids
        return data


class IncompleteMix(ImpactEngineError):
    code = 'incomplete_mix'

    def __init__(self, total):
        self.total = total
        super().__init__(f"Production mix shares sum to {total}, expected 1.0")

    def to_dict(self):
        data = super().to_dict()
        data['total'] = str(self.total)
        return data


class NoDefaultWeightingSet(ImpactEngineError):
    code = 'no_default_weighting_set'

    def __init__(self, message="No weighting set given and no default weighting set exists"):
        super().__init__(message)


class JobExhausted(ImpactEngineError):
    code = 'job_exhausted'

    def __init__(self, job_id, attempts, last_error=None):
        self.job_id = job_id
        self.attempts = attempts
        self.last_error = last_error
        message = f"Recalculation job {job_id} failed after {attempts} attempt(s)"
        if last_error:
            message = f"{message}: {last_error}"
        super().__init__(message)


class JobNotClaimed(ImpactEngineError):
    """ A job can only be completed while it is processing. """
    code = 'job_not_claimed'


class InvalidStatusTransition(ImpactEngineError):
    code = 'invalid_status_transition'


class LockedRecordError(ImpactEngineError):
    """ Raised when a locked or finalised record is edited or deleted. """
    code = 'locked_record'
