import logging

from rest_framework import status
from rest_framework.response import Response

from ..exceptions import (
    ImpactEngineError, InvalidStatusTransition, JobNotClaimed, LockedRecordError, NotFound,
)

logger = logging.getLogger(__name__)

_CONFLICT_ERRORS = (LockedRecordError, JobNotClaimed, InvalidStatusTransition)


def engine_error_response(exc: ImpactEngineError) -> Response:
    """ Translate an engine error into the API's {'error', 'message'} response. """
    if isinstance(exc, NotFound):
        http_status = status.HTTP_404_NOT_FOUND
    elif isinstance(exc, _CONFLICT_ERRORS):
        http_status = status.HTTP_409_CONFLICT
    else:
        http_status = status.HTTP_400_BAD_REQUEST
    logger.info(f"Engine error returned to client ({http_status}): {exc}")
    return Response(exc.to_dict(), status=http_status)
