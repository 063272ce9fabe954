import logging

from django.db import DatabaseError
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler

from floor.exceptions import FloorError

logger = logging.getLogger(__name__)


def api_exception_handler(exc, context):
    """
    Render engine errors as {"error": CODE}.

    Storage failures are logged with their traceback but reach the client
    only as INTERNAL_ERROR.
    """
    if isinstance(exc, FloorError):
        return Response({'error': exc.code}, status=exc.status_code)

    if isinstance(exc, DatabaseError):
        view = context.get('view')
        logger.error(
            "Database failure in %s", view.__class__.__name__ if view else 'unknown view', exc_info=exc
        )
        return Response({'error': 'INTERNAL_ERROR'}, status=status.HTTP_500_INTERNAL_SERVER_ERROR)

    return exception_handler(exc, context)
