"""
Project-wide DRF exception handler.

Entitlement denials become 403 responses carrying the full decision, and
gate infrastructure failures become 500 responses with a stable code. The
database transaction is left alone for denials so the trial-expiry
transition written while deciding is kept.
"""

from __future__ import annotations

import logging

from django.db import DatabaseError
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler

from clinicdesk.billing.entitlements import EntitlementDenied
from clinicdesk.billing.gate import GateUnavailableError

logger = logging.getLogger(__name__)


def api_exception_handler(exc, context):
    if isinstance(exc, EntitlementDenied):
        return Response(exc.decision.as_dict(), status=status.HTTP_403_FORBIDDEN)

    if isinstance(exc, GateUnavailableError):
        return Response(
            {"detail": exc.detail, "code": exc.code},
            status=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    if isinstance(exc, DatabaseError):
        view = context.get("view")
        logger.exception(
            "Database error in %s",
            view.__class__.__name__ if view else "API view",
        )
        return Response(
            {"detail": "Internal server error.", "code": "server_error"},
            status=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    return exception_handler(exc, context)
