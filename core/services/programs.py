"""Assigning programs to clients.

A coach may assign only programs they own, and only to clients they coach.
Admins skip both checks. A new assignment is open-ended (``end_date`` unset)
and becomes the client's current program; earlier open assignments are left
as they are.
"""

from __future__ import annotations

import datetime as dt
import logging
from typing import Any, Optional

from core.config import Settings, get_settings
from core.errors import NotFound, PermissionDenied
from core.models import ProgramAssignment
from core.services.program_weeks import local_today

logger = logging.getLogger(__name__)


def assignment_payload(assignment: ProgramAssignment) -> dict[str, Any]:
    return {
        "id": assignment.id,
        "user_id": assignment.user_id,
        "program_id": assignment.program_id,
        "assigned_by": assignment.assigned_by,
        "start_date": assignment.start_date,
        "end_date": assignment.end_date,
    }


def assign_program(
    store,
    assigned_by: str,
    program_id: str,
    client_id: str,
    start_date: Optional[dt.date] = None,
    is_admin: bool = False,
    now: Optional[dt.datetime] = None,
    settings: Optional[Settings] = None,
) -> dict[str, Any]:
    client = store.get_profile(client_id)
    if client is None or client.user_type != "client":
        raise NotFound("Client not found")
    if not is_admin and not store.is_coach_for_client(assigned_by, client_id):
        raise PermissionDenied("You do not have permission to assign programs to this client")

    program = store.get_program(program_id)
    if program is None or (not is_admin and program.coach_id != assigned_by):
        raise PermissionDenied("Program not found or you do not have permission to assign it")

    if start_date is None:
        settings = settings or get_settings()
        start_date = local_today(now or dt.datetime.now(dt.timezone.utc), settings.reference_timezone)

    still_open = store.open_assignments(client_id)
    assignment = store.add_assignment(
        ProgramAssignment(
            user_id=client_id,
            program_id=program.id,
            assigned_by=assigned_by,
            start_date=start_date,
            end_date=None,
        )
    )
    logger.info(
        "program_assigned",
        extra={
            "client_id": client_id,
            "program_id": program.id,
            "assigned_by": assigned_by,
            "start_date": start_date.isoformat(),
            "previously_open": len(still_open),
        },
    )
    return {
        "success": True,
        "message": "Program assigned successfully",
        "assignment": assignment_payload(assignment),
        "program": {
            "id": program.id,
            "title": program.title,
            "description": program.description,
            "weeks": program.weeks,
            "program_type": program.program_type,
            "coach_id": program.coach_id,
        },
    }
