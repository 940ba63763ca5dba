"""
Données de test communes : un cours de référence le 2 mars 2026, 09:00–10:00 UTC.
"""

import uuid
import datetime as dt
from datetime import datetime, timedelta, timezone

from lecturetrack.schemas.lecture import LectureCreate

LECTURE_DAY = dt.date(2026, 3, 2)
T = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)

LECTURER_ID = uuid.UUID("11111111-1111-4111-8111-111111111111")
STUDENT_ID = uuid.UUID("22222222-2222-4222-8222-222222222222")


def at(minutes: float) -> datetime:
    """Instant relatif au début du cours de référence."""
    return T + timedelta(minutes=minutes)


def make_lecture_create(**kwargs) -> LectureCreate:
    return LectureCreate(
        unit_name=kwargs.get("unit_name", "Algorithmique"),
        unit_code=kwargs.get("unit_code", "inf101"),
        date=kwargs.get("date", LECTURE_DAY),
        start_time=kwargs.get("start_time", "09:00"),
        end_time=kwargs.get("end_time", "10:00"),
        venue=kwargs.get("venue", "Auditoire A1"),
        total_students=kwargs.get("total_students", 2),
        duration=kwargs.get("duration", 60),
        description=kwargs.get("description"),
        timezone=kwargs.get("timezone", "UTC"),
    )
