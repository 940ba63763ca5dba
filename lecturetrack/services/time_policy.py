"""
Politique horaire des cours : fenêtre de scan et classification des présences.

Fonctions pures, sans accès BDD. Tous les instants manipulés sont des
datetimes UTC « aware » ; as_utc() normalise les valeurs relues depuis une
base qui ne conserve pas le fuseau (SQLite).
"""

import re
from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from lecturetrack.config import settings
from lecturetrack.errors import ValidationError

TIME_REGEX = re.compile(r"^([0-1]?[0-9]|2[0-3]):([0-5][0-9])$")

PRESENT = "present"
LATE = "late"
ABSENT = "absent"
EXCUSED = "excused"

SCAN_OPENS_BEFORE = timedelta(minutes=settings.SCAN_OPENS_BEFORE_MINUTES)
SCAN_CLOSES_AFTER = timedelta(minutes=settings.SCAN_CLOSES_AFTER_MINUTES)
LATE_AFTER = timedelta(minutes=settings.LATE_AFTER_MINUTES)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Un datetime naïf est considéré comme déjà exprimé en UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_time(value: str) -> time:
    """Convertit "HH:MM" en time. Lève ValidationError si le format est invalide."""
    match = TIME_REGEX.match(value or "")
    if not match:
        raise ValidationError(f"Heure invalide : '{value}' (format attendu HH:MM).")
    return time(int(match.group(1)), int(match.group(2)))


def get_zone(name: str) -> ZoneInfo:
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        raise ValidationError(f"Fuseau horaire inconnu : '{name}'.")


def lecture_bounds(day: date, start_time: str, end_time: str, tz_name: str) -> tuple[datetime, datetime]:
    """
    Calcule les instants UTC de début et de fin d'un cours
    à partir de sa date, de ses horaires HH:MM et de son fuseau.
    """
    zone = get_zone(tz_name)
    starts_at = datetime.combine(day, parse_time(start_time), tzinfo=zone)
    ends_at = datetime.combine(day, parse_time(end_time), tzinfo=zone)
    if ends_at <= starts_at:
        raise ValidationError("L'heure de fin doit être postérieure à l'heure de début.")
    return starts_at.astimezone(timezone.utc), ends_at.astimezone(timezone.utc)


def scan_window(starts_at: datetime, ends_at: datetime) -> tuple[datetime, datetime]:
    """Fenêtre de scan : [début − 30 min, fin + 15 min]."""
    return as_utc(starts_at) - SCAN_OPENS_BEFORE, as_utc(ends_at) + SCAN_CLOSES_AFTER


def is_within_scan_window(instant: datetime, starts_at: datetime, ends_at: datetime) -> bool:
    """Bornes incluses."""
    opens, closes = scan_window(starts_at, ends_at)
    return opens <= as_utc(instant) <= closes


def classify_scan(instant: datetime, starts_at: datetime, ends_at: datetime) -> str:
    """
    Classe un scan :
    - après la fin du cours → absent
    - plus de 15 min après le début (fin incluse) → late
    - sinon → present
    """
    instant = as_utc(instant)
    if instant > as_utc(ends_at):
        return ABSENT
    if instant > as_utc(starts_at) + LATE_AFTER:
        return LATE
    return PRESENT


def check_qr_duration(minutes: int) -> int:
    """Durée de validité d'un QR code, bornée par la configuration (5 à 240 min par défaut)."""
    if not (settings.QR_CODE_MIN_DURATION <= minutes <= settings.QR_CODE_MAX_DURATION):
        raise ValidationError(
            f"La durée doit être comprise entre {settings.QR_CODE_MIN_DURATION} "
            f"et {settings.QR_CODE_MAX_DURATION} minutes."
        )
    return minutes
