"""
Booking rules for Device Booking.

Decides whether a reservation may be admitted and turns a list of
reservations into per-day calendar cells. Everything here is pure: no
database, no Flask, no clock.

Reservations cover the half-open interval [start_date, end_date): the end
date is the first day the device is free again, so a booking ending on the
10th and one starting on the 10th do not overlap.
"""
import calendar
import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Dict, List, Optional, Union

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Reservation:
    """A stored booking of one device by one user."""
    id: Optional[int]
    device_id: int
    user_id: int
    start_date: date
    end_date: date

    def covers(self, day: date) -> bool:
        return self.start_date <= day < self.end_date

    def overlaps(self, start_date: date, end_date: date) -> bool:
        return start_date < self.end_date and end_date > self.start_date


@dataclass(frozen=True)
class BookingCandidate:
    """A requested booking that has not been admitted yet."""
    device_id: int
    start_date: date
    end_date: date


# --- REJECTION REASONS ---

@dataclass(frozen=True)
class InvalidRange:
    start_date: date
    end_date: date

    def __str__(self):
        return (f"Start date {self.start_date.isoformat()} must be before "
                f"end date {self.end_date.isoformat()}.")


@dataclass(frozen=True)
class Overlap:
    conflict_id: Optional[int]

    def __str__(self):
        return f"Device is already booked for these dates (booking #{self.conflict_id})."


RejectionReason = Union[InvalidRange, Overlap]


# --- ADMISSION RESULTS ---

@dataclass(frozen=True)
class Admitted:
    # Filled in by the repository once the booking is stored
    reservation: Optional[Reservation] = None

    @property
    def admitted(self):
        return True

    def __bool__(self):
        return True


@dataclass(frozen=True)
class Rejected:
    reason: RejectionReason

    @property
    def admitted(self):
        return False

    def __bool__(self):
        return False

    def __str__(self):
        return str(self.reason)


def check_availability(candidate: BookingCandidate, existing) -> Union[Admitted, Rejected]:
    """
    Decide whether ``candidate`` may be booked given ``existing`` reservations.

    Returns Rejected(InvalidRange) when start is not strictly before end,
    Rejected(Overlap) naming the first conflicting reservation on the same
    device, and Admitted() otherwise. Reservations for other devices are
    ignored.
    """
    if candidate.start_date >= candidate.end_date:
        return Rejected(InvalidRange(candidate.start_date, candidate.end_date))

    for reservation in existing:
        if reservation.device_id != candidate.device_id:
            continue
        if reservation.overlaps(candidate.start_date, candidate.end_date):
            return Rejected(Overlap(reservation.id))

    return Admitted()


def find_overlaps(reservations):
    """Return every (a, b) pair of same-device reservations that overlap."""
    by_device: Dict[int, List[Reservation]] = {}
    for reservation in reservations:
        by_device.setdefault(reservation.device_id, []).append(reservation)

    pairs = []
    for device_reservations in by_device.values():
        ordered = sorted(device_reservations, key=lambda r: (r.start_date, r.end_date))
        for i, first in enumerate(ordered):
            for second in ordered[i + 1:]:
                # Sorted by start, so nothing later can overlap once we pass the end
                if second.start_date >= first.end_date:
                    break
                pairs.append((first, second))
    return pairs


# --- CALENDAR PROJECTION ---

@dataclass
class DayCell:
    """One day of a displayed month and the bookings covering it."""
    day: int
    date: date
    bookings: Dict[int, Reservation] = field(default_factory=dict)

    def is_booked(self, device_id) -> bool:
        return device_id in self.bookings


def _validate_month(month):
    if not 1 <= month <= 12:
        raise ValueError(f"Month must be between 1 and 12, got {month}")


def days_in_month(year: int, month: int) -> int:
    _validate_month(month)
    return calendar.monthrange(year, month)[1]


def month_bounds(year: int, month: int):
    """
    Half-open window [first day, first day of next month) for a month.

    December 9999 has no next month in ``date``; its window ends at date.max.
    """
    first = date(year, month, 1)
    if (year, month) == (date.max.year, 12):
        return first, date.max
    next_year, next_month = shift_month(year, month, 1)
    return first, date(next_year, next_month, 1)


def shift_month(year: int, month: int, delta: int):
    """Move ``delta`` months forward (or back) and return (year, month)."""
    _validate_month(month)
    index = year * 12 + (month - 1) + delta
    return index // 12, index % 12 + 1


def project_calendar(year: int, month: int, reservations) -> List[DayCell]:
    """
    Build one DayCell per day of the month, in ascending order.

    Each cell maps device id to the reservation covering that day. Two
    reservations for the same device on the same day should never exist;
    if they do, the later one in ``reservations`` wins and a warning is
    logged.
    """
    first = date(year, month, 1)
    cells = [
        DayCell(day=offset + 1, date=first + timedelta(days=offset))
        for offset in range(days_in_month(year, month))
    ]

    for reservation in reservations:
        for cell in cells:
            if not reservation.covers(cell.date):
                continue
            previous = cell.bookings.get(reservation.device_id)
            if previous is not None and previous != reservation:
                logger.warning(
                    f"Consistency warning: device {reservation.device_id} has bookings "
                    f"#{previous.id} and #{reservation.id} on {cell.date.isoformat()}"
                )
            cell.bookings[reservation.device_id] = reservation

    return cells
