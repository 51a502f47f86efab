"""
Booking repository for Device Booking.

SQLBookingStore is the only code that queries the bookings table.
BookingRepository sits on top of it and owns the read-check-write sequence:
every admission decision is made against reservations loaded inside the
same per-device critical section that writes the new booking.
"""
import logging
import threading
from contextlib import contextmanager
from datetime import date

from sqlalchemy.exc import SQLAlchemyError

from availability import (
    Admitted, BookingCandidate, Reservation,
    check_availability, month_bounds, project_calendar,
)
from models import Booking, Device

logger = logging.getLogger(__name__)


class StorageError(Exception):
    """The database could not be read or written. Safe to retry."""


class SQLBookingStore:
    """Storage for reservations, backed by a SQLAlchemy session."""

    def __init__(self, session):
        self.session = session

    def _rollback(self):
        try:
            self.session.rollback()
        except SQLAlchemyError as e:
            logger.error(f"Rollback failed: {e}", exc_info=True)

    def _fail(self, action, error):
        self._rollback()
        logger.error(f"Storage error while trying to {action}: {error}", exc_info=True)
        return StorageError(f"Could not {action}")

    @contextmanager
    def device_transaction(self, device_id: int):
        """Hold a row lock on the device until the block ends (no-op on SQLite)."""
        try:
            self.session.query(Device.id).filter(Device.id == device_id).with_for_update().first()
        except SQLAlchemyError as e:
            raise self._fail(f"lock device {device_id}", e) from e
        try:
            yield
        except Exception:
            self._rollback()
            raise
        else:
            # Ends the transaction so the row lock is released even when nothing was written
            try:
                self.session.commit()
            except SQLAlchemyError as e:
                raise self._fail(f"release lock on device {device_id}", e) from e

    def load_reservations(self, device_id: int) -> list:
        try:
            rows = (self.session.query(Booking)
                    .filter(Booking.device_id == device_id)
                    .order_by(Booking.start_date, Booking.id)
                    .all())
        except SQLAlchemyError as e:
            raise self._fail(f"load bookings for device {device_id}", e) from e
        return [row.to_reservation() for row in rows]

    def load_reservations_for_month(self, year: int, month: int) -> list:
        first, next_first = month_bounds(year, month)
        try:
            rows = (self.session.query(Booking)
                    .filter(Booking.start_date < next_first, Booking.end_date > first)
                    .order_by(Booking.start_date, Booking.id)
                    .all())
        except SQLAlchemyError as e:
            raise self._fail(f"load bookings for {year}-{month:02d}", e) from e
        return [row.to_reservation() for row in rows]

    def get_reservation(self, reservation_id: int):
        try:
            row = self.session.get(Booking, reservation_id)
        except SQLAlchemyError as e:
            raise self._fail(f"load booking {reservation_id}", e) from e
        return row.to_reservation() if row else None

    def append_reservation(self, reservation: Reservation) -> Reservation:
        """Insert and commit. The returned reservation carries the new id."""
        row = Booking(
            device_id=reservation.device_id,
            user_id=reservation.user_id,
            start_date=reservation.start_date,
            end_date=reservation.end_date,
        )
        try:
            self.session.add(row)
            self.session.commit()
        except SQLAlchemyError as e:
            raise self._fail(f"save booking for device {reservation.device_id}", e) from e
        return row.to_reservation()

    def remove_reservation(self, reservation_id: int):
        try:
            row = self.session.get(Booking, reservation_id)
            if row is None:
                return None
            removed = row.to_reservation()
            self.session.delete(row)
            self.session.commit()
        except SQLAlchemyError as e:
            raise self._fail(f"cancel booking {reservation_id}", e) from e
        return removed


class DeviceLocks:
    """One lock per device id, created on first use."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks = {}

    def for_device(self, device_id) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(device_id)
            if lock is None:
                lock = self._locks[device_id] = threading.Lock()
            return lock


# Shared by every repository in the process; holds locks only, never bookings
_device_locks = DeviceLocks()


class BookingRepository:
    """
    Per-request view of reservations.

    The view is a cache: it is reloaded from the store before every decision
    and is thrown away with the request. Create a new repository for each
    request.
    """

    def __init__(self, store, locks: DeviceLocks = None):
        self.store = store
        self.locks = locks or _device_locks
        self._reservations = {}

    @contextmanager
    def _critical_section(self, device_id):
        with self.locks.for_device(device_id):
            with self.store.device_transaction(device_id):
                yield

    def refresh(self, device_id: int) -> list:
        reservations = list(self.store.load_reservations(device_id))
        self._reservations[device_id] = reservations
        return list(reservations)

    def reservations_for(self, device_id: int) -> list:
        return list(self._reservations.get(device_id, []))

    def book(self, device_id: int, user_id: int, start_date: date, end_date: date):
        """
        Admit and store a booking, or explain why not.

        Returns Admitted(reservation) with the stored reservation, or
        Rejected(reason). StorageError propagates; nothing is added to the
        view unless the store confirmed the write.
        """
        candidate = BookingCandidate(device_id=device_id, start_date=start_date, end_date=end_date)

        with self._critical_section(device_id):
            existing = self.refresh(device_id)
            decision = check_availability(candidate, existing)
            if not decision.admitted:
                logger.info(f"Booking rejected for device {device_id} "
                            f"{start_date.isoformat()}..{end_date.isoformat()}: {decision.reason}")
                return decision

            saved = self.store.append_reservation(Reservation(
                id=None,
                device_id=device_id,
                user_id=user_id,
                start_date=start_date,
                end_date=end_date,
            ))
            view = self._reservations.setdefault(device_id, [])
            view.append(saved)
            view.sort(key=lambda r: (r.start_date, r.end_date))

        logger.info(f"Booking #{saved.id} created: device {device_id} for user {user_id} "
                    f"{start_date.isoformat()}..{end_date.isoformat()}")
        return Admitted(reservation=saved)

    def cancel(self, reservation_id: int):
        """Remove a booking. Returns the removed reservation, or None if it did not exist."""
        existing = self.store.get_reservation(reservation_id)
        if existing is None:
            return None

        with self._critical_section(existing.device_id):
            removed = self.store.remove_reservation(reservation_id)
            if removed is not None and existing.device_id in self._reservations:
                self._reservations[existing.device_id] = [
                    r for r in self._reservations[existing.device_id] if r.id != reservation_id
                ]

        if removed is not None:
            logger.info(f"Booking #{reservation_id} cancelled (device {removed.device_id})")
        return removed

    def month_view(self, year: int, month: int) -> list:
        return project_calendar(year, month, self.store.load_reservations_for_month(year, month))
