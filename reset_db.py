from app import app, db
from models import Booking, Device, User


def reset_database():
    """
    Drop every table and recreate them from the current models.

    Returns how many (users, devices, bookings) were thrown away. On
    PostgreSQL the overlap exclusion constraint lives in a migration, so
    run `flask db stamp a7c1d2e3f4b5 && flask db upgrade` afterwards to restore it.
    """
    removed = (User.query.count(), Device.query.count(), Booking.query.count())
    db.session.remove()
    db.drop_all()
    db.create_all()
    return removed


if __name__ == '__main__':
    with app.app_context():
        users, devices, bookings = reset_database()
        print(f"✅ Database has been reset ({users} users, {devices} devices, {bookings} bookings removed).")
        print("Run seed_db.py to add sample devices.")
