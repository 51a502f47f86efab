from flask_sqlalchemy import SQLAlchemy
from flask_login import UserMixin
from datetime import datetime

from availability import Reservation

db = SQLAlchemy()

class User(UserMixin, db.Model):
    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(80), unique=True, nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)

    # ROLE: separate from identity; the session only says who you are
    is_admin = db.Column(db.Boolean, default=False)

    date_joined = db.Column(db.DateTime, default=datetime.utcnow)
    bookings = db.relationship('Booking', backref='requester', lazy=True)

class Device(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    internal_id = db.Column(db.String(50), unique=True, nullable=True)  # Asset tag, e.g. from CSV import
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    bookings = db.relationship('Booking', backref='device', lazy=True)

    @property
    def display_name(self):
        """Name with asset tag, e.g. 'Pixel 8 (23A-014)'."""
        if self.internal_id:
            return f"{self.name} ({self.internal_id})"
        return self.name

class Booking(db.Model):
    """A device reservation for [start_date, end_date). Never updated, only created or cancelled."""
    __table_args__ = (
        db.CheckConstraint('start_date < end_date', name='ck_booking_date_range'),
    )

    id = db.Column(db.Integer, primary_key=True)
    device_id = db.Column(db.Integer, db.ForeignKey('device.id'), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    start_date = db.Column(db.Date, nullable=False)
    end_date = db.Column(db.Date, nullable=False)  # First day the device is free again
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def to_reservation(self):
        return Reservation(
            id=self.id,
            device_id=self.device_id,
            user_id=self.user_id,
            start_date=self.start_date,
            end_date=self.end_date,
        )
