import os

from app import app, db
from models import Device, User
from constants import SAMPLE_DEVICES
from werkzeug.security import generate_password_hash

# This script populates your DB with sample devices and a first admin account
with app.app_context():
    db.create_all()

    # Add devices if they don't exist (matched by internal id)
    added = 0
    for internal_id, name in SAMPLE_DEVICES:
        exists = Device.query.filter_by(internal_id=internal_id).first()
        if not exists:
            db.session.add(Device(name=name, internal_id=internal_id))
            added += 1

    # First admin, so someone can log in and add the rest
    admin_username = os.environ.get('ADMIN_USERNAME', 'admin')
    admin_password = os.environ.get('ADMIN_PASSWORD')
    if admin_password and not User.query.filter_by(username=admin_username).first():
        db.session.add(User(username=admin_username,
                            password_hash=generate_password_hash(admin_password),
                            is_admin=True))
        print(f"✅ Admin account '{admin_username}' created")
    elif not admin_password:
        print("⏭️  ADMIN_PASSWORD not set, skipping admin account")

    db.session.commit()
    print(f"✅ Devices seeded! Added {added}, total {Device.query.count()}")
