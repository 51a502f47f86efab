import os
import csv
import logging
import calendar
from io import StringIO
from functools import wraps
from dotenv import load_dotenv
load_dotenv()  # Load .env for local dev

from datetime import date, datetime
from flask import Flask, render_template, request, redirect, url_for, flash, jsonify, make_response, abort
from flask_login import LoginManager, login_user, logout_user, login_required, current_user
from werkzeug.security import generate_password_hash, check_password_hash
from flask_migrate import Migrate
from flask_wtf.csrf import CSRFProtect
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from sqlalchemy.exc import SQLAlchemyError

# Import Models
from models import db, User, Device, Booking

# Import booking core
from availability import InvalidRange, find_overlaps, shift_month
from repository import BookingRepository, SQLBookingStore, StorageError

# Import Constants
from constants import (
    DATE_FORMAT, MAX_DEVICE_NAME_LENGTH, MAX_INTERNAL_ID_LENGTH,
    MAX_USERNAME_LENGTH, MIN_PASSWORD_LENGTH,
    MAX_IMPORT_SIZE, CSV_HEADER,
    RATE_LIMIT_LOGIN, RATE_LIMIT_DEFAULTS,
    CALENDAR_MIN_YEAR, CALENDAR_MAX_YEAR,
)

# Configure Logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# --- APP CONFIGURATION ---
app = Flask(__name__)

# SECURITY: This secret key enables sessions. Set SECRET_KEY in production.
app.secret_key = os.environ.get('SECRET_KEY', 'dev_key_for_local_use')

# 1. DATABASE CONFIGURATION
db_url = os.environ.get('DATABASE_URL')
if db_url:
    # SQLAlchemy needs 'postgresql://', many hosts hand out 'postgres://'
    if db_url.startswith("postgres://"):
        db_url = db_url.replace("postgres://", "postgresql://", 1)
    app.config['SQLALCHEMY_DATABASE_URI'] = db_url
else:
    # Local fallback
    app.config['SQLALCHEMY_DATABASE_URI'] = 'sqlite:///devices.db'

app.config['SQLALCHEMY_TRACK_MODIFICATIONS'] = False

# 2. UPLOADS (CSV import only)
app.config['MAX_CONTENT_LENGTH'] = MAX_IMPORT_SIZE

# 3. RATE LIMITING
app.config['RATELIMIT_ENABLED'] = os.environ.get('RATELIMIT_ENABLED', 'True').lower() == 'true'

# Initialize DB & Migrations
db.init_app(app)
migrate = Migrate(app, db)

# CSRF Protection
csrf = CSRFProtect(app)

# Rate Limiting
limiter = Limiter(
    app=app,
    key_func=get_remote_address,
    default_limits=RATE_LIMIT_DEFAULTS,
    storage_uri="memory://"
)

# LOGIN MANAGER
login_manager = LoginManager()
login_manager.init_app(app)
login_manager.login_view = 'login'

@login_manager.user_loader
def load_user(user_id):
    return db.session.get(User, int(user_id))


def admin_required(f):
    """
    Identity first (login_required), then capability (is_admin).

    The two checks stay separate so routes can use either on its own.
    """
    @wraps(f)
    @login_required
    def decorated(*args, **kwargs):
        if not current_user.is_admin:
            flash("Access denied.", "error")
            return redirect(url_for('calendar_view'))
        return f(*args, **kwargs)
    return decorated


def get_repository():
    """A fresh booking repository for the current request."""
    return BookingRepository(SQLBookingStore(db.session))


# --- VALIDATION HELPERS ---

def parse_date(value, label="date"):
    """
    Parse a YYYY-MM-DD form value.
    Returns (True, date) or (False, error_message).
    """
    if not value or not value.strip():
        return False, f"Please provide a {label}."
    try:
        return True, datetime.strptime(value.strip(), DATE_FORMAT).date()
    except ValueError:
        return False, f"Invalid {label}. Use the format YYYY-MM-DD."


def validate_device_name(name):
    """Returns (True, cleaned_name) or (False, error_message)."""
    name = (name or '').strip()
    if not name:
        return False, "Device name is required."
    if len(name) > MAX_DEVICE_NAME_LENGTH:
        return False, f"Device name is too long (max {MAX_DEVICE_NAME_LENGTH} characters)."
    return True, name


def validate_username(username):
    """Returns (True, cleaned_username) or (False, error_message)."""
    username = (username or '').strip()
    if not username:
        return False, "Username is required."
    if len(username) > MAX_USERNAME_LENGTH:
        return False, f"Username is too long (max {MAX_USERNAME_LENGTH} characters)."
    if any(ch.isspace() for ch in username):
        return False, "Username cannot contain spaces."
    return True, username


def parse_calendar_month(args, today=None):
    """Read ?year=&month= for the calendar, falling back to the current month."""
    today = today or date.today()
    year = args.get('year', type=int)
    month = args.get('month', type=int)
    if year is None or month is None:
        return today.year, today.month
    if not 1 <= month <= 12 or not CALENDAR_MIN_YEAR <= year <= CALENDAR_MAX_YEAR:
        return today.year, today.month
    return year, month


def read_device_csv(text):
    """
    Parse CSV text of `internal_id,name` rows.

    Returns (rows, skipped) where rows is a list of (internal_id or None, name).
    Blank lines and a header row are ignored; rows without a usable name are
    counted as skipped.
    """
    rows = []
    skipped = 0
    for record in csv.reader(StringIO(text)):
        cells = [cell.strip() for cell in record]
        if not any(cells):
            continue
        if tuple(cell.lower() for cell in cells[:2]) == CSV_HEADER:
            continue
        if len(cells) < 2:
            skipped += 1
            continue
        internal_id, name = cells[0], cells[1]
        name_valid, name = validate_device_name(name)
        if not name_valid or len(internal_id) > MAX_INTERNAL_ID_LENGTH:
            skipped += 1
            continue
        rows.append((internal_id or None, name))
    return rows, skipped


# --- ERROR HANDLERS ---

@app.errorhandler(404)
def not_found_error(error):
    logger.warning(f"404 error: {request.url}")
    return render_template('error.html',
                         error_code=404,
                         error_message="Page not found"), 404


@app.errorhandler(500)
def internal_error(error):
    logger.error(f"500 error: {error}", exc_info=True)
    db.session.rollback()
    return render_template('error.html',
                         error_code=500,
                         error_message="An internal error occurred. Please try again later."), 500


@app.errorhandler(StorageError)
def storage_error(error):
    logger.warning(f"503 error: {error} ({request.url})")
    return render_template('error.html',
                         error_code=503,
                         error_message="The booking database is unavailable. Please try again."), 503


@app.errorhandler(413)
def request_entity_too_large(error):
    logger.warning(f"413 error: File too large")
    flash(f"File is too large. Maximum size is {MAX_IMPORT_SIZE // (1024 * 1024)}MB.", "error")
    return redirect(url_for('admin_panel')), 413


# =========================================================
# SECTION 1: CALENDAR
# =========================================================

@app.route('/')
def calendar_view():
    year, month = parse_calendar_month(request.args)
    cells = get_repository().month_view(year, month)

    devices = Device.query.order_by(Device.name, Device.id).all()
    usernames = {user.id: user.username for user in User.query.all()}
    prev_year, prev_month = shift_month(year, month, -1)
    next_year, next_month = shift_month(year, month, 1)

    return render_template('calendar.html',
                         cells=cells,
                         devices=devices,
                         usernames=usernames,
                         month_label=f"{calendar.month_name[month]} {year}",
                         prev_url=url_for('calendar_view', year=prev_year, month=prev_month),
                         next_url=url_for('calendar_view', year=next_year, month=next_month),
                         today=date.today())


# =========================================================
# SECTION 2: AUTHENTICATION
# =========================================================

@app.route('/login', methods=['GET', 'POST'])
@limiter.limit(RATE_LIMIT_LOGIN)
def login():
    if current_user.is_authenticated:
        return redirect(url_for('calendar_view'))

    if request.method == 'POST':
        username = request.form.get('username', '').strip()
        password = request.form.get('password', '')

        if not username or not password:
            flash("Please enter your username and password.", "error")
            return render_template('login.html', prefill_username=username)

        user = User.query.filter_by(username=username).first()
        if not user or not check_password_hash(user.password_hash, password):
            logger.warning(f"Failed login for username: {username}")
            flash("Invalid username or password.", "error")
            return render_template('login.html', prefill_username=username)

        login_user(user)
        if user.is_admin:
            return redirect(url_for('admin_panel'))
        return redirect(url_for('calendar_view'))

    return render_template('login.html', prefill_username='')


@app.route('/logout')
@login_required
def logout():
    logout_user()
    return redirect(url_for('calendar_view'))


@app.route('/health')
def health_check():
    """Health check endpoint for monitoring and load balancers"""
    try:
        db.session.execute(db.text('SELECT 1'))
        return jsonify({
            'status': 'healthy',
            'database': 'connected',
            'timestamp': datetime.utcnow().isoformat()
        }), 200
    except SQLAlchemyError as e:
        logger.error(f"Health check failed: {e}", exc_info=True)
        db.session.rollback()
        return jsonify({
            'status': 'unhealthy',
            'database': 'unreachable',
            'timestamp': datetime.utcnow().isoformat()
        }), 503


# =========================================================
# SECTION 3: ADMIN
# =========================================================

def _render_admin(status=200):
    devices = Device.query.order_by(Device.name, Device.id).all()
    bookings = Booking.query.order_by(Booking.start_date.desc(), Booking.id.desc()).all()

    overlaps = find_overlaps([booking.to_reservation() for booking in bookings])
    if overlaps:
        logger.warning(f"Consistency warning: {len(overlaps)} overlapping booking pair(s) found")

    return render_template('admin.html',
                         devices=devices,
                         bookings=bookings,
                         overlaps=overlaps,
                         today=date.today()), status


@app.route('/admin')
@admin_required
def admin_panel():
    return _render_admin()


@app.route('/admin/adduser', methods=['GET', 'POST'])
@admin_required
def add_user():
    if request.method == 'GET':
        return render_template('add_user.html')

    username_valid, username = validate_username(request.form.get('username'))
    password = request.form.get('password', '')
    make_admin = request.form.get('is_admin') in ('on', 'true', '1')

    if not username_valid:
        flash(username, "error")
        return render_template('add_user.html'), 400
    if len(password) < MIN_PASSWORD_LENGTH:
        flash(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long.", "error")
        return render_template('add_user.html'), 400
    if User.query.filter_by(username=username).first():
        flash(f"User '{username}' already exists.", "error")
        return render_template('add_user.html'), 400

    user = User(username=username, password_hash=generate_password_hash(password), is_admin=make_admin)
    try:
        db.session.add(user)
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.error(f"Error creating user {username}: {e}", exc_info=True)
        raise StorageError(f"Could not create user {username}") from e

    logger.info(f"New user created by {current_user.username}: {username} (admin={make_admin})")
    flash(f"User '{username}' added.", "success")
    return redirect(url_for('admin_panel'))


@app.route('/admin/adddevice', methods=['GET', 'POST'])
@admin_required
def add_device():
    if request.method == 'GET':
        return render_template('add_device.html')

    name_valid, name = validate_device_name(request.form.get('devicename'))
    internal_id = request.form.get('internalid', '').strip() or None

    if not name_valid:
        flash(name, "error")
        return render_template('add_device.html'), 400
    if internal_id and len(internal_id) > MAX_INTERNAL_ID_LENGTH:
        flash(f"Internal ID is too long (max {MAX_INTERNAL_ID_LENGTH} characters).", "error")
        return render_template('add_device.html'), 400
    if internal_id and Device.query.filter_by(internal_id=internal_id).first():
        flash(f"A device with internal ID '{internal_id}' already exists.", "error")
        return render_template('add_device.html'), 400

    device = Device(name=name, internal_id=internal_id)
    try:
        db.session.add(device)
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.error(f"Error adding device {name}: {e}", exc_info=True)
        raise StorageError(f"Could not add device {name}") from e

    flash(f"Device '{device.display_name}' added.", "success")
    return redirect(url_for('admin_panel'))


@app.route('/admin/device/edit/<int:device_id>', methods=['POST'])
@admin_required
def edit_device(device_id):
    """Rename a device. Names are the only editable field."""
    device = db.get_or_404(Device, device_id)
    name_valid, name = validate_device_name(request.form.get('devicename'))
    if not name_valid:
        flash(name, "error")
        return _render_admin(400)

    device.name = name
    try:
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.error(f"Error renaming device {device_id}: {e}", exc_info=True)
        raise StorageError(f"Could not rename device {device_id}") from e

    flash("Device updated.", "success")
    return redirect(url_for('admin_panel'))


@app.route('/admin/bookdevice', methods=['POST'])
@admin_required
def book_device():
    device_id = request.form.get('deviceid', type=int)
    if device_id is None:
        flash("Invalid device ID.", "error")
        return _render_admin(400)

    start_valid, start_date = parse_date(request.form.get('startdate'), "start date")
    end_valid, end_date = parse_date(request.form.get('enddate'), "end date")
    if not start_valid or not end_valid:
        flash(start_date if not start_valid else end_date, "error")
        return _render_admin(400)

    device = db.session.get(Device, device_id)
    if device is None:
        abort(404)

    decision = get_repository().book(device.id, current_user.id, start_date, end_date)
    if not decision.admitted:
        flash(f"Could not book {device.display_name}: {decision.reason}", "error")
        return _render_admin(400 if isinstance(decision.reason, InvalidRange) else 409)

    flash(f"Booked {device.display_name} from {start_date.isoformat()} until {end_date.isoformat()}.", "success")
    return redirect(url_for('admin_panel'))


@app.route('/admin/booking/cancel/<int:booking_id>', methods=['POST'])
@admin_required
def cancel_booking(booking_id):
    removed = get_repository().cancel(booking_id)
    if removed is None:
        abort(404)
    flash(f"Booking #{booking_id} cancelled.", "success")
    return redirect(url_for('admin_panel'))


@app.route('/admin/import', methods=['POST'])
@admin_required
def import_devices():
    """Bulk add devices from a CSV upload (internal_id,name per row)."""
    upload = request.files.get('csvfile')
    if not upload or not upload.filename:
        flash("Please choose a CSV file to import.", "error")
        return _render_admin(400)

    try:
        text = upload.read().decode('utf-8-sig')
    except UnicodeDecodeError:
        flash("Could not read the CSV file. Save it as UTF-8 and try again.", "error")
        return _render_admin(400)

    try:
        rows, skipped = read_device_csv(text)
    except csv.Error as e:
        flash(f"Failed to read CSV data: {e}", "error")
        return _render_admin(400)

    existing_ids = {internal_id for (internal_id,) in db.session.query(Device.internal_id)
                    .filter(Device.internal_id.isnot(None))}
    added = 0
    try:
        for internal_id, name in rows:
            if internal_id and internal_id in existing_ids:
                skipped += 1
                continue
            db.session.add(Device(name=name, internal_id=internal_id))
            if internal_id:
                existing_ids.add(internal_id)
            added += 1
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.error(f"CSV import failed: {e}", exc_info=True)
        raise StorageError("Could not import devices") from e

    logger.info(f"CSV import by {current_user.username}: {added} added, {skipped} skipped")
    flash(f"Imported {added} device{'s' if added != 1 else ''}"
          f"{f', skipped {skipped}' if skipped else ''}.", "success")
    return redirect(url_for('admin_panel'))


@app.route('/admin/export/bookings')
@admin_required
def export_bookings():
    """Export all bookings to CSV"""
    bookings = Booking.query.order_by(Booking.start_date, Booking.id).all()

    output = StringIO()
    writer = csv.writer(output)

    # Header row
    writer.writerow(['Booking ID', 'Device', 'Internal ID', 'Booked By', 'Start Date', 'End Date', 'Created'])

    # Data rows
    for booking in bookings:
        writer.writerow([
            booking.id,
            booking.device.name,
            booking.device.internal_id or '',
            booking.requester.username,
            booking.start_date.strftime(DATE_FORMAT),
            booking.end_date.strftime(DATE_FORMAT),
            booking.created_at.strftime('%Y-%m-%d %H:%M:%S') if booking.created_at else ''
        ])

    output.seek(0)
    response = make_response(output.getvalue())
    response.headers['Content-Type'] = 'text/csv'
    response.headers['Content-Disposition'] = f'attachment; filename=device_bookings_{datetime.utcnow().strftime("%Y%m%d")}.csv'
    return response


if __name__ == '__main__':
    app.run(port=int(os.environ.get('PORT', 8080)))
