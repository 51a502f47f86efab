"""
Unit tests for validation functions.

These test the helper functions that validate form input before it
reaches the booking rules.
Run: pytest tests/test_validation.py -v
"""
import pytest
from datetime import date
from app import parse_date, validate_device_name, validate_username, read_device_csv
from constants import MAX_DEVICE_NAME_LENGTH, MAX_USERNAME_LENGTH


@pytest.mark.unit
class TestParseDate:
    """Test the parse_date() function"""

    def test_valid_dates(self):
        assert parse_date('2024-05-01') == (True, date(2024, 5, 1))
        assert parse_date(' 2024-02-29 ') == (True, date(2024, 2, 29))

    def test_invalid_dates(self):
        """Test that bad values fail with a message"""
        valid, error = parse_date('2023-02-29')  # Not a leap year
        assert valid == False
        assert 'yyyy-mm-dd' in error.lower()

        valid, error = parse_date('05/01/2024')
        assert valid == False

        valid, error = parse_date('tomorrow')
        assert valid == False

    def test_missing_date(self):
        valid, error = parse_date('', 'start date')
        assert valid == False
        assert 'start date' in error

        valid, error = parse_date(None)
        assert valid == False


@pytest.mark.unit
class TestDeviceNameValidation:
    """Test the validate_device_name() function"""

    def test_valid_names(self):
        assert validate_device_name('Pixel 8') == (True, 'Pixel 8')
        assert validate_device_name('  iPad Air  ') == (True, 'iPad Air')

    def test_invalid_names(self):
        valid, error = validate_device_name('')
        assert valid == False
        assert 'required' in error.lower()

        valid, error = validate_device_name(None)
        assert valid == False

        valid, error = validate_device_name('x' * (MAX_DEVICE_NAME_LENGTH + 1))
        assert valid == False
        assert 'too long' in error.lower()


@pytest.mark.unit
class TestUsernameValidation:
    """Test the validate_username() function"""

    def test_valid_usernames(self):
        assert validate_username('alice') == (True, 'alice')
        assert validate_username(' bob ') == (True, 'bob')

    def test_invalid_usernames(self):
        assert validate_username('')[0] == False
        assert validate_username('two words')[0] == False
        assert validate_username('a' * (MAX_USERNAME_LENGTH + 1))[0] == False


@pytest.mark.unit
class TestReadDeviceCsv:
    """Test the read_device_csv() function"""

    def test_plain_rows(self):
        rows, skipped = read_device_csv('23A-001,iPhone 15\n23A-002,Pixel 8\n')
        assert rows == [('23A-001', 'iPhone 15'), ('23A-002', 'Pixel 8')]
        assert skipped == 0

    def test_header_and_blank_lines_ignored(self):
        rows, skipped = read_device_csv('Internal_ID,Name\n\n23A-001,iPhone 15\n,\n')
        assert rows == [('23A-001', 'iPhone 15')]
        assert skipped == 0

    def test_missing_internal_id_allowed(self):
        rows, _ = read_device_csv(',Loaner Laptop\n')
        assert rows == [(None, 'Loaner Laptop')]

    def test_quoted_names(self):
        rows, _ = read_device_csv('23A-005,"Galaxy Tab S9, 11 inch"\n')
        assert rows == [('23A-005', 'Galaxy Tab S9, 11 inch')]

    def test_bad_rows_counted(self):
        rows, skipped = read_device_csv('lonely\n23A-001,\n23A-002,' + 'x' * (MAX_DEVICE_NAME_LENGTH + 1) + '\n')
        assert rows == []
        assert skipped == 3
