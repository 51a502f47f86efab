#!/usr/bin/env python3
"""
Grant (or revoke) admin access by username.

Usage:
  FLASK_APP=app python set_admin.py alice
  FLASK_APP=app python set_admin.py alice --revoke
  FLASK_APP=app python set_admin.py alice --create --password secret123

If the user exists: updates the admin flag immediately.
With --create: creates the user first when it doesn't exist yet.
"""
import sys
import argparse

if __name__ == '__main__':
    parser = argparse.ArgumentParser(description='Grant or revoke admin access by username')
    parser.add_argument('username', help='Username')
    parser.add_argument('--revoke', action='store_true',
                        help='Remove admin access instead of granting it')
    parser.add_argument('--create', action='store_true',
                        help='Create the user if it does not exist (requires --password)')
    parser.add_argument('--password', help='Password for a newly created user')
    args = parser.parse_args()

    username = args.username.strip()
    make_admin = not args.revoke

    from app import app, db
    from models import User
    from constants import MIN_PASSWORD_LENGTH
    from werkzeug.security import generate_password_hash

    with app.app_context():
        user = User.query.filter_by(username=username).first()
        if user:
            user.is_admin = make_admin
            db.session.commit()
            print(f"Done! {username} is {'now an admin' if make_admin else 'no longer an admin'}.")
        elif args.create:
            if not args.password or len(args.password) < MIN_PASSWORD_LENGTH:
                print(f"Error: --password of at least {MIN_PASSWORD_LENGTH} characters is required with --create.")
                sys.exit(1)
            db.session.add(User(username=username,
                                password_hash=generate_password_hash(args.password),
                                is_admin=make_admin))
            db.session.commit()
            print(f"Created! {username} {'is an admin' if make_admin else 'is a regular user'}.")
        else:
            print(f"Error: no user named {username}. Use --create --password to add one.")
            sys.exit(1)
