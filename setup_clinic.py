"""Setup script for the database, the first admin user and an optional licence"""
import argparse
from datetime import date, timedelta

from decouple import config
from sqlalchemy.exc import SQLAlchemyError

from medicab.auth import get_password_hash
from medicab.config import Settings
from medicab.database import build_engine, build_session_factory, create_tables
from medicab.models import User
from medicab.services.licensing import build_licence_key, latest_licence, register_licence


def setup_initial_data(settings: Settings, username: str, password: str, licence_days: int = 0):
    """Create tables, the admin account and, when asked, a licence starting today"""
    engine = build_engine(settings.database_url)
    create_tables(engine)
    db = build_session_factory(engine)()

    try:
        # Registration is admin only, so the first admin has to come from here
        if db.query(User).filter(User.role == "admin").first():
            print("Admin user already exists, skipping")
        else:
            db.add(User(username=username, password_hash=get_password_hash(password), role="admin"))
            db.commit()
            print(f"Admin login: {username} / {password}")

        if licence_days > 0:
            start = date.today()
            key = build_licence_key(start, start + timedelta(days=licence_days), settings.licence_secret)
            licence = register_licence(db, key, settings.licence_secret)
            print(f"Licence {licence.id} valid until {licence.expiry_date}")
            print(f"Licence key: {key}")
        elif latest_licence(db) is None:
            print("No licence registered: only admins can use the application until one is installed")

        print("Setup completed!")

    except SQLAlchemyError as e:
        print(f"Setup failed: {e}")
        db.rollback()
        raise
    finally:
        db.close()
        engine.dispose()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Initialise a Medicab installation")
    parser.add_argument("--username", default=config("ADMIN_USERNAME", default="admin"))
    parser.add_argument("--password", default=config("ADMIN_PASSWORD", default="admin123"))
    parser.add_argument("--licence-days", type=int, default=0, help="register a licence valid for N days")
    args = parser.parse_args()

    setup_initial_data(Settings(), args.username, args.password, args.licence_days)
