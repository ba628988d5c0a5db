from datetime import date, timedelta

from medicab.config import Settings
from medicab.database import build_engine, build_session_factory
from medicab.models import License, User
from setup_clinic import setup_initial_data


def test_bootstrap_creates_admin_and_licence(tmp_path):
    settings = Settings(jwt_secret="x", database_url=f"sqlite:///{tmp_path / 'clinic.db'}")

    setup_initial_data(settings, "chief", "pw", licence_days=90)
    # running again does not create a second admin
    setup_initial_data(settings, "chief", "pw")

    engine = build_engine(settings.database_url)
    db = build_session_factory(engine)()
    try:
        admins = db.query(User).filter(User.role == "admin").all()
        assert [admin.username for admin in admins] == ["chief"]

        licence = db.query(License).one()
        assert licence.expiry_date == date.today() + timedelta(days=90)
    finally:
        db.close()
        engine.dispose()
