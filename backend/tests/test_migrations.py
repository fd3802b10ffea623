import importlib.util
import os

from alembic.migration import MigrationContext
from alembic.operations import Operations
from sqlalchemy import create_engine, inspect

VERSIONS_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "alembic", "versions"))


def load_revision(filename):
    spec = importlib.util.spec_from_file_location(filename[:-3], os.path.join(VERSIONS_DIR, filename))
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


def test_auth_sessions_revision_upgrade_and_downgrade():
    revision = load_revision("3c1e7b5a9d20_add_auth_sessions.py")
    engine = create_engine("sqlite://")

    with engine.begin() as connection:
        context = MigrationContext.configure(connection)
        with Operations.context(context):
            revision.upgrade()

        inspector = inspect(connection)
        assert "auth_sessions" in inspector.get_table_names()
        columns = {column["name"] for column in inspector.get_columns("auth_sessions")}
        assert {"identity", "session_id", "refresh_hash", "origin_address", "rotated_at"} <= columns
        indexes = {index["name"]: index for index in inspector.get_indexes("auth_sessions")}
        assert indexes["ix_auth_sessions_session_id"]["unique"]

        with Operations.context(context):
            revision.downgrade()

        assert "auth_sessions" not in inspect(connection).get_table_names()
