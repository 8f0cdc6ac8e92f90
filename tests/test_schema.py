from sqlalchemy import create_engine, inspect

from devstack.db.base import Base
from devstack.db import models  # noqa: F401


def test_schema_creation_in_sqlite_includes_all_tables():
    engine = create_engine("sqlite+pysqlite:///:memory:")
    Base.metadata.create_all(bind=engine)

    table_names = set(inspect(engine).get_table_names())

    assert {"emails", "tools", "tool_accounts", "subscriptions", "notifications"}.issubset(table_names)


def test_notifications_unique_key_covers_the_milestone():
    engine = create_engine("sqlite+pysqlite:///:memory:")
    Base.metadata.create_all(bind=engine)

    constraints = inspect(engine).get_unique_constraints("notifications")

    by_name = {c["name"]: c["column_names"] for c in constraints}
    assert by_name["uq_notifications_milestone"] == [
        "user_id",
        "type",
        "related_id",
        "event_date",
        "days_ahead",
    ]


def test_subscription_indexes_exist():
    engine = create_engine("sqlite+pysqlite:///:memory:")
    Base.metadata.create_all(bind=engine)

    index_names = {index["name"] for index in inspect(engine).get_indexes("subscriptions")}

    assert {"ix_subscriptions_status_trial_end", "ix_subscriptions_status_renewal"}.issubset(index_names)
