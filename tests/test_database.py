from storefront_payments.database import engine_options


def test_sqlite_engine_allows_cross_thread_sessions():
    assert engine_options("sqlite:///./storefront.db") == {"connect_args": {"check_same_thread": False}}


def test_postgres_engine_uses_read_committed_with_pre_ping():
    options = engine_options("postgresql+psycopg2://shop:secret@db/shop")

    assert options["isolation_level"] == "READ COMMITTED"
    assert options["pool_pre_ping"] is True
