import unittest
from unittest import mock

from monthly_ledger import __main__ as cli
from monthly_ledger.config import _normalize_database_url
from monthly_ledger.db import make_engine


class DatabaseUrlTests(unittest.TestCase):
    def test_hosted_postgres_gets_psycopg_driver(self):
        self.assertEqual(
            _normalize_database_url("postgres://u:p@host/db"),
            "postgresql+psycopg://u:p@host/db",
        )
        self.assertEqual(
            _normalize_database_url("postgresql://u:p@host/db"),
            "postgresql+psycopg://u:p@host/db",
        )

    def test_explicit_driver_and_sqlite_untouched(self):
        for url in ("postgresql+psycopg2://u@h/db", "sqlite:///./local.db"):
            self.assertEqual(_normalize_database_url(url), url)

    def test_sqlite_engine_is_shareable_across_threads(self):
        engine = make_engine("sqlite://")
        try:
            self.assertEqual(engine.dialect.name, "sqlite")
            with engine.connect() as conn:
                self.assertEqual(conn.exec_driver_sql("select 1").scalar(), 1)
        finally:
            engine.dispose()


class ServeCommandTests(unittest.TestCase):
    def test_serves_the_app_with_given_address(self):
        with mock.patch.object(cli.uvicorn, "run") as run:
            cli.main(["--host", "0.0.0.0", "--port", "9000"])
        args, kwargs = run.call_args
        self.assertEqual(args, ("monthly_ledger.main:app",))
        self.assertEqual((kwargs["host"], kwargs["port"]), ("0.0.0.0", 9000))
        self.assertFalse(kwargs["reload"])

    def test_defaults_come_from_config(self):
        with mock.patch.object(cli.config, "PORT", 8123), mock.patch.object(cli.uvicorn, "run") as run:
            cli.main([])
        self.assertEqual(run.call_args.kwargs["port"], 8123)


if __name__ == "__main__":
    unittest.main()
