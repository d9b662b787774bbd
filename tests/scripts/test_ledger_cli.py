"""
Tests for scripts/ledger_cli.py.

The script is loaded from its file path and driven through ``main(argv)``
against a throwaway SQLite database.
"""

from __future__ import annotations

import importlib.util
from datetime import date
from decimal import Decimal
from pathlib import Path

import pytest

from budget_kernel.db.engine import get_session, reset_engine
from budget_modules.invoices.models import InvoiceItemInput
from budget_modules.invoices.service import InvoiceService
from budget_modules.ledger.service import LedgerService
from budget_modules.reporting.reports import BOM
from tests.conftest import TEST_ACTOR_ID, TEST_PROJECT_ID

SCRIPT = Path(__file__).resolve().parents[2] / "scripts" / "ledger_cli.py"


@pytest.fixture(scope="module")
def cli():
    spec = importlib.util.spec_from_file_location("ledger_cli", SCRIPT)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


@pytest.fixture
def db_url(tmp_path, monkeypatch):
    monkeypatch.delenv("BUDGET_LEDGER_CONFIG", raising=False)
    yield f"sqlite:///{tmp_path}/cli.db"
    reset_engine()


@pytest.fixture
def run(cli, db_url):
    """Run the CLI against the test database; returns the exit code."""

    def _run(*argv: str) -> int:
        return cli.main(["--db-url", db_url, *argv])

    return _run


@pytest.fixture
def template_file(run, tmp_path) -> Path:
    path = tmp_path / "plantilla.csv"
    assert run("template", "--out", str(path)) == 0
    return path


@pytest.fixture
def imported(run, template_file):
    assert run("init-db") == 0
    assert run("import-budget", "--project", str(TEST_PROJECT_ID), str(template_file)) == 0


class TestTemplateAndImport:
    def test_template(self, template_file):
        content = template_file.read_text(encoding="utf-8")
        assert content.startswith(BOM)
        assert "01-01-01,Derechos de autor,SUBCUENTA,5000" in content

    def test_import_budget(self, capsys, imported):
        out = capsys.readouterr().out
        assert "Accounts created: 2, sub-accounts created: 3, skipped: 0" in out

        session = get_session()
        try:
            accounts = LedgerService(session, TEST_PROJECT_ID).list_accounts()
        finally:
            session.close()
        assert [a.code for a in accounts] == ["01", "02"]
        assert accounts[0].sub_accounts[0].budgeted == Decimal("5000")

    def test_import_reports_skipped_lines(self, run, tmp_path, capsys):
        source = tmp_path / "budget.csv"
        source.write_text(
            "CÓDIGO,DESCRIPCIÓN,TIPO,PRESUPUESTADO\n"
            "05-01-01,Huérfana,SUBCUENTA,100\n"
            "06,Raro,OTRO,\n",
            encoding="utf-8",
        )
        assert run("init-db") == 0
        assert run("import-budget", "--project", str(TEST_PROJECT_ID), str(source)) == 0

        out = capsys.readouterr().out
        assert "skipped: 2" in out
        assert "line 2: no account with code '05'" in out
        assert "line 3: unknown type 'OTRO'" in out

    def test_missing_file(self, run, tmp_path, capsys):
        assert run("init-db") == 0
        code = run("import-budget", "--project", str(TEST_PROJECT_ID), str(tmp_path / "nope.csv"))
        assert code == 1
        assert "File not found" in capsys.readouterr().err


class TestReportAndSweep:
    def test_report_written(self, run, imported, tmp_path):
        out_dir = tmp_path / "informes"
        code = run(
            "report", "budget", "--project", str(TEST_PROJECT_ID),
            "--project-name", "Rodaje", "--out", str(out_dir),
        )

        assert code == 0
        (written,) = out_dir.glob("Presupuesto_Rodaje_*.csv")
        content = written.read_text(encoding="utf-8")
        assert content.startswith(BOM)
        assert "TOTAL PROYECTO" in content

    def test_sweep_overdue(self, run, imported, capsys):
        session = get_session()
        try:
            ledger = LedgerService(session, TEST_PROJECT_ID)
            sub_account = ledger.list_accounts()[0].sub_accounts[0]
            InvoiceService(session, TEST_PROJECT_ID).create_invoice(
                "Catering", [InvoiceItemInput("Comida", sub_account.id, 1, "10")],
                TEST_ACTOR_ID, supplier_name="X", due_date=date(2000, 1, 1),
            )
        finally:
            session.close()

        assert run("sweep-overdue", "--project", str(TEST_PROJECT_ID)) == 0
        assert "flipped 1, failed 0" in capsys.readouterr().out

        assert run("sweep-overdue", "--project", str(TEST_PROJECT_ID)) == 0
        assert "flipped 0, failed 0" in capsys.readouterr().out


class TestFailures:
    def test_bad_config_path(self, cli, tmp_path, capsys):
        assert cli.main(["--config", str(tmp_path / "missing.yaml"), "init-db"]) == 1
        assert "Failed to load config" in capsys.readouterr().err

    def test_unknown_report_kind_rejected_by_parser(self, run):
        with pytest.raises(SystemExit):
            run("report", "ledger", "--project", str(TEST_PROJECT_ID))
