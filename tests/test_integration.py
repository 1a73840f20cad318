"""Integration tests for end-to-end workflows."""

from finboard.cli.main import cli


def _run(cli_runner, temp_db, *args):
    result = cli_runner.invoke(cli, ["--db-path", temp_db.database_path, *args])
    assert result.exit_code == 0, result.output
    return result


def test_full_workflow(cli_runner, temp_db, fixtures_dir):
    """Categories → accounts → rules → bill → import → transfer → balances and summary."""
    result = _run(cli_runner, temp_db, "category", "init")
    assert "Created 13 default categories." in result.output

    _run(cli_runner, temp_db, "account", "create", "Nubank", "--opening-balance", "1000")
    _run(cli_runner, temp_db, "account", "create", "Tesouro", "--type", "investment")

    result = _run(
        cli_runner, temp_db, "rule", "add", "UBER", "--category", "Transporte", "--description", "Uber"
    )
    assert "at position 0" in result.output
    _run(cli_runner, temp_db, "rule", "add", "CONTA DE LUZ", "--category", "Contas")

    result = _run(cli_runner, temp_db, "bills", "add", "Conta de Luz", "--amount", "180,45", "--due-day", "12")
    assert "Tracking bill 'Conta de Luz'" in result.output

    # Three good rows, two broken ones
    result = _run(cli_runner, temp_db, "import", str(fixtures_dir / "extrato.csv"), "--account", "Nubank")
    assert "Committed: 3 transactions" in result.output
    assert "Errors: 2" in result.output

    # The bank's OFX export repeats two of the CSV rows
    result = _run(cli_runner, temp_db, "import", str(fixtures_dir / "extrato.ofx"), "--account", "Nubank")
    assert "Committed: 0 transactions" in result.output
    assert "Duplicates: 2" in result.output

    result = _run(cli_runner, temp_db, "bills", "status", "--month", "2024-01")
    assert "Conta de Luz" in result.output
    assert "PAID" in result.output

    result = _run(
        cli_runner, temp_db, "transfer", "--from", "Nubank", "--to", "Tesouro",
        "--amount", "1000", "--date", "2024-01-20",
    )
    assert "Investment contribution" in result.output

    result = _run(
        cli_runner, temp_db, "summary", "--start-date", "2024-01-01", "--end-date", "2024-01-31", "--breakdown"
    )
    assert "R$ 5.000,00" in result.output
    assert "R$ 206,35" in result.output
    assert "R$ 4.793,65" in result.output
    assert "Contas" in result.output
    assert "Transporte" in result.output

    result = _run(cli_runner, temp_db, "balance", "--date", "2024-01-31")
    assert "R$ 4.793,65" in result.output
    assert "R$ 1.000,00" in result.output
    assert "R$ 5.793,65" in result.output

    result = _run(cli_runner, temp_db, "transaction", "list", "--account", "Nubank")
    assert "Uber" in result.output


def test_staged_import_then_commit(cli_runner, temp_db, fixtures_dir):
    """Rows staged with --no-commit stay out of the ledger."""
    _run(cli_runner, temp_db, "account", "create", "Nubank")

    result = _run(
        cli_runner, temp_db, "import", str(fixtures_dir / "extrato.ofx"), "--account", "Nubank", "--no-commit"
    )
    assert "Pending: 2" in result.output

    result = _run(cli_runner, temp_db, "balance", "Nubank", "--date", "2024-12-31")
    assert "R$ 0,00" in result.output
