"""Basic health check tests."""

from typer.testing import CliRunner

from mealsync.main import app

runner = CliRunner()


def test_import_mealsync():
    """Test that mealsync package can be imported."""
    import mealsync
    assert mealsync.__version__ == "1.0.0"


def test_import_views():
    """Test that the view layer can be imported and wired."""
    from mealsync.db.memory import InMemoryStore
    from mealsync.views import SyncCore

    core = SyncCore.create(InMemoryStore())
    assert core.gateway is None
    assert core.subscriptions.live_keys() == []


def test_version_command():
    result = runner.invoke(app, ["version"])
    assert result.exit_code == 0
    assert "1.0.0" in result.output


def test_demo_plan_command():
    result = runner.invoke(app, ["plan", "--demo", "--duration", "7"])
    assert result.exit_code == 0, result.output
    assert "is active" in result.output


def test_demo_plan_rejects_unsupported_duration():
    result = runner.invoke(app, ["plan", "--demo", "--duration", "14"])
    assert result.exit_code == 1
    assert "validation_failed" in result.output


def test_demo_fold_without_list_fails():
    result = runner.invoke(app, ["fold", "--demo"])
    assert result.exit_code == 1


def test_demo_dashboard_command():
    result = runner.invoke(app, ["dashboard", "--demo", "--days", "14"])
    assert result.exit_code == 0, result.output
    assert "Last 14 days" in result.output


def test_dashboard_rejects_unsupported_range():
    result = runner.invoke(app, ["dashboard", "--demo", "--days", "10"])
    assert result.exit_code == 1
    assert "validation_failed" in result.output
