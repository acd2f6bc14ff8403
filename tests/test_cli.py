"""Tests for the command line entry points."""
import pytest

from pipeline_core import cli
from pipeline_core.errors import ConfigurationError
from pipeline_core.promotion.models import PromotionReport, PromotionState
from runners import RunnerReport


@pytest.fixture
def patched(monkeypatch, settings):
    """Route the CLI to test settings and capture what it would run."""
    calls = {}

    async def fake_promotion(request, _settings):
        calls["request"] = request
        return calls.get("report") or PromotionReport(
            dry_run=request.dry_run,
            slug="acme-1234",
            state=PromotionState.DOMAIN_ATTACHED if request.dry_run else PromotionState.PROMOTED,
        )

    async def fake_runner(command, _settings, max_per_run=None):
        calls["runner"] = (command, max_per_run)
        if calls.get("runner_error"):
            raise calls["runner_error"]
        return RunnerReport(runner=command, max_per_run=max_per_run or 1)

    monkeypatch.setattr(cli, "get_config", lambda: settings)
    monkeypatch.setattr(cli, "run_promotion", fake_promotion)
    monkeypatch.setattr(cli, "run_stage_runner", fake_runner)
    return calls


def test_promote_positional_target_is_freeform(patched):
    assert cli.main(["promote", "acme-1234.example.com", "--dry-run", "--timeoutSec", "30"]) == 0

    request = patched["request"]
    assert request.reference.ref == "acme-1234.example.com"
    assert request.reference.slug is None
    assert request.dry_run
    assert request.notify
    assert request.timeout_seconds == 30


def test_promote_explicit_flags(patched):
    assert cli.main(["promote", "--id", "rwz_abc", "--no-telegram", "--timeout-sec", "5"]) == 0

    request = patched["request"]
    assert request.reference.id == "rwz_abc"
    assert not request.notify
    assert not request.dry_run


def test_promote_failure_exits_nonzero(patched, capsys):
    patched["report"] = PromotionReport(
        slug="acme-1234", state=PromotionState.FAILED, failed_step="head_probe", error="status=503"
    )

    assert cli.main(["promote", "--slug", "acme-1234"]) == 1
    assert "FAILED step=head_probe" in capsys.readouterr().err


def test_run_commands_pass_cap(patched, capsys):
    assert cli.main(["run-dns", "--max", "5"]) == 0

    assert patched["runner"] == ("run-dns", 5)
    assert "advanced=0 failed=0 skipped=0" in capsys.readouterr().out


def test_pipeline_errors_exit_nonzero(patched, capsys):
    patched["runner_error"] = ConfigurationError("Missing Cloudflare envs: CLOUDFLARE_API_TOKEN")

    assert cli.main(["run-dns"]) == 1
    assert "CLOUDFLARE_API_TOKEN" in capsys.readouterr().err


def test_bad_configuration_exits_nonzero(monkeypatch, capsys):
    def broken():
        raise ValueError("Missing provider settings in prod: VERCEL_TOKEN")

    monkeypatch.setattr(cli, "get_config", broken)

    assert cli.main(["run-verify"]) == 1
    assert "configuration error" in capsys.readouterr().err


def test_unknown_command_is_rejected():
    with pytest.raises(SystemExit):
        cli.main(["deploy"])
