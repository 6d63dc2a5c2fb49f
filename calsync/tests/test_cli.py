"""
Tests for CLI programs.

These tests focus on CLI-specific concerns like argument parsing, error
handling and user feedback. They mock the sync service and the Temporal
client as black boxes; the demo CLI runs end to end against mock
providers.
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock, patch

from click.testing import CliRunner
from temporalio.client import ScheduleOverlapPolicy
from temporalio.service import RPCError, RPCStatusCode

from calsync.cli.mock_calendar import main as mock_main
from calsync.cli.sync_calendar import cli as sync_cli
from calsync.cli.sync_daemon import build_schedule, cli as daemon_cli
from calsync.config import SyncSettings
from calsync.domain import (
    ConnectionStatus,
    CredentialStatus,
    Provider,
    RemoteCalendar,
    SyncOutcome,
    SyncOutcomeKind,
)
from calsync.errors import AuthorizationFailed, ConfigurationError
from calsync.usecase import CalendarSyncService


def invoke_sync_cli(service, args):
    """Run the sync CLI with settings and the service replaced."""

    @asynccontextmanager
    async def fake_open_service(settings):
        yield service

    runner = CliRunner()
    with patch(
        "calsync.cli.sync_calendar.load_settings", return_value=SyncSettings()
    ), patch("calsync.cli.sync_calendar.setup_logging"), patch(
        "calsync.cli.sync_calendar.open_service", fake_open_service
    ):
        return runner.invoke(sync_cli, ["--user-id", "user-1", *args])


class TestSyncCalendarCLI:
    def test_authorize_prints_url(self):
        service = AsyncMock(spec=CalendarSyncService)
        service.authorize.return_value = "https://accounts.example/auth"

        result = invoke_sync_cli(service, ["authorize", "google"])

        assert result.exit_code == 0
        assert "https://accounts.example/auth" in result.output
        service.authorize.assert_called_once_with("user-1", "google")

    def test_unknown_provider_is_a_usage_error(self):
        service = AsyncMock(spec=CalendarSyncService)

        result = invoke_sync_cli(service, ["authorize", "icloud"])

        assert result.exit_code == 2
        service.authorize.assert_not_called()

    def test_complete_auth_failure_exits_nonzero(self):
        service = AsyncMock(spec=CalendarSyncService)
        service.complete_auth.side_effect = AuthorizationFailed(
            Provider.OUTLOOK, "invalid_grant"
        )

        result = invoke_sync_cli(
            service, ["complete-auth", "outlook", "bad-code"]
        )

        assert result.exit_code == 1
        assert "authorization failed" in result.output
        service.complete_auth.assert_called_once_with(
            "bad-code", "user-1", "outlook"
        )

    def test_sync_now_reports_counts(self):
        service = AsyncMock(spec=CalendarSyncService)
        service.sync_now.return_value = SyncOutcome(
            provider=Provider.GOOGLE,
            user_id="user-1",
            created_count=3,
            skipped_count=1,
        )

        result = invoke_sync_cli(
            service, ["sync-now", "google", "--calendar-id", "work"]
        )

        assert result.exit_code == 0
        assert "Calendar sync completed" in result.output
        assert "Imported 3 new activities (1 skipped)" in result.output
        service.sync_now.assert_called_once_with("user-1", "google", "work")

    def test_failed_sync_shows_generic_message(self):
        service = AsyncMock(spec=CalendarSyncService)
        service.sync_now.return_value = SyncOutcome(
            provider=Provider.OUTLOOK,
            user_id="user-1",
            kind=SyncOutcomeKind.REFRESH_FAILED,
        )

        result = invoke_sync_cli(service, ["sync-now", "outlook"])

        assert result.exit_code == 1
        assert "Sync failed, try again" in result.output
        assert "refresh" not in result.output

    def test_sync_via_temporal_starts_workflow(self):
        handle = AsyncMock()
        handle.id = "calendar-sync-user-1-google"
        handle.result.return_value = SyncOutcome(
            provider=Provider.GOOGLE, user_id="user-1", created_count=1
        )
        client = MagicMock()

        with patch(
            "calsync.cli.sync_calendar.get_temporal_client_with_retries",
            AsyncMock(return_value=client),
        ), patch(
            "calsync.cli.sync_calendar.start_sync_workflow",
            AsyncMock(return_value=handle),
        ) as mock_start:
            result = invoke_sync_cli(
                AsyncMock(spec=CalendarSyncService),
                ["sync-now", "google", "--via-temporal"],
            )

        assert result.exit_code == 0
        assert "Workflow ID: calendar-sync-user-1-google" in result.output
        assert mock_start.call_args.args[:3] == (client, "user-1", "google")

    def test_status_lists_providers(self):
        service = AsyncMock(spec=CalendarSyncService)
        service.status.return_value = [
            ConnectionStatus(
                provider=Provider.GOOGLE,
                connected=True,
                status=CredentialStatus.VALID,
                expiry=datetime(2024, 3, 4, 13, 0, tzinfo=timezone.utc),
            ),
            ConnectionStatus(provider=Provider.OUTLOOK, connected=False),
        ]

        result = invoke_sync_cli(service, ["status"])

        assert result.exit_code == 0
        assert "google: connected (valid" in result.output
        assert "outlook: not connected" in result.output

    def test_calendars_marks_primary(self):
        service = AsyncMock(spec=CalendarSyncService)
        service.list_calendars.return_value = [
            RemoteCalendar(
                calendar_id="primary",
                summary="Me",
                primary=True,
                access_role="owner",
            ),
            RemoteCalendar(calendar_id="team", summary="Team"),
        ]

        result = invoke_sync_cli(service, ["calendars", "google"])

        assert result.exit_code == 0
        assert "* primary  Me  [owner]" in result.output
        assert "  team  Team" in result.output

    def test_disconnect(self):
        service = AsyncMock(spec=CalendarSyncService)

        result = invoke_sync_cli(service, ["disconnect", "outlook"])

        assert result.exit_code == 0
        service.disconnect.assert_called_once_with("user-1", "outlook")

    def test_bad_configuration_exits_nonzero(self):
        runner = CliRunner()
        with patch(
            "calsync.cli.sync_calendar.load_settings",
            side_effect=ConfigurationError("Invalid YAML in settings.yaml"),
        ), patch("calsync.cli.sync_calendar.setup_logging"):
            result = runner.invoke(
                sync_cli, ["--user-id", "user-1", "status"]
            )

        assert result.exit_code == 1
        assert "Invalid YAML" in result.output


class FakeScheduleListing:
    def __init__(self, ids):
        self._ids = list(ids)

    def __aiter__(self):
        return self

    async def __anext__(self):
        if not self._ids:
            raise StopAsyncIteration
        return MagicMock(id=self._ids.pop(0))


def invoke_daemon_cli(client, args):
    runner = CliRunner()
    with patch(
        "calsync.cli.sync_daemon.load_settings", return_value=SyncSettings()
    ), patch("calsync.cli.sync_daemon.setup_logging"), patch(
        "calsync.cli.sync_daemon.get_temporal_client_with_retries",
        AsyncMock(return_value=client),
    ):
        return runner.invoke(daemon_cli, args)


class TestSyncDaemonCLI:
    def test_schedule_skips_overlapping_runs(self):
        schedule = build_schedule("user-1", "google", 15, "queue")

        assert schedule.policy.overlap == ScheduleOverlapPolicy.SKIP
        assert schedule.action.id == "calendar-sync-user-1-google"
        assert schedule.spec.intervals[0].every.total_seconds() == 900

    def test_start_creates_schedule(self):
        client = AsyncMock()

        result = invoke_daemon_cli(
            client,
            [
                "start",
                "--user-id",
                "user-1",
                "--provider",
                "outlook",
                "--interval-minutes",
                "30",
            ],
        )

        assert result.exit_code == 0
        assert "calendar-sync-schedule-user-1-outlook" in result.output
        assert client.create_schedule.call_args.args[0] == (
            "calendar-sync-schedule-user-1-outlook"
        )

    def test_zero_interval_is_rejected(self):
        result = invoke_daemon_cli(
            AsyncMock(),
            [
                "start",
                "--user-id",
                "user-1",
                "--provider",
                "google",
                "--interval-minutes",
                "0",
            ],
        )

        assert result.exit_code == 2

    def test_stop_failure_exits_nonzero(self):
        client = MagicMock()
        client.get_schedule_handle.return_value.delete = AsyncMock(
            side_effect=RPCError("not found", RPCStatusCode.NOT_FOUND, b"")
        )

        result = invoke_daemon_cli(
            client,
            ["stop", "--user-id", "user-1", "--provider", "google"],
        )

        assert result.exit_code == 1
        assert "Temporal request failed" in result.output

    def test_status_lists_only_sync_schedules(self):
        client = MagicMock()
        client.list_schedules = AsyncMock(
            return_value=FakeScheduleListing(
                ["calendar-sync-schedule-user-1-google", "other-schedule"]
            )
        )

        result = invoke_daemon_cli(client, ["status"])

        assert result.exit_code == 0
        assert "calendar-sync-schedule-user-1-google" in result.output
        assert "other-schedule" not in result.output


class TestMockCalendarCLI:
    def test_demo_runs_end_to_end(self, tmp_path):
        runner = CliRunner()

        with patch("calsync.cli.mock_calendar.setup_logging"):
            result = runner.invoke(
                mock_main, ["--data-dir", str(tmp_path), "--user-id", "demo"]
            )

        assert result.exit_code == 0, result.output
        assert "Pulling again imports nothing new" in result.output
        assert "google: 0 imported" in result.output
        assert "Chess club" in result.output
        assert (tmp_path / "credentials" / "demo" / "google.json").exists()
