import contextlib
import io
import json
import tempfile
import textwrap
import unittest
from datetime import datetime, timedelta, timezone
from pathlib import Path
from unittest import mock

from tickle.cli import build_scheduler, main, summarize
from tickle.config import JobConfig, TickleConfig
from tickle.logging import ContextTracer
from tickle.scheduler import TickleState
from tickle.tasks import HttpProbe

UTC = timezone.utc


def run_cli(*argv: str):
    stdout, stderr = io.StringIO(), io.StringIO()
    with contextlib.redirect_stdout(stdout), contextlib.redirect_stderr(stderr):
        code = main(list(argv))
    return code, stdout.getvalue(), stderr.getvalue()


class NextStartCommandTests(unittest.TestCase):
    def test_prints_aligned_start(self):
        now = datetime(2024, 1, 1, 20, 0, tzinfo=UTC)
        with mock.patch("tickle.cli.utc_now", return_value=now):
            code, out, _ = run_cli("next-start", "--hour", "19", "--minute", "0", "--timezone", "UTC")
        self.assertEqual(code, 0)
        self.assertEqual(out.strip(), "2024-01-02T19:00:00+00:00")

    def test_rejects_out_of_range_hour(self):
        code, _, err = run_cli("next-start", "--hour", "25")
        self.assertEqual(code, 2)
        self.assertIn("startHour", err)

    def test_rejects_unknown_timezone(self):
        code, _, err = run_cli("next-start", "--timezone", "Mars/Olympus_Mons")
        self.assertEqual(code, 2)
        self.assertIn("Invalid start", err)


class RunCommandTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.path = Path(self._tmp.name) / "jobs.yaml"
        patcher = mock.patch("tickle.cli.configure_logging")
        self.configure_logging = patcher.start()
        self.addCleanup(patcher.stop)

    def write(self, content: str) -> Path:
        self.path.write_text(textwrap.dedent(content), encoding="utf-8")
        return self.path

    def test_runs_jobs_and_prints_summary(self):
        path = self.write(
            """
            jobs:
              - name: say-moo
                interval: 10s
              - name: evening
                interval: 1d
                start_hour: 19
                timezone: UTC
            """
        )
        code, out, _ = run_cli("run", "--config", str(path), "--duration", "0")

        self.assertEqual(code, 0)
        summary = json.loads(out)
        self.assertEqual([entry["name"] for entry in summary], ["say-moo", "evening"])
        self.assertEqual(summary[0]["run_count"], 0)
        self.assertIsNone(summary[0]["last_error"])
        self.configure_logging.assert_called_once_with("INFO", json_output=None)

    def test_invalid_interval_is_reported(self):
        path = self.write(
            """
            jobs:
              - name: too-fast
                interval: 1s
            """
        )
        code, _, err = run_cli("run", "--config", str(path), "--duration", "0")
        self.assertEqual(code, 2)
        self.assertIn("Invalid job configuration", err)

    def test_missing_config_file(self):
        code, _, err = run_cli("run", "--config", str(self.path), "--duration", "0")
        self.assertEqual(code, 2)
        self.assertIn("Cannot load", err)

    def test_json_logs_flag(self):
        path = self.write("jobs: []\n")
        code, out, _ = run_cli(
            "run", "--config", str(path), "--duration", "0", "--json-logs", "--log-level", "DEBUG"
        )
        self.assertEqual(code, 0)
        self.assertEqual(json.loads(out), [])
        self.configure_logging.assert_called_once_with("DEBUG", json_output=True)


class BuildSchedulerTests(unittest.TestCase):
    def test_applies_job_settings(self):
        job = JobConfig(
            name="probe",
            kind="http",
            interval=timedelta(seconds=30),
            url="https://example.test/",
            max_runs=5,
            max_failures=2,
            window_open=datetime(2024, 1, 1, tzinfo=UTC),
        )
        probes = []
        tk = build_scheduler(job, TickleConfig(), probes)
        self.addCleanup(probes[0].close)

        self.assertEqual(tk.state, TickleState.IDLE)
        self.assertIsInstance(tk.task, HttpProbe)
        self.assertIsInstance(tk.tracer, ContextTracer)
        self.assertEqual((tk.max_runs, tk.max_failures), (5, 2))
        self.assertEqual(tk.time_range_open, datetime(2024, 1, 1, tzinfo=UTC))
        self.assertIsNone(tk.time_range_close)
        self.assertIsNotNone(tk.on_failure)
        self.assertIsNotNone(tk.on_panic_recovered)

    def test_summary_reports_last_error(self):
        job = JobConfig(name="moo", kind="moo", interval=timedelta(seconds=10))
        tk = build_scheduler(job, TickleConfig(), [])
        tk.last_error = RuntimeError("multiple of 5 is bad")
        tk.last_tick = datetime(2024, 1, 1, tzinfo=UTC)
        self.assertEqual(
            summarize(tk),
            {
                "name": "moo",
                "run_count": 0,
                "success_count": 0,
                "fail_count": 0,
                "last_error": "multiple of 5 is bad",
                "last_tick": "2024-01-01T00:00:00+00:00",
            },
        )


if __name__ == "__main__":
    unittest.main()
