import tempfile
import textwrap
import unittest
from datetime import datetime, timedelta, timezone
from pathlib import Path

from tickle.config_loader import _parse_duration, load_config


class ConfigLoaderTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.path = Path(self._tmp.name) / "jobs.yaml"

    def write(self, content: str) -> Path:
        self.path.write_text(textwrap.dedent(content), encoding="utf-8")
        return self.path

    def test_loads_jobs_with_defaults(self):
        config = load_config(
            self.write(
                """
                min_duration_override: true
                log_level: DEBUG
                jobs:
                  - name: moo
                    interval: 30s
                  - name: probe
                    kind: http
                    url: https://example.com/health
                    interval: 2m
                    request_timeout: 2.5
                    max_failures: 3
                  - name: evening
                    interval: 1d
                    start_hour: 19
                    start_minute: 0
                    timezone: Australia/Sydney
                    window_open: 2024-01-01T00:00:00+00:00
                    window_close: "2024-12-31T23:59:59"
                """
            )
        )

        self.assertTrue(config.min_duration_override)
        self.assertEqual(config.log_level, "DEBUG")
        self.assertTrue(config.scheduler_config().min_duration_override)

        moo, probe, evening = config.jobs
        self.assertEqual(moo.kind, "moo")
        self.assertEqual(moo.interval, timedelta(seconds=30))
        self.assertFalse(moo.aligned)
        self.assertEqual(moo.max_runs, 0)

        self.assertEqual(probe.url, "https://example.com/health")
        self.assertEqual(probe.interval, timedelta(minutes=2))
        self.assertEqual(probe.request_timeout, 2.5)
        self.assertEqual(probe.max_failures, 3)

        self.assertTrue(evening.aligned)
        self.assertEqual((evening.start_hour, evening.start_minute), (19, 0))
        self.assertEqual(evening.timezone, "Australia/Sydney")
        self.assertEqual(evening.window_open, datetime(2024, 1, 1, tzinfo=timezone.utc))
        self.assertEqual(evening.window_close, datetime(2024, 12, 31, 23, 59, 59))

    def test_minute_only_alignment(self):
        config = load_config(
            self.write(
                """
                jobs:
                  - name: half-past
                    start_minute: 30
                """
            )
        )
        (job,) = config.jobs
        self.assertTrue(job.aligned)
        self.assertIsNone(job.start_hour)
        self.assertEqual(job.interval, timedelta(seconds=10))

    def test_rejects_duplicate_names(self):
        path = self.write(
            """
            jobs:
              - name: same
              - name: same
            """
        )
        with self.assertRaisesRegex(ValueError, "duplicate job names: same"):
            load_config(path)

    def test_rejects_unknown_kind(self):
        path = self.write(
            """
            jobs:
              - name: odd
                kind: ftp
            """
        )
        with self.assertRaisesRegex(ValueError, "unknown job kind"):
            load_config(path)

    def test_http_job_requires_url(self):
        path = self.write(
            """
            jobs:
              - name: probe
                kind: http
            """
        )
        with self.assertRaisesRegex(ValueError, "requires a url"):
            load_config(path)

    def test_root_must_be_mapping(self):
        path = self.write("- just\n- a list\n")
        with self.assertRaises(ValueError):
            load_config(path)

    def test_empty_job_list(self):
        config = load_config(self.write("jobs: []\n"))
        self.assertEqual(tuple(config.jobs), ())
        self.assertFalse(config.min_duration_override)


class DurationParsingTests(unittest.TestCase):
    def test_units(self):
        self.assertEqual(_parse_duration("45"), timedelta(seconds=45))
        self.assertEqual(_parse_duration(12), timedelta(seconds=12))
        self.assertEqual(_parse_duration("1.5m"), timedelta(seconds=90))
        self.assertEqual(_parse_duration("2h"), timedelta(hours=2))
        self.assertEqual(_parse_duration("1d"), timedelta(days=1))

    def test_unknown_unit(self):
        with self.assertRaises(ValueError):
            _parse_duration("5w")


if __name__ == "__main__":
    unittest.main()
