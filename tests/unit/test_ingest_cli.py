"""
Unit tests for the repo-ingest command line.

IngestionPipeline and load_config are patched; output is captured JSON.

Run: python -m pytest tests/unit/test_ingest_cli.py -v
"""
import io
import json
import logging
import sys
from contextlib import redirect_stdout
from pathlib import Path
from unittest import TestCase
from unittest.mock import patch

REPO_ROOT = Path(__file__).resolve().parent.parent.parent
sys.path.insert(0, str(REPO_ROOT))

from repo_ingest.core.config import IngestionConfig
from repo_ingest.core.errors import InvalidRepoUrl
from repo_ingest.core.models import IngestionJob, JobStatus
from repo_ingest.scripts import ingest_cli

_PIPELINE = "repo_ingest.scripts.ingest_cli.IngestionPipeline"
_LOAD_CONFIG = "repo_ingest.scripts.ingest_cli.load_config"


def make_job(status=JobStatus.QUEUED, error=None):
    return IngestionJob(
        id="job-1",
        repo_id="acme/widgets",
        repo_url="https://github.com/acme/widgets",
        branch="main",
        status=status,
        error=error,
    )


class TestIngestCli(TestCase):

    def setUp(self):
        config_patch = patch(_LOAD_CONFIG, return_value=IngestionConfig(log_level="CRITICAL"))
        pipeline_patch = patch(_PIPELINE)
        config_patch.start()
        self.pipeline = pipeline_patch.start().return_value
        self.addCleanup(config_patch.stop)
        self.addCleanup(pipeline_patch.stop)

        self.log = logging.getLogger("repo_ingest.scripts.ingest_cli")
        self.old_level = self.log.level
        self.log.setLevel(logging.CRITICAL)
        self.addCleanup(self.log.setLevel, self.old_level)

    def run_cli(self, *argv):
        out = io.StringIO()
        with redirect_stdout(out):
            code = ingest_cli.main(list(argv))
        text = out.getvalue()
        return code, json.loads(text) if text.strip() else None

    def test_ingest_without_wait_prints_queued_job(self):
        self.pipeline.submit.return_value = make_job()

        code, data = self.run_cli("ingest", "https://github.com/acme/widgets", "--branch", "dev")

        self.assertEqual(code, 0)
        self.assertEqual(data['status'], "queued")
        self.pipeline.submit.assert_called_once_with("https://github.com/acme/widgets", "dev")
        self.pipeline.wait_for_job.assert_not_called()
        self.pipeline.shutdown.assert_called_once_with(wait=True)

    def test_ingest_wait_reports_failure_exit_code(self):
        self.pipeline.submit.return_value = make_job()
        self.pipeline.wait_for_job.return_value = make_job(JobStatus.FAILED, error="boom")

        code, data = self.run_cli("ingest", "https://github.com/acme/widgets", "--wait")

        self.assertEqual(code, 1)
        self.assertEqual(data['error'], "boom")

    def test_invalid_url_exit_code(self):
        self.pipeline.submit.side_effect = InvalidRepoUrl("nope")

        code, data = self.run_cli("ingest", "nope")

        self.assertEqual(code, 1)
        self.assertIsNone(data)

    def test_status_of_missing_job(self):
        self.pipeline.get_job.return_value = None

        code, _ = self.run_cli("status", "missing")

        self.assertEqual(code, 1)

    def test_status_of_completed_job(self):
        self.pipeline.get_job.return_value = make_job(JobStatus.COMPLETED)

        code, data = self.run_cli("status", "job-1")

        self.assertEqual(code, 0)
        self.assertEqual(data['id'], "job-1")

    def test_jobs_and_delete(self):
        self.pipeline.list_jobs.return_value = [make_job()]
        code, data = self.run_cli("jobs")
        self.assertEqual(code, 0)
        self.assertEqual([j['id'] for j in data], ["job-1"])

        self.pipeline.delete_repository.return_value = {'repo_id': "acme/widgets"}
        code, data = self.run_cli("delete", "acme/widgets")
        self.assertEqual(code, 0)
        self.assertEqual(data['repo_id'], "acme/widgets")

    def test_health_exit_code(self):
        self.pipeline.health_check.return_value = {'status': 'unhealthy'}
        code, _ = self.run_cli("health")
        self.assertEqual(code, 1)

    def test_no_command_prints_help(self):
        out = io.StringIO()
        with redirect_stdout(out):
            self.assertEqual(ingest_cli.main([]), 1)
