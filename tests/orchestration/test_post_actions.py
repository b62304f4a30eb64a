#!/usr/bin/env python3
"""
Tests for artifact archiving, test result publication and workspace reset.
"""

import hashlib
import json

import pytest

from mlops_pipeline.orchestration.post_actions import (
    ArtifactArchiver,
    TestResultPublisher,
    WorkspaceCleaner,
)

UNIT_REPORT = """<?xml version="1.0" encoding="utf-8"?>
<testsuites>
  <testsuite name="pytest" tests="12" failures="1" errors="0" skipped="2">
    <testcase classname="tests.unit" name="test_one"/>
  </testsuite>
</testsuites>
"""

INTEGRATION_REPORT = """<?xml version="1.0" encoding="utf-8"?>
<testsuite name="integration" tests="5" failures="0" errors="1" skipped="0"/>
"""


class TestArtifactArchiver:

    def test_archive_with_fingerprints(self, tmp_path):
        workspace = tmp_path / 'ws'
        (workspace / 'artifacts' / 'models').mkdir(parents=True)
        (workspace / 'artifacts' / 'models' / 'best_model.pkl').write_bytes(b'weights')
        (workspace / 'artifacts' / 'docker-image.txt').write_text('docker.io/model:1')

        result = ArtifactArchiver(workspace, tmp_path / 'archive', '9').archive()

        target = tmp_path / 'archive' / '9'
        assert result['status'] == 'success'
        assert result['archived'] == 2
        assert (target / 'artifacts' / 'models' / 'best_model.pkl').read_bytes() == b'weights'

        fingerprints = json.loads((target / 'fingerprints.json').read_text())
        assert fingerprints['models/best_model.pkl'] == hashlib.md5(b'weights').hexdigest()
        assert set(fingerprints) == {'models/best_model.pkl', 'docker-image.txt'}

    def test_empty_archive_allowed(self, tmp_path):
        result = ArtifactArchiver(tmp_path / 'ws', tmp_path / 'archive', '9').archive()

        assert result['archived'] == 0
        assert json.loads((tmp_path / 'archive' / '9' / 'fingerprints.json').read_text()) == {}


class TestTestResultPublisher:
    """Test JUnit totals across report files."""

    @pytest.fixture
    def results_dir(self, tmp_path):
        results = tmp_path / 'test-results'
        results.mkdir()
        (results / 'unit-tests.xml').write_text(UNIT_REPORT)
        (results / 'integration-tests.xml').write_text(INTEGRATION_REPORT)
        return results

    def test_totals(self, results_dir, tmp_path):
        target = tmp_path / 'archive' / '9'

        summary = TestResultPublisher(results_dir, target).publish()

        assert summary['tests'] == 17
        assert summary['failures'] == 1
        assert summary['errors'] == 1
        assert summary['skipped'] == 2
        assert summary['reports'] == ['integration-tests.xml', 'unit-tests.xml']
        assert (target / 'test-results' / 'unit-tests.xml').is_file()
        assert json.loads((target / 'test-summary.json').read_text())['tests'] == 17

    def test_unreadable_report_skipped(self, results_dir, tmp_path):
        (results_dir / 'broken.xml').write_text('<testsuite')

        summary = TestResultPublisher(results_dir, tmp_path / 'archive').publish()

        assert summary['unreadable'] == ['broken.xml']
        assert summary['tests'] == 17

    def test_no_results_allowed(self, tmp_path):
        summary = TestResultPublisher(tmp_path / 'missing', tmp_path / 'archive').publish()

        assert summary['tests'] == 0
        assert summary['reports'] == []


class TestWorkspaceCleaner:

    def test_removes_generated_paths_only(self, workspace):
        (workspace / 'venv' / 'bin').mkdir(parents=True)
        (workspace / 'test-results').mkdir()
        (workspace / 'docker' / 'models').mkdir(parents=True)
        (workspace / 'docker' / 'Dockerfile').write_text('FROM python:3.9\n')

        result = WorkspaceCleaner(workspace).clean()

        assert result['removed'] == ['artifacts', 'test-results', 'venv', 'docker/models']
        assert not (workspace / 'artifacts').exists()
        assert (workspace / 'docker' / 'Dockerfile').is_file()
        assert (workspace / 'src' / 'app.py').is_file()
        assert (workspace / 'k8s' / 'deployment.yml').is_file()

    def test_nothing_to_remove(self, tmp_path):
        assert WorkspaceCleaner(tmp_path).clean()['removed'] == []
