#!/usr/bin/env python3
"""
Post-build actions that run after every pipeline, whatever its outcome:
artifact archiving, test result publication and workspace reset.
"""

import hashlib
import json
import logging
import shutil
import xml.etree.ElementTree as ET
from pathlib import Path
from typing import Any, Dict, List

logger = logging.getLogger(__name__)

FINGERPRINTS_FILENAME = 'fingerprints.json'
TEST_SUMMARY_FILENAME = 'test-summary.json'
GENERATED_PATHS = ['artifacts', 'test-results', 'venv', 'docker/models']


def md5_fingerprint(path: Path, chunk_size: int = 65536) -> str:
    digest = hashlib.md5()
    with open(path, 'rb') as f:
        for chunk in iter(lambda: f.read(chunk_size), b''):
            digest.update(chunk)
    return digest.hexdigest()


class ArtifactArchiver:
    """Copies ``artifacts/**`` into the build archive and fingerprints every file."""

    def __init__(self, workspace: Path, archive_dir: Path, build_number: str):
        self.source = Path(workspace) / 'artifacts'
        self.target = Path(archive_dir) / str(build_number)

    def archive(self) -> Dict[str, Any]:
        self.target.mkdir(parents=True, exist_ok=True)
        fingerprints: Dict[str, str] = {}

        if not self.source.is_dir():
            logger.info("No artifacts to archive")
        else:
            for path in sorted(self.source.rglob('*')):
                if not path.is_file():
                    continue
                relative = path.relative_to(self.source)
                destination = self.target / 'artifacts' / relative
                destination.parent.mkdir(parents=True, exist_ok=True)
                shutil.copy2(path, destination)
                fingerprints[relative.as_posix()] = md5_fingerprint(path)

        with open(self.target / FINGERPRINTS_FILENAME, 'w') as f:
            json.dump(fingerprints, f, indent=2, sort_keys=True)

        logger.info(f"📦 Archived {len(fingerprints)} artifacts to {self.target}")
        return {'status': 'success', 'archived': len(fingerprints), 'location': str(self.target)}


class TestResultPublisher:
    """Collects JUnit XML reports and writes a totals summary."""

    __test__ = False

    def __init__(self, results_dir: Path, archive_target: Path):
        self.results_dir = Path(results_dir)
        self.archive_target = Path(archive_target)

    def publish(self) -> Dict[str, Any]:
        totals = {'tests': 0, 'failures': 0, 'errors': 0, 'skipped': 0}
        reports: List[str] = []
        unreadable: List[str] = []

        report_files = sorted(self.results_dir.glob('*.xml')) if self.results_dir.is_dir() else []
        if not report_files:
            logger.info("No test results to publish")

        target_dir = self.archive_target / 'test-results'
        for report in report_files:
            try:
                suite_totals = self._suite_totals(report)
            except ET.ParseError as e:
                logger.warning(f"Skipping unreadable test report {report.name}: {e}")
                unreadable.append(report.name)
                continue

            for key, value in suite_totals.items():
                totals[key] += value
            reports.append(report.name)

            target_dir.mkdir(parents=True, exist_ok=True)
            shutil.copy2(report, target_dir / report.name)

        summary = {**totals, 'reports': reports, 'unreadable': unreadable}
        self.archive_target.mkdir(parents=True, exist_ok=True)
        with open(self.archive_target / TEST_SUMMARY_FILENAME, 'w') as f:
            json.dump(summary, f, indent=2)

        logger.info(f"🧪 Tests: {totals['tests']}, failures: {totals['failures']}, "
                    f"errors: {totals['errors']}, skipped: {totals['skipped']}")
        return {'status': 'success', **summary}

    @staticmethod
    def _suite_totals(report: Path) -> Dict[str, int]:
        root = ET.parse(report).getroot()
        suites = [root] if root.tag == 'testsuite' else list(root.iter('testsuite'))

        totals = {'tests': 0, 'failures': 0, 'errors': 0, 'skipped': 0}
        for suite in suites:
            for key in totals:
                totals[key] += int(suite.get(key, 0) or 0)
        return totals


class WorkspaceCleaner:
    """Removes the directories generated by a run; sources are left alone."""

    def __init__(self, workspace: Path, paths: List[str] = None):
        self.workspace = Path(workspace)
        self.paths = paths if paths is not None else GENERATED_PATHS

    def clean(self) -> Dict[str, Any]:
        removed = []
        for relative in self.paths:
            path = self.workspace / relative
            if path.is_dir():
                shutil.rmtree(path)
                removed.append(relative)
            elif path.exists():
                path.unlink()
                removed.append(relative)

        logger.info(f"🧹 Workspace cleaned: {', '.join(removed) or 'nothing to remove'}")
        return {'status': 'success', 'removed': removed}
