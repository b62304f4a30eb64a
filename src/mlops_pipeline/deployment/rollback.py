#!/usr/bin/env python3
"""Rollout waiting and rollback for the model deployment."""

import logging
from typing import Any, Dict, Optional

from mlops_pipeline.execution.command_runner import CommandRunner

logger = logging.getLogger(__name__)

ROLLOUT_TIMEOUT = '600s'
ROLLBACK_TIMEOUT = '300s'


class RolloutManager:

    def __init__(self, runner: CommandRunner, deployment: str, namespace: str,
                 env: Optional[Dict[str, str]] = None):
        self.runner = runner
        self.deployment = deployment
        self.namespace = namespace
        self.env = env

    def wait_for_rollout(self, timeout: str = ROLLOUT_TIMEOUT) -> None:
        """Block until the deployment's current revision is fully rolled out."""
        logger.info(f"⏳ Waiting for deployment/{self.deployment} to be ready (timeout {timeout})...")
        self.runner.run(
            ['kubectl', 'rollout', 'status', f"deployment/{self.deployment}",
             '-n', self.namespace, f"--timeout={timeout}"],
            env=self.env,
        )

    def rollback(self, revision: Optional[int] = None) -> Dict[str, Any]:
        """Undo to the previous (or given) revision and wait for that rollout.

        Never raises; the returned dict carries the status.
        """
        command = ['kubectl', 'rollout', 'undo', f"deployment/{self.deployment}", '-n', self.namespace]
        if revision:
            command.append(f"--to-revision={revision}")

        logger.info(f"🔄 Initiating rollback of deployment/{self.deployment} in {self.namespace}...")
        try:
            result = self.runner.run(command, env=self.env)
            self.wait_for_rollout(timeout=ROLLBACK_TIMEOUT)
        except Exception as e:
            logger.error(f"❌ Rollback failed: {e}")
            return {
                'status': 'error',
                'deployment': self.deployment,
                'error': str(e)
            }

        logger.info("✅ Rollback completed successfully")
        return {
            'status': 'success',
            'deployment': self.deployment,
            'rollback_output': result.stdout
        }
