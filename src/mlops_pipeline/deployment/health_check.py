#!/usr/bin/env python3
"""
Post-deployment health checking.
The deployed service is reached through a temporary ``kubectl port-forward``
tunnel that is opened and closed around every probe.
"""

import logging
import time
from typing import Callable, Dict, Optional

import requests

from mlops_pipeline.execution.command_runner import BackgroundProcess, CommandRunner
from mlops_pipeline.shared.exceptions import HealthCheckExhausted

logger = logging.getLogger(__name__)

HEALTH_CHECK_RETRIES = 10
HEALTH_CHECK_INTERVAL_SECONDS = 30
TUNNEL_WARMUP_SECONDS = 5
LOCAL_PORT = 8080
SERVICE_PORT = 80


class PortForwardTunnel:
    """Context manager around ``kubectl port-forward service/<name>``."""

    def __init__(self,
                 runner: CommandRunner,
                 service: str,
                 namespace: str,
                 env: Optional[Dict[str, str]] = None,
                 local_port: int = LOCAL_PORT,
                 service_port: int = SERVICE_PORT,
                 warmup_seconds: float = TUNNEL_WARMUP_SECONDS,
                 sleep: Callable[[float], None] = time.sleep):
        self.runner = runner
        self.service = service
        self.namespace = namespace
        self.env = env
        self.local_port = local_port
        self.service_port = service_port
        self.warmup_seconds = warmup_seconds
        self.sleep = sleep
        self._process: Optional[BackgroundProcess] = None

    @property
    def base_url(self) -> str:
        return f"http://localhost:{self.local_port}"

    def __enter__(self) -> 'PortForwardTunnel':
        self._process = self.runner.spawn(
            ['kubectl', 'port-forward', f"service/{self.service}",
             f"{self.local_port}:{self.service_port}", '-n', self.namespace],
            env=self.env,
        )
        self.sleep(self.warmup_seconds)
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        if self._process is None:
            return
        try:
            self._process.stop()
        except OSError as e:
            logger.info(f"Port forward already stopped: {e}")
        finally:
            self._process = None


class HealthChecker:
    """Bounded-retry liveness probe with a fixed sleep between attempts."""

    def __init__(self,
                 runner: CommandRunner,
                 service: str,
                 namespace: str,
                 env: Optional[Dict[str, str]] = None,
                 retries: int = HEALTH_CHECK_RETRIES,
                 interval_seconds: float = HEALTH_CHECK_INTERVAL_SECONDS,
                 health_path: str = '/health',
                 request_timeout: float = 10.0,
                 sleep: Callable[[float], None] = time.sleep):
        self.runner = runner
        self.service = service
        self.namespace = namespace
        self.env = env
        self.retries = retries
        self.interval_seconds = interval_seconds
        self.health_path = health_path
        self.request_timeout = request_timeout
        self.sleep = sleep

    def tunnel(self) -> PortForwardTunnel:
        return PortForwardTunnel(self.runner, self.service, self.namespace, env=self.env, sleep=self.sleep)

    def probe(self) -> None:
        """One attempt: open the tunnel, GET the health endpoint, close the tunnel."""
        with self.tunnel() as tunnel:
            response = requests.get(f"{tunnel.base_url}{self.health_path}", timeout=self.request_timeout)
            response.raise_for_status()

    def wait_until_healthy(self) -> int:
        """Probe until success; return the successful attempt number."""
        last_error = None

        for attempt in range(1, self.retries + 1):
            logger.info(f"🏥 Performing health check (attempt {attempt}/{self.retries})...")
            try:
                self.probe()
                logger.info(f"✅ Health check passed on attempt {attempt}")
                return attempt
            except (requests.RequestException, OSError) as e:
                last_error = str(e)
                logger.warning(f"❌ Health check failed (attempt {attempt}): {e}")

            if attempt < self.retries:
                self.sleep(self.interval_seconds)

        raise HealthCheckExhausted(self.retries, last_error)
