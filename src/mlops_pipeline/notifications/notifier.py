#!/usr/bin/env python3
"""
Pipeline Notifier
Fans the final pipeline outcome out to every configured channel. Channel
failures are logged and reported in the result map; they never propagate.
"""

import logging
from typing import Any, Dict, List, Optional

from mlops_pipeline.config.pipeline_config import BuildContext, PipelineConfig
from mlops_pipeline.execution.credentials import CredentialStore
from mlops_pipeline.notifications.channels import (
    NotificationChannel,
    NotificationMessage,
    configured_channels,
)
from mlops_pipeline.orchestration.outcome import PipelineOutcome
from mlops_pipeline.shared.exceptions import NotificationFailure

logger = logging.getLogger(__name__)


class Notifier:
    def __init__(self, config: PipelineConfig, context: BuildContext,
                 credentials: Optional[CredentialStore] = None,
                 channels: Optional[List[NotificationChannel]] = None):
        self.config = config
        self.context = context
        self.credentials = credentials

        if channels is None:
            channels = configured_channels(config, context, self._secret_text)
        self.channels = channels

    def _secret_text(self, credentials_id: str) -> str:
        if self.credentials is None:
            raise NotificationFailure('github', f"no credential store available for '{credentials_id}'")
        return self.credentials.secret_text(credentials_id)

    def notify(self, outcome: PipelineOutcome) -> Dict[str, Dict[str, Any]]:
        """Send the outcome to all channels and return per-channel results."""
        if not self.channels:
            logger.info("No notification channels configured")
            return {}

        message = NotificationMessage.from_outcome(outcome, self.config, self.context)
        results = {}

        for channel in self.channels:
            try:
                results[channel.name] = channel.send(message)
                logger.info(f"📣 {channel.name} notification sent")
            except Exception as e:
                logger.error(f"Notification error for {channel.name}: {e}")
                results[channel.name] = {'success': False, 'error': str(e)}

        return results
