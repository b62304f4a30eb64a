#!/usr/bin/env python3
"""
Read-only access to cluster state through the Kubernetes API.
Used to record what was deployed and to capture events after a failure.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from kubernetes import client, config

logger = logging.getLogger(__name__)

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


class ClusterInspector:

    def __init__(self, kubeconfig_path: Optional[str] = None):
        self.kubeconfig_path = kubeconfig_path
        self._api_client: Optional[client.ApiClient] = None

    def _client(self) -> client.ApiClient:
        """Initialize Kubernetes client on first use."""
        if self._api_client is None:
            try:
                self._api_client = config.new_client_from_config(config_file=self.kubeconfig_path)
            except config.ConfigException:
                logger.info("No kubeconfig available, trying in-cluster configuration")
                config.load_incluster_config()
                self._api_client = client.ApiClient()
        return self._api_client

    def describe_deployment(self, name: str, namespace: str) -> Dict[str, Any]:
        api_client = self._client()
        deployment = client.AppsV1Api(api_client).read_namespaced_deployment(name=name, namespace=namespace)
        return api_client.sanitize_for_serialization(deployment)

    def describe_service(self, name: str, namespace: str) -> Dict[str, Any]:
        api_client = self._client()
        service = client.CoreV1Api(api_client).read_namespaced_service(name=name, namespace=namespace)
        return api_client.sanitize_for_serialization(service)

    def recent_events(self, namespace: str) -> List[str]:
        """Namespace events, oldest first, one formatted line each."""
        core_v1 = client.CoreV1Api(self._client())
        events = core_v1.list_namespaced_event(namespace=namespace).items

        def event_time(event) -> datetime:
            return event.last_timestamp or event.event_time or _EPOCH

        lines = []
        for event in sorted(events, key=event_time):
            involved = event.involved_object
            timestamp = event_time(event)
            lines.append(
                f"{timestamp.isoformat() if timestamp is not _EPOCH else '-'} "
                f"{event.type or '-'} {event.reason or '-'} "
                f"{involved.kind}/{involved.name}: {event.message or ''}"
            )
        return lines
