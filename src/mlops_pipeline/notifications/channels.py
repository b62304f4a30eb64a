#!/usr/bin/env python3
"""
Notification channels for pipeline results.
Each channel formats its own payload and delivers it; delivery errors are
raised to the Notifier, which isolates them per channel.
"""

import smtplib
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from email.mime.text import MIMEText
from typing import Any, Callable, Dict, List, Optional

import requests

from mlops_pipeline.config.pipeline_config import BuildContext, PipelineConfig
from mlops_pipeline.orchestration.outcome import PipelineOutcome, PipelineStatus

REQUEST_TIMEOUT = 10


@dataclass
class NotificationMessage:
    """Channel-independent facts about the finished run."""
    status: PipelineStatus
    project: str
    build_number: str
    branch: str
    duration: str
    build_url: Optional[str] = None
    commit: Optional[str] = None
    failed_stage: Optional[str] = None

    @classmethod
    def from_outcome(cls, outcome: PipelineOutcome, config: PipelineConfig,
                     context: BuildContext) -> 'NotificationMessage':
        failed_stage = outcome.failed_stage
        return cls(
            status=outcome.status,
            project=config.model_name,
            build_number=context.build_number,
            branch=context.branch,
            duration=outcome.duration_string,
            build_url=context.build_url,
            commit=context.commit,
            failed_stage=failed_stage.name if failed_stage else None,
        )

    @property
    def succeeded(self) -> bool:
        return self.status is PipelineStatus.SUCCESS

    @property
    def emoji(self) -> str:
        return '✅' if self.succeeded else '❌'

    @property
    def status_text(self) -> str:
        return 'completed successfully' if self.succeeded else 'failed'

    def text(self) -> str:
        lines = [
            f"{self.emoji} MLOps Pipeline {self.status_text}",
            "━━━━━━━━━━━━━━━━━━━━━━━━━━━━",
            f"Project: {self.project}",
            f"Build: #{self.build_number}",
            f"Branch: {self.branch}",
            f"Duration: {self.duration}",
            f"Build URL: {self.build_url or 'n/a'}",
        ]
        if self.failed_stage:
            lines.append(f"Failed stage: {self.failed_stage}")
        return '\n'.join(lines)


class NotificationChannel(ABC):
    name: str = ''

    @abstractmethod
    def build_payload(self, message: NotificationMessage) -> Any:
        ...

    @abstractmethod
    def deliver(self, payload: Any) -> Dict[str, Any]:
        ...

    def send(self, message: NotificationMessage) -> Dict[str, Any]:
        return self.deliver(self.build_payload(message))


class SlackChannel(NotificationChannel):
    name = 'slack'

    def __init__(self, webhook_url: str, channel: str):
        self.webhook_url = webhook_url
        self.channel = channel

    def build_payload(self, message: NotificationMessage) -> Dict[str, Any]:
        return {
            'channel': self.channel,
            'username': 'MLOps Pipeline Bot',
            'icon_emoji': ':robot_face:',
            'attachments': [{
                'color': 'good' if message.succeeded else 'danger',
                'title': f"MLOps Pipeline {message.status.value}",
                'text': message.text(),
                'footer': 'MLOps Pipeline',
                'ts': int(time.time())
            }]
        }

    def deliver(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        response = requests.post(self.webhook_url, json=payload, timeout=REQUEST_TIMEOUT)
        response.raise_for_status()
        return {'success': True, 'channel': self.channel}


class TeamsChannel(NotificationChannel):
    name = 'teams'

    def __init__(self, webhook_url: str):
        self.webhook_url = webhook_url

    def build_payload(self, message: NotificationMessage) -> Dict[str, Any]:
        facts = [
            {'name': 'Project', 'value': message.project},
            {'name': 'Build', 'value': f"#{message.build_number}"},
            {'name': 'Branch', 'value': message.branch},
            {'name': 'Duration', 'value': message.duration},
        ]
        if message.failed_stage:
            facts.append({'name': 'Failed stage', 'value': message.failed_stage})

        payload = {
            '@type': 'MessageCard',
            '@context': 'http://schema.org/extensions',
            'themeColor': '00FF00' if message.succeeded else 'FF0000',
            'summary': f"MLOps Pipeline {message.status.value}",
            'sections': [{
                'activityTitle': f"{message.emoji} MLOps Pipeline {message.status.value}",
                'activitySubtitle': f"{message.project} - Build #{message.build_number}",
                'facts': facts
            }]
        }
        if message.build_url:
            payload['potentialAction'] = [{
                '@type': 'OpenUri',
                'name': 'View Build',
                'targets': [{'os': 'default', 'uri': message.build_url}]
            }]
        return payload

    def deliver(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        response = requests.post(self.webhook_url, json=payload, timeout=REQUEST_TIMEOUT)
        response.raise_for_status()
        return {'success': True}


class EmailChannel(NotificationChannel):
    name = 'email'

    def __init__(self, recipients: str, smtp_host: str, smtp_port: int, sender: str):
        self.recipients = [r.strip() for r in recipients.replace(';', ',').split(',') if r.strip()]
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.sender = sender

    def build_payload(self, message: NotificationMessage) -> MIMEText:
        status_color = 'green' if message.succeeded else 'red'
        build_link = f'<a href="{message.build_url}">View Build</a>' if message.build_url else 'n/a'
        footer = '' if message.succeeded else '<p><b>Check the build logs for more details.</b></p>'

        body = f"""
<h2>{message.emoji} MLOps Pipeline {message.status_text}</h2>
<table border="1" cellpadding="5" cellspacing="0">
    <tr><td><b>Project</b></td><td>{message.project}</td></tr>
    <tr><td><b>Build</b></td><td>#{message.build_number}</td></tr>
    <tr><td><b>Branch</b></td><td>{message.branch}</td></tr>
    <tr><td><b>Status</b></td><td style="color: {status_color}">{message.status.value}</td></tr>
    <tr><td><b>Duration</b></td><td>{message.duration}</td></tr>
    <tr><td><b>Build URL</b></td><td>{build_link}</td></tr>
</table>
{footer}
"""
        mime = MIMEText(body, 'html')
        mime['Subject'] = (f"{message.emoji} MLOps Pipeline {message.status.value} - "
                           f"{message.project} #{message.build_number}")
        mime['From'] = self.sender
        mime['To'] = ', '.join(self.recipients)
        return mime

    def deliver(self, payload: MIMEText) -> Dict[str, Any]:
        with smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=REQUEST_TIMEOUT) as smtp:
            smtp.sendmail(self.sender, self.recipients, payload.as_string())
        return {'success': True, 'recipients': self.recipients, 'subject': payload['Subject']}


class GitHubStatusChannel(NotificationChannel):
    name = 'github'
    status_context = 'continuous-integration/mlops-pipeline'

    def __init__(self, repo: str, commit: str, token_provider: Callable[[], str],
                 api_url: str = 'https://api.github.com'):
        self.repo = repo
        self.commit = commit
        self.token_provider = token_provider
        self.api_url = api_url.rstrip('/')

    def build_payload(self, message: NotificationMessage) -> Dict[str, Any]:
        payload = {
            'state': 'success' if message.succeeded else 'failure',
            'description': ('MLOps pipeline completed successfully' if message.succeeded
                            else 'MLOps pipeline failed'),
            'context': self.status_context
        }
        if message.build_url:
            payload['target_url'] = message.build_url
        return payload

    def deliver(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        # Token is resolved at delivery so a missing credential only fails this channel
        token = self.token_provider()
        response = requests.post(
            f"{self.api_url}/repos/{self.repo}/statuses/{self.commit}",
            json=payload,
            headers={
                'Authorization': f"token {token}",
                'Accept': 'application/vnd.github.v3+json'
            },
            timeout=REQUEST_TIMEOUT
        )
        response.raise_for_status()
        return {'success': True, 'state': payload['state'], 'commit': self.commit}


def configured_channels(config: PipelineConfig, context: BuildContext,
                        token_lookup: Callable[[str], str]) -> List[NotificationChannel]:
    """Channels enabled by the configuration, in delivery order."""
    channels: List[NotificationChannel] = []

    if config.slack_channel and config.slack_webhook:
        channels.append(SlackChannel(config.slack_webhook, config.slack_channel))

    if config.email_recipients:
        channels.append(EmailChannel(config.email_recipients, config.smtp_host,
                                     config.smtp_port, config.email_sender))

    if config.teams_webhook:
        channels.append(TeamsChannel(config.teams_webhook))

    # Commit statuses are only posted for pull-request builds
    if config.update_github_status and context.change_id and config.github_repo and context.commit:
        channels.append(GitHubStatusChannel(
            config.github_repo,
            context.commit,
            lambda: token_lookup(config.github_token_id),
        ))

    return channels
