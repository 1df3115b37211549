"""
Alert sinks. Delivery problems are logged and never fail a sync run.
"""

from abc import ABC, abstractmethod
from typing import List, Optional
import logging

import httpx

from core.config import settings
from schemas.ingestion import AlertSeverity

logger = logging.getLogger(__name__)

_LOG_LEVELS = {
    AlertSeverity.INFO: logging.INFO,
    AlertSeverity.WARNING: logging.WARNING,
    AlertSeverity.CRITICAL: logging.ERROR,
}


class AlertSink(ABC):
    @abstractmethod
    async def send(self, message: str, severity: AlertSeverity = AlertSeverity.WARNING) -> None:
        pass


class LoggingAlertSink(AlertSink):
    """Writes alerts to the application log"""

    async def send(self, message, severity=AlertSeverity.WARNING):
        logger.log(_LOG_LEVELS.get(severity, logging.WARNING), f"ALERT [{severity.value}] {message}")


class WebhookAlertSink(AlertSink):
    """Posts a Slack-compatible {"text": ...} payload to a webhook URL"""

    def __init__(self, url: str, timeout: float = 10.0):
        self.url = url
        self.timeout = timeout

    async def send(self, message, severity=AlertSeverity.WARNING):
        payload = {"text": f"[{severity.value.upper()}] {message}"}
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(self.url, json=payload)
            if response.status_code >= 400:
                logger.error(f"Alert webhook returned {response.status_code}: {response.text[:200]}")
        except httpx.HTTPError as e:
            logger.error(f"Alert webhook delivery failed: {e}")


class CompositeAlertSink(AlertSink):
    def __init__(self, sinks: List[AlertSink]):
        self.sinks = sinks

    async def send(self, message, severity=AlertSeverity.WARNING):
        for sink in self.sinks:
            await sink.send(message, severity)


def build_alert_sink(webhook_url: Optional[str] = None) -> AlertSink:
    """Log sink, plus the webhook when one is configured"""
    url = webhook_url if webhook_url is not None else settings.ALERT_WEBHOOK_URL
    if not url:
        return LoggingAlertSink()
    return CompositeAlertSink([LoggingAlertSink(), WebhookAlertSink(url)])
