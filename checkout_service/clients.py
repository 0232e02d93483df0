"""
This module provides the transactional e-mail transports used by the notification step:
- Brevo transactional e-mail API (REST)
- Mail relay queue (RabbitMQ), for deployments where a separate worker owns SMTP delivery
Each class encapsulates its protocol logic, error handling, and connection management.
Both expose the same coroutine: send(email, subject, message, name).
"""

import asyncio
import json
import logging
import time
import uuid
from concurrent.futures import ThreadPoolExecutor
from typing import Optional

import httpx
import pika

from .config import Settings

log = logging.getLogger(__name__)


# --- Brevo Client (REST) ---
class BrevoEmailClient:
    """
    Client for the Brevo transactional e-mail API.
    """
    def __init__(self, settings: Settings, http_client: Optional[httpx.AsyncClient] = None):
        """
        Uses the shared HTTP client when given, otherwise opens its own with the configured timeouts.
        """
        self.settings = settings
        self._owns_client = http_client is None
        self.client = http_client or httpx.AsyncClient(
            timeout=httpx.Timeout(settings.http_connect_timeout, read=settings.http_read_timeout)
        )

    async def send(self, email: str, subject: str, message: str, name: str) -> dict:
        """
        Sends one HTML e-mail.
        Args:
            email (str): Recipient address.
            subject (str): Subject line.
            message (str): Rendered HTML body.
            name (str): Recipient display name.
        Returns:
            dict: Brevo response (contains messageId).
        Raises:
            httpx.HTTPStatusError: If Brevo rejects the message.
            httpx.TransportError: If Brevo is not reachable.
        """
        payload = {
            "sender": {"name": self.settings.mail_sender_name, "email": self.settings.mail_sender_email},
            "to": [{"email": email, "name": name}],
            "subject": subject,
            "htmlContent": message,
        }
        headers = {"api-key": self.settings.brevo_api_key, "accept": "application/json"}

        try:
            response = await self.client.post(self.settings.brevo_api_url, json=payload, headers=headers)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            log.error(f"Brevo rejected e-mail to {email} (HTTP {e.response.status_code}): {e.response.text}")
            raise
        except httpx.TransportError as e:
            log.error(f"Brevo not reachable while sending to {email}: {e!r}")
            raise

        log.info(f"E-mail '{subject}' sent to {email}.")
        return response.json() if response.content else {}

    async def close(self):
        if self._owns_client:
            await self.client.aclose()


# --- Mail Queue Client (MQ) ---
class MailQueueClient:
    """
    Publishes e-mails to the mail relay queue (RabbitMQ).
    A pika BlockingConnection is not thread-safe, so every broker call runs on one
    dedicated worker thread; the event loop never waits on the broker.
    """
    def __init__(self, settings: Settings):
        self.settings = settings
        self.connection = None
        self.channel = None
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="mail-queue")

    def _connect(self):
        """
        Establishes the RabbitMQ connection and declares the mail queue.
        Raises:
            pika.exceptions.AMQPConnectionError: If the connection fails.
        """
        try:
            credentials = pika.PlainCredentials(self.settings.rabbitmq_user, self.settings.rabbitmq_password)
            self.connection = pika.BlockingConnection(
                pika.ConnectionParameters(host=self.settings.rabbitmq_host, credentials=credentials, heartbeat=60)
            )
            self.channel = self.connection.channel()
            self.channel.queue_declare(queue=self.settings.mail_queue, durable=True)
            log.info("Mail queue client connected to RabbitMQ.")
        except pika.exceptions.AMQPConnectionError as e:
            log.critical(f"Cannot connect to RabbitMQ (mail relay): {e}")
            raise

    def _publish(self, message: dict):
        if not self.connection or self.connection.is_closed:
            self._connect()
        self.channel.basic_publish(
            exchange='',
            routing_key=self.settings.mail_queue,
            body=json.dumps(message, ensure_ascii=False),
            properties=pika.BasicProperties(delivery_mode=2)  # persistent
        )

    def _disconnect(self):
        if self.connection and self.connection.is_open:
            self.connection.close()

    async def _run(self, func, *args):
        return await asyncio.get_running_loop().run_in_executor(self._executor, func, *args)

    async def send(self, email: str, subject: str, message: str, name: str) -> dict:
        """
        Queues one e-mail for the relay.
        Raises:
            pika.exceptions.AMQPError: If publishing fails.
        """
        envelope = {
            "messageId": str(uuid.uuid4()),
            "queuedAt": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
            "to": {"email": email, "name": name},
            "sender": {"email": self.settings.mail_sender_email, "name": self.settings.mail_sender_name},
            "subject": subject,
            "htmlContent": message,
        }
        try:
            await self._run(self._publish, envelope)
        except pika.exceptions.AMQPError as e:
            log.error(f"Failed to queue e-mail '{subject}' for {email}: {e!r}")
            raise
        log.info(f"E-mail '{subject}' for {email} queued ({envelope['messageId']}).")
        return {"messageId": envelope["messageId"]}

    async def close(self):
        await self._run(self._disconnect)
        self._executor.shutdown(wait=False)


def get_email_client(settings: Settings, http_client: Optional[httpx.AsyncClient] = None):
    """
    Returns the configured e-mail transport ('brevo' or 'queue').
    Raises:
        ValueError: On an unknown transport name.
    """
    if settings.email_transport == "brevo":
        return BrevoEmailClient(settings, http_client)
    if settings.email_transport == "queue":
        return MailQueueClient(settings)
    raise ValueError(f"Unknown e-mail transport '{settings.email_transport}'")
