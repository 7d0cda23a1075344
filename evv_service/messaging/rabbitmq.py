"""RabbitMQ publisher for EVV events"""
import json
import logging
from typing import Dict, Optional

import pika

logger = logging.getLogger(__name__)


class RabbitMQPublisher:
    """Publishes JSON messages to a durable topic exchange"""

    def __init__(
        self,
        host: str,
        port: int = 5672,
        user: Optional[str] = None,
        password: Optional[str] = None,
        exchange: str = "evv.events",
    ):
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.exchange = exchange

    @classmethod
    def from_settings(cls, settings) -> Optional["RabbitMQPublisher"]:
        """Publisher for the configured broker, or None when messaging is disabled"""
        if not settings.rabbitmq_host:
            return None
        return cls(
            host=settings.rabbitmq_host,
            port=settings.rabbitmq_port,
            user=settings.rabbitmq_user,
            password=settings.rabbitmq_password,
            exchange=settings.rabbitmq_exchange,
        )

    def _connect(self) -> pika.BlockingConnection:
        credentials = pika.PlainCredentials(self.user or "guest", self.password or "guest")
        parameters = pika.ConnectionParameters(
            host=self.host,
            port=self.port,
            credentials=credentials,
            heartbeat=600,
            blocked_connection_timeout=300,
        )
        return pika.BlockingConnection(parameters)

    def publish(self, routing_key: str, message: Dict) -> None:
        """Publish one persistent message; opens a short-lived connection."""
        connection = self._connect()
        try:
            channel = connection.channel()
            channel.exchange_declare(
                exchange=self.exchange,
                exchange_type='topic',
                durable=True
            )
            channel.basic_publish(
                exchange=self.exchange,
                routing_key=routing_key,
                body=json.dumps(message, default=str),
                properties=pika.BasicProperties(
                    content_type="application/json",
                    delivery_mode=2,
                ),
            )
            logger.info(f"Published {routing_key} to {self.exchange}")
        finally:
            connection.close()
