"""
mock_mail_relay.py — Mock Mail Relay (RabbitMQ consumer)

This module simulates the worker that owns SMTP delivery when the checkout
service runs with EMAIL_TRANSPORT=queue. It consumes queued e-mails and logs
them instead of sending.

Communication Channels:
    - Input Queue: 'mail.outgoing' ← Receives rendered e-mails from the checkout service

Malformed messages are rejected without requeue (dead-lettered if the broker is configured for it).
"""

import json
import logging
import os
import time

import pika

logging.basicConfig(level=logging.INFO)
RABBITMQ_HOST = os.environ.get("RABBITMQ_HOST", "localhost")
RABBITMQ_USER = os.environ.get("RABBITMQ_USER", "guest")
RABBITMQ_PASSWORD = os.environ.get("RABBITMQ_PASSWORD", "guest")
MAIL_QUEUE = os.environ.get("MAIL_QUEUE", "mail.outgoing")


def get_mq_connection():
    """
    Establishes and returns a connection to the RabbitMQ message broker.

    Raises:
        pika.exceptions.AMQPConnectionError: If the broker is unavailable.
    """
    credentials = pika.PlainCredentials(RABBITMQ_USER, RABBITMQ_PASSWORD)
    return pika.BlockingConnection(
        pika.ConnectionParameters(host=RABBITMQ_HOST, credentials=credentials)
    )


def on_mail_received(ch, method, properties, body):
    """
    Callback for each queued e-mail.

    Behavior:
        - Logs recipient, subject and message id.
        - Acknowledges well-formed messages.
        - Rejects malformed messages without requeue.
    """
    try:
        mail = json.loads(body)
        recipient = mail["to"]["email"]
        logging.info(f"[MAIL] '{mail['subject']}' → {recipient} (id {mail.get('messageId')}, "
                     f"{len(mail.get('htmlContent', ''))} bytes)")
        ch.basic_ack(delivery_tag=method.delivery_tag)
    except (json.JSONDecodeError, KeyError, TypeError) as e:
        logging.error(f"[MAIL] Malformed mail message: {e}")
        ch.basic_nack(delivery_tag=method.delivery_tag, requeue=False)


def main():
    """
    Starts the consumer loop; reconnects every 5 seconds when the broker is gone.
    """
    logging.info("Mock mail relay (MQ) starting...")
    while True:
        try:
            connection = get_mq_connection()
            channel = connection.channel()
            channel.queue_declare(queue=MAIL_QUEUE, durable=True)

            logging.info(f"[MAIL] Waiting for e-mails on '{MAIL_QUEUE}'.")
            channel.basic_consume(queue=MAIL_QUEUE, on_message_callback=on_mail_received)
            channel.start_consuming()
        except pika.exceptions.AMQPConnectionError as e:
            logging.warning(f"MQ connection failed, retrying in 5s... {e}")
            time.sleep(5)
        except KeyboardInterrupt:
            break


if __name__ == '__main__':
    main()
