"""Worker RQ para envio de webhooks de status de pedidos."""

import logging

from redis import Redis
from rq import Queue, Worker

from cardapio.config import settings

# Logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def main():
    """Entrypoint para rodar o worker RQ."""
    logger.info(f"Iniciando worker RQ. Queue: {settings.queue_name}")

    redis_conn = Redis.from_url(settings.redis_url)
    queues = [Queue(settings.queue_name, connection=redis_conn)]
    worker = Worker(queues, connection=redis_conn, name=f"worker-{settings.queue_name}")
    worker.work(logging_level=settings.log_level.upper())


if __name__ == "__main__":
    main()
