"""
Notificações disparadas depois que um pedido é gravado.

1. Publica o pedido no canal Redis da empresa (feed ao vivo)
2. Enfileira o webhook de status no RQ

Os dois passos são best-effort: falhas são registradas e nunca chegam a
quem atualizou o pedido. Não há nova tentativa.

O link de recuperação de senha também sai por essa fila
(`enqueue_password_reset`).
"""

import json
import logging
from typing import Any, Callable

from redis import Redis
from rq import Queue

from ..config import settings
from ..models import Order
from ..schemas import OrderOut

logger = logging.getLogger(__name__)

WEBHOOK_JOB = "worker.webhooks.send_status_webhook"
PASSWORD_RESET_JOB = "worker.webhooks.send_password_reset"

# Redis/Queue - lazy initialization
_redis: Redis | None = None
_queue: Queue | None = None


def get_redis() -> Redis:
    """Retorna conexão Redis (lazy init)."""
    global _redis
    if _redis is None:
        _redis = Redis.from_url(settings.redis_url, socket_connect_timeout=2)
    return _redis


def get_queue() -> Queue:
    """Retorna a fila de webhooks (lazy init)."""
    global _queue
    if _queue is None:
        _queue = Queue(settings.queue_name, connection=get_redis())
    return _queue


def orders_channel(empresa_id: int) -> str:
    return f"{settings.orders_channel_prefix}:{empresa_id}"


def order_payload(order: Order) -> dict[str, Any]:
    """Pedido completo em JSON; inclui o motivo quando cancelado."""
    payload = OrderOut.model_validate(order).model_dump(mode="json")
    if order.status == "cancelled" and order.motivo_cancelamento:
        payload["cancellationReason"] = order.motivo_cancelamento
    return payload


class OrderEvents:
    """Gancho chamado após cada alteração confirmada de pedido."""

    def __init__(
        self,
        redis_factory: Callable[[], Redis] = get_redis,
        queue_factory: Callable[[], Queue] = get_queue,
    ):
        self._redis_factory = redis_factory
        self._queue_factory = queue_factory

    def order_changed(self, order: Order) -> None:
        payload = order_payload(order)
        self.publish(order.empresa_id, payload)
        self.enqueue_webhook(payload)

    def publish(self, empresa_id: int, payload: dict[str, Any]) -> bool:
        try:
            self._redis_factory().publish(orders_channel(empresa_id), json.dumps(payload))
            return True
        except Exception as e:
            logger.warning(f"Feed de pedidos indisponível (pedido {payload.get('id')}): {e}")
            return False

    def enqueue_webhook(self, payload: dict[str, Any]) -> bool:
        if not settings.status_webhook_url:
            return False
        try:
            self._queue_factory().enqueue(WEBHOOK_JOB, payload)
            return True
        except Exception as e:
            logger.warning(f"Não foi possível enfileirar webhook do pedido {payload.get('id')}: {e}")
            return False


_order_events = OrderEvents()


def get_order_events() -> OrderEvents:
    """Dependency do gancho de notificações."""
    return _order_events


def reset_link(token: str) -> str:
    return f"{settings.password_reset_link}?token={token}"


def enqueue_password_reset(email: str, nome: str, token: str) -> bool:
    """Enfileira a entrega do link de recuperação; False se não foi possível."""
    if not settings.password_reset_webhook_url:
        logger.warning("PASSWORD_RESET_WEBHOOK_URL não configurada; link de recuperação não enviado")
        return False
    payload = {"email": email, "nome": nome, "link": reset_link(token)}
    try:
        get_queue().enqueue(PASSWORD_RESET_JOB, payload)
        return True
    except Exception as e:
        logger.warning(f"Não foi possível enfileirar recuperação de senha para {email}: {e}")
        return False
