"""Jobs RQ de webhooks: status de pedidos e links de recuperação de senha."""

import logging

import httpx

from cardapio.config import settings

logger = logging.getLogger(__name__)


def _post(url: str, payload: dict, label: str) -> dict:
    """POST único com httpx; erros viram resultado, nunca exceção."""
    try:
        with httpx.Client(timeout=settings.webhook_timeout) as client:
            resp = client.post(url, json=payload)
    except httpx.HTTPError as e:
        logger.error(f"Falha ao enviar webhook de {label}: {e}")
        return {"ok": False, "error": str(e)}

    if resp.status_code >= 400:
        logger.error(f"Webhook de {label} respondeu {resp.status_code}: {resp.text[:200]}")
        return {"ok": False, "status_code": resp.status_code}

    return {"ok": True, "status_code": resp.status_code}


def send_status_webhook(payload: dict) -> dict:
    """
    Envia o pedido completo para o webhook de status.

    Uma tentativa só: falhas são registradas e o job termina sem erro.

    Args:
        payload: pedido serializado (inclui cancellationReason quando cancelado)

    Returns:
        dict com o resultado do envio
    """
    order_id = payload.get("id")
    url = settings.status_webhook_url
    if not url:
        logger.info(f"Webhook de status desativado; pedido {order_id} ignorado")
        return {"pedido": order_id, "ok": False, "error": "webhook desativado"}

    result = _post(url, payload, f"status do pedido {order_id}")
    if result["ok"]:
        logger.info(f"Webhook enviado: pedido {order_id} status {payload.get('status')}")
    return {"pedido": order_id, **result}


def send_password_reset(payload: dict) -> dict:
    """
    Entrega o link de recuperação de senha ao serviço de mensagens.

    O payload traz `email`, `nome` e `link` (com o token). O token não vai
    para o log.
    """
    url = settings.password_reset_webhook_url
    if not url:
        logger.warning("Webhook de recuperação de senha não configurado; link descartado")
        return {"email": payload.get("email"), "ok": False, "error": "webhook desativado"}

    result = _post(url, payload, "recuperação de senha")
    if result["ok"]:
        logger.info(f"Link de recuperação enviado para {payload.get('email')}")
    return {"email": payload.get("email"), **result}
