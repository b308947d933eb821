"""Router de pedidos: checkout, gestão pelo admin e feed ao vivo."""

import logging
from datetime import UTC, date, datetime

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import StreamingResponse
from redis import asyncio as aioredis
from redis.exceptions import RedisError
from slowapi import Limiter
from slowapi.util import get_remote_address

from ..config import settings
from ..database import DbSession
from ..models import Order, User
from ..schemas import (
    CheckoutRequest,
    NextStatusOptionsOut,
    OrderCorrection,
    OrderListResponse,
    OrderOut,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
    PaymentStatusUpdate,
    Role,
    StatusUpdateRequest,
)
from ..services.coupons import CouponError
from ..services.notifications import OrderEvents, get_order_events, orders_channel
from ..services.order_status import (
    TransitionError,
    apply_transition,
    can_finalize,
    finalize_payroll_order,
    get_next_status_options,
    has_received_payment,
    set_status,
)
from ..services.orders import (
    OrderError,
    StaleOrderError,
    check_expected_updated_at,
    commit_order,
    create_order,
    get_empresa_by_slug,
    get_order,
    list_orders,
    orders_by_phone,
)
from ..services.variations import VariationSelectionError
from .auth import get_empresa_id, require_role

logger = logging.getLogger(__name__)

router = APIRouter()
limiter = Limiter(key_func=get_remote_address)

AdminUser = Depends(require_role(Role.ADMIN))

FEED_KEEPALIVE_SECONDS = 15.0
STALE_ORDER_DETAIL = "O pedido foi alterado por outra pessoa. Recarregue e tente novamente."


def order_or_404(db: DbSession, order_id: int, empresa_id: int) -> Order:
    order = get_order(db, order_id, empresa_id)
    if not order:
        raise HTTPException(status_code=404, detail="Pedido não encontrado")
    return order


def ensure_fresh(order: Order, expected: datetime | None) -> None:
    try:
        check_expected_updated_at(order, expected)
    except StaleOrderError as e:
        logger.info(str(e))
        raise HTTPException(status_code=409, detail=STALE_ORDER_DETAIL)


def ensure_deliverer(db: DbSession, entregador_id: int | None, empresa_id: int) -> None:
    if entregador_id is None:
        return
    entregador = db.get(User, entregador_id)
    if (
        not entregador
        or entregador.empresa_id != empresa_id
        or entregador.role != Role.ENTREGADOR.value
        or not entregador.is_active
        or entregador.status_entregador == "inativo"
    ):
        raise HTTPException(status_code=400, detail="Entregador inválido para esta empresa")


def save_and_notify(db: DbSession, order: Order, events: OrderEvents) -> Order:
    try:
        commit_order(db, order)
    except StaleOrderError as e:
        logger.info(str(e))
        raise HTTPException(status_code=409, detail=STALE_ORDER_DETAIL)
    events.order_changed(order)
    return order



# === Público ===


@router.post("/", response_model=OrderOut, status_code=201)
@limiter.limit("20/minute")
def checkout(
    request: Request,
    payload: CheckoutRequest,
    db: DbSession,
    events: OrderEvents = Depends(get_order_events),
):
    """
    Finaliza o pedido do cliente.

    Os totais são recalculados com os preços atuais e o cupom é validado de
    novo; o pedido nasce `pending` com pagamento `a_receber`.
    """
    empresa = get_empresa_by_slug(db, payload.empresa_slug)
    if not empresa:
        raise HTTPException(status_code=404, detail="Empresa não encontrada")

    try:
        order = create_order(
            db,
            empresa.id,
            cliente_nome=payload.cliente_nome,
            cliente_telefone=payload.cliente_telefone,
            endereco=payload.endereco.model_dump(),
            lines=payload.itens,
            metodo_pagamento=payload.metodo_pagamento,
            observacoes=payload.observacoes,
            cupom=payload.cupom,
            taxa_entrega=payload.taxa_entrega,
            now=datetime.now(UTC),
        )
    except (OrderError, VariationSelectionError, CouponError) as e:
        raise HTTPException(status_code=400, detail=str(e))

    events.order_changed(order)
    return order


@router.get("/telefone/{telefone}", response_model=list[OrderOut])
@limiter.limit("30/minute")
def pedidos_por_telefone(request: Request, telefone: str, db: DbSession, empresa_slug: str = Query(...)):
    """Acompanhamento: pedidos de um telefone na empresa."""
    empresa = get_empresa_by_slug(db, empresa_slug)
    if not empresa:
        raise HTTPException(status_code=404, detail="Empresa não encontrada")
    return orders_by_phone(db, empresa.id, telefone)


# === Admin ===


@router.get("/", response_model=OrderListResponse)
def listar_pedidos(
    db: DbSession,
    user: User = AdminUser,
    inicio: date | None = Query(None, description="Data inicial (inclusive)"),
    fim: date | None = Query(None, description="Data final (inclusive)"),
    status: OrderStatus | None = Query(None, description="to_deduct = desconto em folha a receber"),
    metodo_pagamento: PaymentMethod | None = None,
    status_pagamento: PaymentStatus | None = None,
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
):
    """Lista pedidos da empresa com filtros."""
    orders, total = list_orders(
        db,
        get_empresa_id(user),
        start=inicio,
        end=fim,
        status=status.value if status else None,
        metodo_pagamento=metodo_pagamento.value if metodo_pagamento else None,
        status_pagamento=status_pagamento.value if status_pagamento else None,
        limit=limit,
        offset=offset,
    )
    return OrderListResponse(items=orders, total=total)


@router.get("/stream")
async def stream_pedidos(request: Request, user: User = AdminUser):
    """
    Feed ao vivo (server-sent events) dos pedidos da empresa.

    Cada pedido gravado chega como um evento `pedido` com o JSON completo.
    """
    empresa_id = get_empresa_id(user)
    channel = orders_channel(empresa_id)

    client = aioredis.from_url(settings.redis_url)
    pubsub = client.pubsub()
    try:
        await pubsub.subscribe(channel)
    except RedisError as e:
        logger.warning(f"Feed de pedidos indisponível: {e}")
        await pubsub.aclose()
        await client.aclose()
        raise HTTPException(status_code=503, detail="Feed de pedidos indisponível")

    async def events():
        try:
            yield ": conectado\n\n"
            while not await request.is_disconnected():
                message = await pubsub.get_message(
                    ignore_subscribe_messages=True, timeout=FEED_KEEPALIVE_SECONDS
                )
                if message is None:
                    yield ": ping\n\n"
                    continue
                data = message["data"]
                if isinstance(data, bytes):
                    data = data.decode()
                yield f"event: pedido\ndata: {data}\n\n"
        except RedisError as e:
            logger.info(f"Feed de pedidos encerrado (empresa {empresa_id}): {e!r}")
        finally:
            await pubsub.unsubscribe(channel)
            await pubsub.aclose()
            await client.aclose()

    return StreamingResponse(
        events(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


@router.get("/{order_id}", response_model=OrderOut)
def get_pedido(order_id: int, db: DbSession, user: User = AdminUser):
    return order_or_404(db, order_id, get_empresa_id(user))


@router.get("/{order_id}/opcoes-status", response_model=NextStatusOptionsOut)
def opcoes_status(order_id: int, db: DbSession, user: User = AdminUser):
    """Próximos status permitidos para o pedido."""
    order = order_or_404(db, order_id, get_empresa_id(user))
    received = has_received_payment(order)
    return NextStatusOptionsOut(
        status=order.status,
        pagamento_recebido=received,
        opcoes=get_next_status_options(order.status, received, order.metodo_pagamento),
        pode_finalizar=can_finalize(order),
    )


@router.post("/{order_id}/status", response_model=OrderOut)
@limiter.limit("60/minute")
def atualizar_status(
    request: Request,
    order_id: int,
    payload: StatusUpdateRequest,
    db: DbSession,
    user: User = AdminUser,
    events: OrderEvents = Depends(get_order_events),
):
    """
    Avança o status do pedido dentro da política de transições.

    - **cancelled** exige `motivo_cancelamento`
    - **delivering** exige `entregador_id`
    - **expected_updated_at** rejeita com 409 se o pedido mudou desde a leitura
    """
    empresa_id = get_empresa_id(user)
    order = order_or_404(db, order_id, empresa_id)
    ensure_fresh(order, payload.expected_updated_at)
    ensure_deliverer(db, payload.entregador_id, empresa_id)

    previous = order.status
    try:
        apply_transition(
            order,
            payload.status,
            datetime.now(UTC),
            reason=payload.motivo_cancelamento,
            entregador_id=payload.entregador_id,
        )
    except TransitionError as e:
        raise HTTPException(status_code=400, detail=str(e))

    save_and_notify(db, order, events)
    logger.info(f"Pedido {order.id}: {previous} -> {order.status} (usuário {user.id})")
    return order


@router.post("/{order_id}/pagamento", response_model=OrderOut)
@limiter.limit("60/minute")
def atualizar_pagamento(
    request: Request,
    order_id: int,
    payload: PaymentStatusUpdate,
    db: DbSession,
    user: User = AdminUser,
    events: OrderEvents = Depends(get_order_events),
):
    """Marca o pagamento como recebido ou a receber."""
    order = order_or_404(db, order_id, get_empresa_id(user))
    ensure_fresh(order, payload.expected_updated_at)

    order.status_pagamento = payload.status_pagamento.value
    save_and_notify(db, order, events)
    logger.info(f"Pedido {order.id}: pagamento {order.status_pagamento}")
    return order


@router.post("/{order_id}/finalizar", response_model=OrderOut)
@limiter.limit("60/minute")
def finalizar(
    request: Request,
    order_id: int,
    db: DbSession,
    user: User = AdminUser,
    events: OrderEvents = Depends(get_order_events),
):
    """Ação "Finalizado": pedido em desconto em folha pago passa a entregue."""
    order = order_or_404(db, order_id, get_empresa_id(user))
    try:
        finalize_payroll_order(order, datetime.now(UTC))
    except TransitionError as e:
        raise HTTPException(status_code=400, detail=str(e))

    save_and_notify(db, order, events)
    logger.info(f"Pedido {order.id} finalizado")
    return order


@router.patch("/{order_id}", response_model=OrderOut)
@limiter.limit("30/minute")
def corrigir_pedido(
    request: Request,
    order_id: int,
    payload: OrderCorrection,
    db: DbSession,
    user: User = AdminUser,
    events: OrderEvents = Depends(get_order_events),
):
    """
    Correção administrativa.

    Permite qualquer status (fora da política de transições); `delivered_at`
    continua acompanhando a entrada e a saída de `delivered`.
    """
    empresa_id = get_empresa_id(user)
    order = order_or_404(db, order_id, empresa_id)
    data = payload.model_dump(exclude_unset=True)

    if "entregador_id" in data:
        ensure_deliverer(db, data["entregador_id"], empresa_id)
        order.entregador_id = data["entregador_id"]
    if data.get("status") is not None:
        set_status(order, payload.status.value, datetime.now(UTC))
    if data.get("status_pagamento") is not None:
        order.status_pagamento = payload.status_pagamento.value
    if "observacoes" in data:
        order.observacoes = data["observacoes"]
    if "motivo_cancelamento" in data:
        order.motivo_cancelamento = data["motivo_cancelamento"]

    save_and_notify(db, order, events)
    logger.warning(f"Pedido {order.id} corrigido manualmente por usuário {user.id}: {sorted(data)}")
    return order
