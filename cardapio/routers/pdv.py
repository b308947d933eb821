"""Router do PDV (ponto de venda no balcão)."""

import logging
from datetime import UTC, datetime

from fastapi import APIRouter, Depends, HTTPException, Request
from slowapi import Limiter
from slowapi.util import get_remote_address

from ..database import DbSession
from ..models import User
from ..schemas import OrderOut, PdvOrderRequest, Role
from ..services.notifications import OrderEvents, get_order_events
from ..services.orders import OrderError, create_order, pdv_address
from ..services.variations import VariationSelectionError
from .auth import get_empresa_id, require_role

logger = logging.getLogger(__name__)

router = APIRouter()
limiter = Limiter(key_func=get_remote_address)


@router.post("/pedidos", response_model=OrderOut, status_code=201)
@limiter.limit("60/minute")
def criar_pedido_pdv(
    request: Request,
    payload: PdvOrderRequest,
    db: DbSession,
    user: User = Depends(require_role(Role.PDV)),
    events: OrderEvents = Depends(get_order_events),
):
    """
    Lança um pedido no balcão.

    - **payroll_discount**: nasce entregue, com pagamento a receber
      (aparece em "A descontar")
    - **pix** / **card**: pagamento recebido no ato
    - **cash**: pendente e a receber
    """
    empresa_id = get_empresa_id(user)
    try:
        order = create_order(
            db,
            empresa_id,
            cliente_nome=payload.cliente_nome,
            cliente_telefone=payload.cliente_telefone,
            endereco=pdv_address(payload.endereco),
            lines=payload.itens,
            metodo_pagamento=payload.metodo_pagamento,
            observacoes=payload.observacoes,
            now=datetime.now(UTC),
            channel="pdv",
        )
    except (OrderError, VariationSelectionError) as e:
        raise HTTPException(status_code=400, detail=str(e))

    events.order_changed(order)
    return order
