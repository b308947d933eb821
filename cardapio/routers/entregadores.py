"""Router de entregadores: cadastro pelo admin e fila de entregas."""

import logging
from datetime import UTC, datetime

from fastapi import APIRouter, Depends, HTTPException, Request
from slowapi import Limiter
from slowapi.util import get_remote_address

from ..config import settings
from ..database import DbSession
from ..models import User
from ..schemas import DelivererCreate, DelivererOut, OrderOut, Role
from ..services.auth import AuthService, RegistrationError
from ..services.notifications import OrderEvents, get_order_events
from ..services.order_status import TransitionError, apply_transition, courier_delivery_status
from ..services.orders import StaleOrderError, commit_order, courier_queue, get_order
from .auth import get_empresa_id, require_role

logger = logging.getLogger(__name__)

router = APIRouter()
limiter = Limiter(key_func=get_remote_address)

AdminUser = Depends(require_role(Role.ADMIN))
CourierUser = Depends(require_role(Role.ENTREGADOR))


# === Gestão (admin) ===


@router.get("/", response_model=list[DelivererOut])
def list_entregadores(db: DbSession, user: User = AdminUser):
    """Entregadores da empresa."""
    return (
        db.query(User)
        .filter(User.empresa_id == get_empresa_id(user), User.role == Role.ENTREGADOR.value)
        .order_by(User.nome)
        .all()
    )


@router.post("/", response_model=DelivererOut, status_code=201)
@limiter.limit("20/minute")
def create_entregador(request: Request, payload: DelivererCreate, db: DbSession, user: User = AdminUser):
    """Cadastra um entregador com acesso ao app de entregas."""
    empresa_id = get_empresa_id(user)
    try:
        entregador = AuthService(db).create_user(
            email=payload.email,
            password=payload.password,
            nome=payload.nome,
            role=Role.ENTREGADOR.value,
            telefone=payload.telefone,
            empresa_id=empresa_id,
            placa=payload.placa,
            cpf=payload.cpf,
            status_entregador=payload.status_entregador,
        )
    except RegistrationError as e:
        raise HTTPException(status_code=409, detail=str(e))

    logger.info(f"Entregador cadastrado: {entregador.nome} (empresa {empresa_id})")
    return entregador


@router.post("/{entregador_id}/toggle", response_model=DelivererOut)
@limiter.limit("30/minute")
def toggle_entregador(request: Request, entregador_id: int, db: DbSession, user: User = AdminUser):
    """Alterna o entregador entre ativo e inativo."""
    entregador = db.get(User, entregador_id)
    if (
        not entregador
        or entregador.empresa_id != get_empresa_id(user)
        or entregador.role != Role.ENTREGADOR.value
    ):
        raise HTTPException(status_code=404, detail="Entregador não encontrado")

    entregador.status_entregador = "inativo" if entregador.status_entregador == "ativo" else "ativo"
    db.commit()
    db.refresh(entregador)
    logger.info(f"Entregador {entregador.id} agora {entregador.status_entregador}")
    return entregador


# === Fila de entregas ===


@router.get("/fila", response_model=list[OrderOut])
def fila(db: DbSession, user: User = CourierUser):
    """
    Pedidos de hoje saindo para entrega.

    O entregador vê só os seus; o admin vê todos.
    """
    own = None if user.role == Role.ADMIN.value else user.id
    return courier_queue(db, get_empresa_id(user), settings.today(), entregador_id=own)


@router.post("/fila/{order_id}/confirmar", response_model=OrderOut)
@limiter.limit("60/minute")
def confirmar_entrega(
    request: Request,
    order_id: int,
    db: DbSession,
    user: User = CourierUser,
    events: OrderEvents = Depends(get_order_events),
):
    """
    Entregador confirma a entrega.

    Dinheiro ainda a cobrar vira `received`; pedido já pago vira
    `delivered`; desconto em folha vira `to_deduct`.
    """
    order = get_order(db, order_id, get_empresa_id(user))
    if not order or (user.role != Role.ADMIN.value and order.entregador_id != user.id):
        raise HTTPException(status_code=404, detail="Pedido não encontrado")

    target = courier_delivery_status(order)
    if target is None:
        raise HTTPException(status_code=400, detail="Pedido não está em rota de entrega")

    try:
        apply_transition(order, target, datetime.now(UTC))
    except TransitionError as e:
        raise HTTPException(status_code=400, detail=str(e))

    try:
        commit_order(db, order)
    except StaleOrderError:
        raise HTTPException(status_code=409, detail="Pedido alterado durante a confirmação. Atualize a fila.")
    events.order_changed(order)
    logger.info(f"Entrega confirmada: pedido {order.id} -> {order.status} (usuário {user.id})")
    return order
