"""Router de cupons: gestão pelo admin e validação pública."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from slowapi import Limiter
from slowapi.util import get_remote_address

from ..config import settings
from ..database import DbSession
from ..models import Coupon, User
from ..schemas import (
    CouponCreate,
    CouponOut,
    CouponType,
    CouponUpdate,
    CouponValidateRequest,
    CouponValidateResponse,
    Role,
)
from ..services.coupons import CouponError, validate_coupon
from ..services.orders import get_empresa_by_slug
from ..services.pricing import apply_coupon
from .auth import get_empresa_id, require_role

logger = logging.getLogger(__name__)

router = APIRouter()
limiter = Limiter(key_func=get_remote_address)

AdminUser = Depends(require_role(Role.ADMIN))


def _coupon_or_404(db: DbSession, coupon_id: int, empresa_id: int) -> Coupon:
    coupon = db.get(Coupon, coupon_id)
    if not coupon or coupon.empresa_id != empresa_id:
        raise HTTPException(status_code=404, detail="Cupom não encontrado")
    return coupon


def _ensure_unique(db: DbSession, empresa_id: int, nome: str, exclude_id: int | None = None) -> None:
    query = db.query(Coupon).filter(Coupon.empresa_id == empresa_id, Coupon.nome == nome)
    if exclude_id is not None:
        query = query.filter(Coupon.id != exclude_id)
    if query.first():
        raise HTTPException(status_code=409, detail=f"Já existe um cupom com o código {nome}")


@router.get("/", response_model=list[CouponOut])
def list_cupons(db: DbSession, user: User = AdminUser):
    """Cupons da empresa, mais recentes primeiro."""
    return (
        db.query(Coupon)
        .filter(Coupon.empresa_id == get_empresa_id(user))
        .order_by(Coupon.created_at.desc(), Coupon.id.desc())
        .all()
    )


@router.post("/", response_model=CouponOut, status_code=201)
@limiter.limit("30/minute")
def create_cupom(request: Request, payload: CouponCreate, db: DbSession, user: User = AdminUser):
    """
    Cria um cupom.

    - **nome**: código do cupom (gravado em maiúsculas)
    - **tipo**: percentual (0 a 100) ou fixo (R$)
    - **validade**: último dia de uso
    """
    empresa_id = get_empresa_id(user)
    _ensure_unique(db, empresa_id, payload.nome)

    coupon = Coupon(empresa_id=empresa_id, **payload.model_dump(exclude={"tipo"}), tipo=payload.tipo.value)
    db.add(coupon)
    db.commit()
    db.refresh(coupon)
    logger.info(f"Cupom criado: {coupon.nome} ({coupon.tipo} {coupon.valor}) empresa {empresa_id}")
    return coupon


@router.put("/{coupon_id}", response_model=CouponOut)
@limiter.limit("30/minute")
def update_cupom(request: Request, coupon_id: int, payload: CouponUpdate, db: DbSession, user: User = AdminUser):
    empresa_id = get_empresa_id(user)
    coupon = _coupon_or_404(db, coupon_id, empresa_id)
    data = payload.model_dump(exclude_unset=True)

    if data.get("nome"):
        _ensure_unique(db, empresa_id, data["nome"], exclude_id=coupon.id)

    tipo = data.get("tipo") or coupon.tipo
    valor = data.get("valor", coupon.valor)
    if CouponType(tipo) == CouponType.PERCENTUAL and valor is not None and valor > 100:
        raise HTTPException(status_code=422, detail="Cupom percentual deve ter valor entre 0 e 100")

    for field, value in data.items():
        if value is None:
            continue
        setattr(coupon, field, value.value if isinstance(value, CouponType) else value)
    db.commit()
    db.refresh(coupon)
    return coupon


@router.post("/{coupon_id}/toggle", response_model=CouponOut)
@limiter.limit("30/minute")
def toggle_cupom(request: Request, coupon_id: int, db: DbSession, user: User = AdminUser):
    """Ativa/desativa o cupom."""
    coupon = _coupon_or_404(db, coupon_id, get_empresa_id(user))
    coupon.ativo = not coupon.ativo
    db.commit()
    db.refresh(coupon)
    logger.info(f"Cupom {coupon.nome} {'ativado' if coupon.ativo else 'desativado'}")
    return coupon


@router.delete("/{coupon_id}", status_code=204)
@limiter.limit("30/minute")
def delete_cupom(request: Request, coupon_id: int, db: DbSession, user: User = AdminUser):
    """Remove o cupom. Pedidos que o usaram guardam o próprio retrato."""
    coupon = _coupon_or_404(db, coupon_id, get_empresa_id(user))
    db.delete(coupon)
    db.commit()


@router.post("/validar", response_model=CouponValidateResponse)
@limiter.limit("30/minute")
def validar_cupom(request: Request, payload: CouponValidateRequest, db: DbSession):
    """
    Valida um cupom para a empresa.

    Se o subtotal for informado, devolve também desconto e total.
    """
    empresa = get_empresa_by_slug(db, payload.empresa_slug)
    if not empresa:
        raise HTTPException(status_code=404, detail="Empresa não encontrada")

    try:
        coupon = validate_coupon(db, payload.codigo, empresa.id, settings.today())
    except CouponError as e:
        raise HTTPException(status_code=400, detail=str(e))

    response = CouponValidateResponse(cupom=CouponOut.model_validate(coupon))
    if payload.subtotal is not None:
        result = apply_coupon(payload.subtotal, coupon)
        response.desconto = result.discount
        response.total = result.final_total
    return response
