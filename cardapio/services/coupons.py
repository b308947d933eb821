"""Validação de cupons de desconto."""

import logging
from datetime import date

from sqlalchemy.orm import Session

from ..models import Coupon
from .cart import AppliedCoupon

logger = logging.getLogger(__name__)


class CouponError(Exception):
    """Cupom recusado."""

    message = "Cupom recusado"

    def __init__(self, code: str):
        self.code = code
        super().__init__(self.message)


class InvalidCoupon(CouponError):
    message = "O código do cupom está incorreto ou o cupom não existe/não está ativo para esta empresa."


class ExpiredCoupon(CouponError):
    message = "Este cupom não é mais válido."


def normalize_code(code: str) -> str:
    return (code or "").strip().upper()


def validate_coupon(db: Session, code: str, empresa_id: int, as_of: date) -> Coupon:
    """
    Confere se um cupom pode ser aplicado.

    1. Código exato (maiúsculas), da empresa e ativo -> senão InvalidCoupon
    2. Data de referência não pode passar da validade -> senão ExpiredCoupon

    A validade vale até o fim do dia. Não altera o cupom.
    """
    normalized = normalize_code(code)
    coupon = None
    if normalized:
        coupon = db.query(Coupon).filter(
            Coupon.nome == normalized,
            Coupon.empresa_id == empresa_id,
            Coupon.ativo.is_(True),
        ).first()

    if coupon is None:
        logger.info(f"Cupom inválido: {normalized!r} (empresa {empresa_id})")
        raise InvalidCoupon(normalized)

    if as_of > coupon.validade:
        logger.info(f"Cupom expirado: {normalized} venceu em {coupon.validade}")
        raise ExpiredCoupon(normalized)

    return coupon


def to_applied(coupon: Coupon) -> AppliedCoupon:
    """Retrato do cupom para o carrinho/pedido."""
    return AppliedCoupon(id=coupon.id, codigo=coupon.nome, tipo=coupon.tipo, valor=coupon.valor)
