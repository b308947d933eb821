"""
Criação e consulta de pedidos.

O servidor nunca confia nos preços enviados pelo cliente: cada linha é
remontada a partir do cardápio, as variações são validadas contra os grupos
do item e o cupom é validado de novo antes de gravar. O pedido guarda um
retrato dos valores; mudanças posteriores no cardápio ou no cupom não o
alteram.
"""

import logging
from dataclasses import dataclass
from datetime import UTC, date, datetime, time, timedelta

from sqlalchemy.orm import Session, selectinload
from sqlalchemy.orm.exc import StaleDataError

from ..config import settings
from ..models import Coupon, Empresa, MenuItem, Order, OrderItem, as_utc
from ..schemas import CartLineIn, OrderStatus, PaymentMethod, PaymentStatus
from .cart import CartItem, CartState, CartTotals, build_cart, cart_totals
from .coupons import CouponError, to_applied, validate_coupon
from .order_status import initial_order_state, set_status
from .variations import get_variations, normalize_selection, variation_price_map

logger = logging.getLogger(__name__)

PDV_ADDRESS_PLACEHOLDER = {
    "numero": "S/N",
    "bairro": "Não informado",
    "cidade": "Não informado",
    "estado": "NI",
}


class OrderError(ValueError):
    """Pedido recusado por item inexistente ou indisponível."""


class StaleOrderError(Exception):
    """O pedido mudou desde a versão que o cliente leu."""


@dataclass
class CartQuote:
    state: CartState
    totals: CartTotals
    coupon: Coupon | None = None
    coupon_error: str | None = None


def get_empresa_by_slug(db: Session, slug: str) -> Empresa | None:
    return db.query(Empresa).filter(Empresa.slug == slug.strip().lower()).first()


def build_cart_items(db: Session, empresa_id: int, lines: list[CartLineIn]) -> list[CartItem]:
    """
    Converte as linhas recebidas em itens de carrinho com preços do cardápio.

    Levanta OrderError para item de outra empresa, inexistente ou indisponível
    e VariationSelectionError para escolhas fora das regras dos grupos.
    """
    ids = {line.menu_item_id for line in lines}
    menu_items = {
        m.id: m
        for m in db.query(MenuItem).filter(MenuItem.empresa_id == empresa_id, MenuItem.id.in_(ids)).all()
    }
    variations_by_id = variation_price_map(get_variations(db, empresa_id))

    items = []
    for line in lines:
        menu_item = menu_items.get(line.menu_item_id)
        if menu_item is None:
            raise OrderError(f"Item {line.menu_item_id} não encontrado no cardápio")
        if not menu_item.disponivel:
            raise OrderError(f"Item indisponível: {menu_item.nome}")

        selection = normalize_selection(menu_item, line.selected_variations, variations_by_id)
        items.append(
            CartItem(
                menu_item_id=menu_item.id,
                nome=menu_item.nome,
                preco=menu_item.preco or 0.0,
                preco_a_partir_de=bool(menu_item.preco_a_partir_de),
                quantidade=line.quantity,
                variacoes=tuple(selection),
                observacoes=line.observacoes,
            )
        )
    return items


def quote_cart(
    db: Session,
    empresa_id: int,
    lines: list[CartLineIn],
    coupon_code: str | None,
    as_of: date,
) -> CartQuote:
    """Totais de um carrinho. Cupom recusado não impede a cotação."""
    coupon = None
    coupon_error = None
    if coupon_code:
        try:
            coupon = validate_coupon(db, coupon_code, empresa_id, as_of)
        except CouponError as e:
            coupon_error = str(e)

    state = build_cart(
        build_cart_items(db, empresa_id, lines),
        to_applied(coupon) if coupon else None,
    )
    return CartQuote(state=state, totals=cart_totals(state), coupon=coupon, coupon_error=coupon_error)


def create_order(
    db: Session,
    empresa_id: int,
    *,
    cliente_nome: str,
    cliente_telefone: str,
    endereco: dict,
    lines: list[CartLineIn],
    metodo_pagamento: PaymentMethod,
    now: datetime,
    observacoes: str | None = None,
    cupom: str | None = None,
    taxa_entrega: float = 0.0,
    channel: str = "checkout",
) -> Order:
    """
    Grava um pedido novo.

    Cupom informado e recusado impede o pedido (CouponError). Status inicial
    e status de pagamento dependem da forma de pagamento e do canal.
    """
    coupon = validate_coupon(db, cupom, empresa_id, settings.today(now)) if cupom else None
    state = build_cart(build_cart_items(db, empresa_id, lines), to_applied(coupon) if coupon else None)
    totals = cart_totals(state)

    status, payment_status = initial_order_state(metodo_pagamento, channel)

    order = Order(
        empresa_id=empresa_id,
        cliente_nome=cliente_nome.strip(),
        cliente_telefone=cliente_telefone.strip(),
        endereco_rua=endereco["rua"],
        endereco_numero=endereco["numero"],
        endereco_complemento=endereco.get("complemento"),
        endereco_bairro=endereco["bairro"],
        endereco_cidade=endereco["cidade"],
        endereco_estado=endereco["estado"],
        endereco_cep=endereco.get("cep"),
        metodo_pagamento=PaymentMethod(metodo_pagamento).value,
        status=OrderStatus.PENDING.value,
        status_pagamento=payment_status,
        subtotal=totals.subtotal,
        taxa_entrega=taxa_entrega,
        desconto=totals.discount,
        total=totals.final_total + taxa_entrega,
        cupom_codigo=coupon.nome if coupon else None,
        cupom_tipo=coupon.tipo if coupon else None,
        cupom_valor=coupon.valor if coupon else None,
        observacoes=observacoes,
        created_at=now,
        updated_at=now,
    )
    set_status(order, status, now)

    for item in state.items:
        order.itens.append(
            OrderItem(
                menu_item_id=item.menu_item_id,
                nome=item.nome,
                preco=item.preco,
                quantidade=item.quantidade,
                preco_a_partir_de=item.preco_a_partir_de,
                observacoes=item.observacoes,
                variacoes=[g.model_dump() for g in item.variacoes],
            )
        )

    db.add(order)
    db.commit()
    db.refresh(order)

    logger.info(
        f"Pedido {order.id} criado ({channel}) empresa={empresa_id} "
        f"total={order.total:.2f} status={order.status}/{order.status_pagamento}"
    )
    return order


def pdv_address(endereco: str | None) -> dict:
    """Endereço estruturado a partir do texto livre do PDV."""
    return {"rua": (endereco or "").strip() or "Não informado", **PDV_ADDRESS_PLACEHOLDER}


def get_order(db: Session, order_id: int, empresa_id: int) -> Order | None:
    return (
        db.query(Order)
        .options(selectinload(Order.itens))
        .filter(Order.id == order_id, Order.empresa_id == empresa_id)
        .first()
    )


def day_bounds(day: date) -> tuple[datetime, datetime]:
    """Início e fim (exclusivo) de um dia do fuso do negócio, em UTC."""
    start = datetime.combine(day, time.min, tzinfo=settings.tz)
    end = datetime.combine(day + timedelta(days=1), time.min, tzinfo=settings.tz)
    return start.astimezone(UTC), end.astimezone(UTC)


def list_orders(
    db: Session,
    empresa_id: int,
    *,
    start: date | None = None,
    end: date | None = None,
    status: str | None = None,
    metodo_pagamento: str | None = None,
    status_pagamento: str | None = None,
    limit: int = 100,
    offset: int = 0,
) -> tuple[list[Order], int]:
    """
    Pedidos da empresa, mais recentes primeiro.

    O filtro de status `to_deduct` ("A descontar") lista pedidos em desconto
    em folha ainda a receber, qualquer que seja o status gravado.
    """
    query = db.query(Order).filter(Order.empresa_id == empresa_id)

    if start:
        query = query.filter(Order.created_at >= day_bounds(start)[0])
    if end:
        query = query.filter(Order.created_at < day_bounds(end)[1])

    if status == OrderStatus.TO_DEDUCT.value:
        query = query.filter(
            Order.metodo_pagamento == PaymentMethod.PAYROLL_DISCOUNT.value,
            Order.status_pagamento == PaymentStatus.A_RECEBER.value,
        )
    elif status:
        query = query.filter(Order.status == status)

    if metodo_pagamento:
        query = query.filter(Order.metodo_pagamento == metodo_pagamento)
    if status_pagamento:
        query = query.filter(Order.status_pagamento == status_pagamento)

    total = query.count()
    orders = (
        query.options(selectinload(Order.itens))
        .order_by(Order.created_at.desc(), Order.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    return orders, total


def orders_by_phone(db: Session, empresa_id: int, telefone: str) -> list[Order]:
    return (
        db.query(Order)
        .options(selectinload(Order.itens))
        .filter(Order.empresa_id == empresa_id, Order.cliente_telefone == telefone.strip())
        .order_by(Order.created_at.desc())
        .all()
    )


def courier_queue(db: Session, empresa_id: int, today: date, entregador_id: int | None = None) -> list[Order]:
    """Pedidos do dia saindo para entrega; filtra pelo entregador quando informado."""
    start, end = day_bounds(today)
    query = db.query(Order).options(selectinload(Order.itens)).filter(
        Order.empresa_id == empresa_id,
        Order.status == OrderStatus.DELIVERING.value,
        Order.created_at >= start,
        Order.created_at < end,
    )
    if entregador_id is not None:
        query = query.filter(Order.entregador_id == entregador_id)
    return query.order_by(Order.created_at).all()


def check_expected_updated_at(order: Order, expected: datetime | None) -> None:
    """Levanta StaleOrderError se o pedido mudou desde `expected`."""
    if expected is None:
        return
    if as_utc(order.updated_at) != as_utc(expected):
        raise StaleOrderError(
            f"Pedido {order.id} foi alterado em {as_utc(order.updated_at).isoformat()}"
        )


def commit_order(db: Session, order: Order) -> None:
    """
    Grava a alteração do pedido.

    A coluna `versao` entra no WHERE do UPDATE: se outra gravação confirmou
    antes, nenhuma linha casa e a alteração é descartada.

    Raises:
        StaleOrderError: o pedido foi alterado por outra gravação
    """
    order_id = order.id
    try:
        db.commit()
    except StaleDataError:
        db.rollback()
        raise StaleOrderError(f"Pedido {order_id} foi alterado por outra gravação")
    db.refresh(order)
