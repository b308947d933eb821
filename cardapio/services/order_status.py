"""
Política de transições de status de pedidos.

O próximo status depende do status atual, da forma de pagamento e de o
pagamento já ter sido recebido:

    pending -> confirmed -> preparing -> ready -> delivering
    delivering -> delivered            (pago, cartão ou PIX)
    delivering -> received -> delivered (dinheiro a cobrar na entrega)

Desconto em folha segue um ramo próprio de acerto posterior:

    delivering -> to_deduct -> paid  (+ ação "Finalizado": paid -> delivered)

`cancelled` é oferecido a partir de qualquer status não terminal.
`delivered` e `cancelled` são terminais.
"""

from datetime import datetime

from ..models import Order
from ..schemas import OrderStatus, PaymentMethod, PaymentStatus

# Sinônimo legado exibido em algumas telas
LEGACY_ALIASES = {"accepted": OrderStatus.CONFIRMED.value}

TERMINAL_STATUSES = frozenset({OrderStatus.DELIVERED.value, OrderStatus.CANCELLED.value})

_FORWARD = {
    OrderStatus.PENDING.value: OrderStatus.CONFIRMED.value,
    OrderStatus.CONFIRMED.value: OrderStatus.PREPARING.value,
    OrderStatus.PREPARING.value: OrderStatus.READY.value,
    OrderStatus.READY.value: OrderStatus.DELIVERING.value,
}

_PAYROLL_FORWARD = {
    OrderStatus.DELIVERING.value: OrderStatus.TO_DEDUCT.value,
    OrderStatus.TO_DEDUCT.value: OrderStatus.PAID.value,
}

_MARKS_PAYMENT_RECEIVED = frozenset({OrderStatus.RECEIVED.value, OrderStatus.PAID.value})


class TransitionError(ValueError):
    """Mudança de status não permitida."""


def _value(v) -> str | None:
    return v.value if hasattr(v, "value") else v


def normalize_status(status: str | OrderStatus | None) -> str | None:
    status = _value(status)
    return LEGACY_ALIASES.get(status, status)


def has_received_payment(order: Order) -> bool:
    return order.status_pagamento == PaymentStatus.RECEBIDO.value


def get_next_status_options(
    current_status: str | OrderStatus | None,
    payment_received: bool,
    payment_method: str | PaymentMethod | None,
) -> list[str]:
    """Status permitidos a partir do atual. Nunca levanta exceção."""
    current = normalize_status(current_status)
    method = _value(payment_method)

    if current in TERMINAL_STATUSES or current not in {s.value for s in OrderStatus}:
        return []

    options: list[str] = []
    if current in _FORWARD:
        options.append(_FORWARD[current])
    elif method == PaymentMethod.PAYROLL_DISCOUNT.value:
        if current in _PAYROLL_FORWARD:
            options.append(_PAYROLL_FORWARD[current])
    elif current == OrderStatus.DELIVERING.value:
        collect_at_door = method == PaymentMethod.CASH.value and not payment_received
        options.append(OrderStatus.RECEIVED.value if collect_at_door else OrderStatus.DELIVERED.value)
    elif current == OrderStatus.RECEIVED.value:
        options.append(OrderStatus.DELIVERED.value)

    options.append(OrderStatus.CANCELLED.value)
    return options


def can_finalize(order: Order) -> bool:
    """Ação "Finalizado" de pedidos em desconto em folha já pagos."""
    return (
        order.metodo_pagamento == PaymentMethod.PAYROLL_DISCOUNT.value
        and normalize_status(order.status) == OrderStatus.PAID.value
    )


def set_status(order: Order, new_status: str, now: datetime) -> None:
    """Grava o status mantendo delivered_at coerente."""
    previous = normalize_status(order.status)
    if new_status == OrderStatus.DELIVERED.value:
        if previous != OrderStatus.DELIVERED.value:
            order.delivered_at = now
    else:
        order.delivered_at = None
    order.status = new_status
    if new_status in _MARKS_PAYMENT_RECEIVED:
        order.status_pagamento = PaymentStatus.RECEBIDO.value


def apply_transition(
    order: Order,
    new_status: str | OrderStatus,
    now: datetime,
    reason: str | None = None,
    entregador_id: int | None = None,
) -> None:
    """
    Aplica uma mudança de status dentro da política.

    - `cancelled` exige motivo não vazio, que é salvo no pedido
    - `delivering` exige o entregador na mesma operação
    """
    target = normalize_status(new_status)
    options = get_next_status_options(order.status, has_received_payment(order), order.metodo_pagamento)
    if target not in options:
        raise TransitionError(
            f"Transição de '{order.status}' para '{target}' não permitida"
        )

    if target == OrderStatus.CANCELLED.value:
        if not reason or not reason.strip():
            raise TransitionError("Informe o motivo do cancelamento")
        order.motivo_cancelamento = reason.strip()

    if target == OrderStatus.DELIVERING.value:
        if entregador_id is None:
            raise TransitionError("Selecione um entregador para sair para entrega")
        order.entregador_id = entregador_id

    set_status(order, target, now)


def finalize_payroll_order(order: Order, now: datetime) -> None:
    if not can_finalize(order):
        raise TransitionError("Apenas pedidos em desconto em folha pagos podem ser finalizados")
    set_status(order, OrderStatus.DELIVERED.value, now)


def initial_order_state(payment_method: str | PaymentMethod, channel: str = "checkout") -> tuple[str, str]:
    """
    Status inicial e status de pagamento de um pedido novo.

    No PDV, desconto em folha já nasce entregue e a receber (aparece em
    "A descontar"); PIX e cartão são considerados recebidos no ato.
    """
    method = _value(payment_method)
    if channel == "pdv":
        if method == PaymentMethod.PAYROLL_DISCOUNT.value:
            return OrderStatus.DELIVERED.value, PaymentStatus.A_RECEBER.value
        if method in (PaymentMethod.PIX.value, PaymentMethod.CARD.value):
            return OrderStatus.PENDING.value, PaymentStatus.RECEBIDO.value
    return OrderStatus.PENDING.value, PaymentStatus.A_RECEBER.value


def courier_delivery_status(order: Order) -> str | None:
    """
    Status gravado quando o entregador confirma a entrega: `received` se o
    dinheiro ainda vai ser cobrado na porta, `delivered` se já foi pago ou
    é cartão/PIX, `to_deduct` para desconto em folha.
    """
    if normalize_status(order.status) != OrderStatus.DELIVERING.value:
        return None
    options = get_next_status_options(order.status, has_received_payment(order), order.metodo_pagamento)
    return next((o for o in options if o != OrderStatus.CANCELLED.value), None)
