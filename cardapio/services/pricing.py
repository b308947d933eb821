"""
Cálculo de preços de itens, carrinho e cupons.

Regras:
1. Item "a partir de" não soma o preço base; o valor vem das variações
2. Cada variação soma preco_adicional * quantidade da variação
3. O subtotal da linha multiplica tudo pela quantidade do item
4. Cupom percentual ou fixo, nunca maior que o subtotal

Os valores acumulam em precisão total; arredondar só na exibição.
"""

from dataclasses import dataclass
from typing import Iterable, Protocol

from ..schemas import CouponType, SelectedVariationGroup


class PricedItem(Protocol):
    preco: float
    preco_a_partir_de: bool


class DiscountRule(Protocol):
    tipo: str
    valor: float


@dataclass(frozen=True)
class CouponDiscount:
    """Resultado da aplicação de um cupom."""
    subtotal: float
    discount: float
    final_total: float


def base_price(item: PricedItem) -> float:
    """Preço base que entra no total (zero para itens 'a partir de')."""
    if item.preco_a_partir_de:
        return 0.0
    return item.preco or 0.0


def variations_unit_total(selected_groups: Iterable[SelectedVariationGroup]) -> float:
    """Soma dos adicionais de uma unidade do item."""
    total = 0.0
    for group in selected_groups or ():
        for variation in group.variations:
            if variation.quantity <= 0:
                continue
            total += (variation.additional_price or 0.0) * variation.quantity
    return total


def compute_item_subtotal(
    item: PricedItem,
    quantity: int,
    selected_groups: Iterable[SelectedVariationGroup] = (),
) -> float:
    """(preço base + adicionais) * quantidade."""
    return (base_price(item) + variations_unit_total(selected_groups)) * quantity


def compute_cart_total(items: Iterable) -> float:
    """Soma dos subtotais das linhas (itens com preco, quantidade e variacoes)."""
    return sum(
        compute_item_subtotal(item, item.quantidade, item.variacoes)
        for item in items
    )


def apply_coupon(subtotal: float, coupon: DiscountRule | None) -> CouponDiscount:
    """Calcula o desconto de um cupom limitado ao subtotal."""
    if coupon is None:
        return CouponDiscount(subtotal=subtotal, discount=0.0, final_total=max(subtotal, 0.0))

    tipo = coupon.tipo.value if isinstance(coupon.tipo, CouponType) else coupon.tipo
    discount = 0.0
    if tipo == CouponType.PERCENTUAL.value:
        discount = subtotal * coupon.valor / 100
    elif tipo == CouponType.FIXO.value:
        discount = coupon.valor

    discount = max(min(discount, subtotal), 0.0)
    final_total = max(subtotal - discount, 0.0)
    return CouponDiscount(subtotal=subtotal, discount=discount, final_total=final_total)
