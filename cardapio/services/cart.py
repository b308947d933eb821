"""
Estado do carrinho como função pura de ações.

O carrinho pertence à sessão do cliente; o servidor só o reconstrói para
cotar totais e fechar pedidos. Toda ação que altera itens remove o cupom
aplicado na mesma atualização.
"""

from dataclasses import dataclass, replace
from typing import Iterable, Union

from ..schemas import SelectedVariationGroup
from .pricing import apply_coupon, compute_cart_total, compute_item_subtotal


def cart_item_key(menu_item_id: int, selected_groups: Iterable[SelectedVariationGroup] = ()) -> str:
    """
    Chave de agrupamento de uma linha do carrinho.

    Independe da ordem dos grupos e das variações: mesmo item com as mesmas
    escolhas gera a mesma chave.
    """
    per_group: dict[int, dict[int, int]] = {}
    for group in selected_groups or ():
        quantities = per_group.setdefault(group.group_id, {})
        for v in group.variations:
            if v.quantity > 0:
                quantities[v.variation_id] = quantities.get(v.variation_id, 0) + v.quantity

    parts = []
    for group_id, quantities in per_group.items():
        if not quantities:
            continue
        encoded = ".".join(f"{vid}-{qty}" for vid, qty in sorted(quantities.items()))
        parts.append(f"{group_id}:{encoded}")

    if not parts:
        return str(menu_item_id)
    return f"{menu_item_id}_" + "_".join(sorted(parts))


@dataclass(frozen=True)
class CartItem:
    """Linha do carrinho: retrato do item + quantidade + escolhas."""
    menu_item_id: int
    nome: str
    preco: float
    preco_a_partir_de: bool = False
    quantidade: int = 1
    variacoes: tuple[SelectedVariationGroup, ...] = ()
    observacoes: str | None = None

    @property
    def key(self) -> str:
        return cart_item_key(self.menu_item_id, self.variacoes)

    @property
    def subtotal(self) -> float:
        return compute_item_subtotal(self, self.quantidade, self.variacoes)


@dataclass(frozen=True)
class AppliedCoupon:
    """Retrato do cupom aplicado ao carrinho."""
    id: int
    codigo: str
    tipo: str
    valor: float


@dataclass(frozen=True)
class CartState:
    items: tuple[CartItem, ...] = ()
    applied_coupon: AppliedCoupon | None = None


@dataclass(frozen=True)
class CartTotals:
    subtotal: float
    item_count: int
    discount: float
    final_total: float


# === Ações ===


@dataclass(frozen=True)
class AddItem:
    item: CartItem


@dataclass(frozen=True)
class RemoveItem:
    key: str


@dataclass(frozen=True)
class IncreaseQuantity:
    key: str


@dataclass(frozen=True)
class DecreaseQuantity:
    key: str


@dataclass(frozen=True)
class ChangeQuantity:
    key: str
    quantity: int


@dataclass(frozen=True)
class ClearCart:
    pass


@dataclass(frozen=True)
class ApplyCoupon:
    coupon: AppliedCoupon


@dataclass(frozen=True)
class RemoveCoupon:
    pass


CartAction = Union[
    AddItem, RemoveItem, IncreaseQuantity, DecreaseQuantity,
    ChangeQuantity, ClearCart, ApplyCoupon, RemoveCoupon,
]


def _set_quantity(items: tuple[CartItem, ...], key: str, quantity: int) -> tuple[CartItem, ...]:
    if quantity <= 0:
        return tuple(i for i in items if i.key != key)
    return tuple(replace(i, quantidade=quantity) if i.key == key else i for i in items)


def _quantity_of(items: tuple[CartItem, ...], key: str) -> int:
    return next((i.quantidade for i in items if i.key == key), 0)


def reduce_cart(state: CartState, action: CartAction) -> CartState:
    """Aplica uma ação e devolve o novo estado (não altera o anterior)."""
    if isinstance(action, AddItem):
        key = action.item.key
        current = _quantity_of(state.items, key)
        if current:
            items = _set_quantity(state.items, key, current + action.item.quantidade)
        else:
            items = state.items + (action.item,)
        return CartState(items=items, applied_coupon=None)

    if isinstance(action, RemoveItem):
        return CartState(items=_set_quantity(state.items, action.key, 0), applied_coupon=None)

    if isinstance(action, IncreaseQuantity):
        current = _quantity_of(state.items, action.key)
        items = _set_quantity(state.items, action.key, current + 1) if current else state.items
        return CartState(items=items, applied_coupon=None)

    if isinstance(action, DecreaseQuantity):
        current = _quantity_of(state.items, action.key)
        items = _set_quantity(state.items, action.key, current - 1) if current else state.items
        return CartState(items=items, applied_coupon=None)

    if isinstance(action, ChangeQuantity):
        if not _quantity_of(state.items, action.key):
            return CartState(items=state.items, applied_coupon=None)
        return CartState(items=_set_quantity(state.items, action.key, action.quantity), applied_coupon=None)

    if isinstance(action, ClearCart):
        return CartState()

    if isinstance(action, ApplyCoupon):
        return replace(state, applied_coupon=action.coupon)

    if isinstance(action, RemoveCoupon):
        return replace(state, applied_coupon=None)

    raise TypeError(f"Ação de carrinho desconhecida: {action!r}")


def cart_totals(state: CartState) -> CartTotals:
    """Totais derivados do estado, recalculados a cada chamada."""
    subtotal = compute_cart_total(state.items)
    result = apply_coupon(subtotal, state.applied_coupon)
    return CartTotals(
        subtotal=subtotal,
        item_count=sum(i.quantidade for i in state.items),
        discount=result.discount,
        final_total=result.final_total,
    )


def build_cart(items: Iterable[CartItem], coupon: AppliedCoupon | None = None) -> CartState:
    """Monta um carrinho adicionando os itens em ordem (linhas iguais se juntam)."""
    state = CartState()
    for item in items:
        state = reduce_cart(state, AddItem(item))
    if coupon is not None:
        state = reduce_cart(state, ApplyCoupon(coupon))
    return state
