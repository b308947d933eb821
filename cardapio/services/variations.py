"""Catálogo de variações e validação das escolhas do cliente."""

import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..models import MenuItem, Variation, VariationGroup
from ..schemas import SelectedVariation, SelectedVariationGroup

logger = logging.getLogger(__name__)


class VariationSelectionError(ValueError):
    """Seleção de variações fora das regras do item."""


def get_variations(db: Session, empresa_id: int, only_available: bool = False) -> list[Variation]:
    """
    Lista as variações de uma empresa.

    Falhas de consulta não interrompem o fluxo: registra e retorna lista vazia.
    """
    try:
        query = db.query(Variation).filter(Variation.empresa_id == empresa_id)
        if only_available:
            query = query.filter(Variation.disponivel.is_(True))
        return query.order_by(Variation.nome).all()
    except SQLAlchemyError as e:
        logger.warning(f"Falha ao carregar variações da empresa {empresa_id}: {e}")
        return []


def variation_price_map(variations: list[Variation]) -> dict[int, Variation]:
    return {v.id: v for v in variations}


def group_message(group: VariationGroup, count: int) -> str:
    """Mensagem de orientação do grupo (personalizada ou padrão)."""
    min_ = group.min_obrigatorio
    max_ = group.max_permitido

    if group.mensagem_personalizada:
        return (
            group.mensagem_personalizada
            .replace("{min}", str(min_))
            .replace("{max}", str(max_))
            .replace("{count}", str(count))
        )

    nome = group.nome.lower()
    if min_ == max_:
        return f"Selecione exatamente {min_} unidades de {nome} ({count}/{min_} selecionadas)"
    if min_ > 0:
        return f"Selecione de {min_} a {max_} unidades de {nome} ({count}/{max_} selecionadas)"
    return f"Selecione até {max_} unidades de {nome} (opcional) ({count}/{max_} selecionadas)"


def normalize_selection(
    item: MenuItem,
    selected_groups: list[SelectedVariationGroup],
    variations_by_id: dict[int, Variation],
) -> list[SelectedVariationGroup]:
    """
    Valida as escolhas contra os grupos do item e devolve a seleção
    enriquecida com nome e preço do catálogo.

    - Grupos e variações que não pertencem ao item são rejeitados
    - Cada grupo do item deve respeitar min <= soma das quantidades <= max
    - Variações com quantidade zero e grupos vazios são descartados
    """
    groups_by_id = {g.id: g for g in item.grupos}
    chosen: dict[int, dict[int, int]] = {}

    for sel in selected_groups:
        group = groups_by_id.get(sel.group_id)
        if group is None:
            raise VariationSelectionError(
                f"Grupo de variação {sel.group_id} não pertence ao item {item.nome}"
            )
        allowed = set(group.variacao_ids)
        quantities = chosen.setdefault(group.id, {})
        for v in sel.variations:
            if v.quantity <= 0:
                continue
            if v.variation_id not in allowed:
                raise VariationSelectionError(
                    f"Variação {v.variation_id} não pertence ao grupo {group.nome}"
                )
            variation = variations_by_id.get(v.variation_id)
            if variation is None or not variation.disponivel:
                raise VariationSelectionError(f"Variação {v.variation_id} indisponível")
            quantities[v.variation_id] = quantities.get(v.variation_id, 0) + v.quantity

    normalized: list[SelectedVariationGroup] = []
    for group in item.grupos:
        quantities = chosen.get(group.id, {})
        count = sum(quantities.values())
        if not group.min_obrigatorio <= count <= group.max_permitido:
            raise VariationSelectionError(group_message(group, count))
        if not quantities:
            continue
        normalized.append(
            SelectedVariationGroup(
                group_id=group.id,
                group_name=group.nome,
                variations=[
                    SelectedVariation(
                        variation_id=vid,
                        quantity=qty,
                        name=variations_by_id[vid].nome,
                        additional_price=variations_by_id[vid].preco_adicional or 0.0,
                    )
                    for vid, qty in quantities.items()
                ],
            )
        )
    return normalized
