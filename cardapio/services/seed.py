"""Cardápio de exemplo para empresas novas."""

import logging

from sqlalchemy.orm import Session

from ..models import (
    Category,
    GroupVariation,
    ItemVariationGroup,
    MenuItem,
    Variation,
    VariationGroup,
)

logger = logging.getLogger(__name__)

SAMPLE_CATEGORIES = [
    {"key": "lanches", "nome": "Lanches", "ordem": 1},
]

SAMPLE_VARIATIONS = [
    {"key": "bacon", "nome": "Bacon Crocante", "preco_adicional": 3.50},
    {"key": "queijo_extra", "nome": "Queijo Extra", "preco_adicional": 2.00},
]

SAMPLE_GROUPS = [
    {
        "key": "adicionais",
        "nome": "Adicionais",
        "min_obrigatorio": 0,
        "max_permitido": 2,
        "mensagem_personalizada": "Escolha seus adicionais ({count}/{max} selecionados)",
        "variacoes": ["bacon", "queijo_extra"],
    },
]

SAMPLE_ITEMS = [
    {
        "nome": "Hamburguer Clássico",
        "descricao": "Delicioso hambúrguer de carne com alface, tomate e maionese especial.",
        "preco": 25.00,
        "imagem": "/images/hamburguer.jpg",
        "categoria": "lanches",
        "popular": True,
        "grupos": ["adicionais"],
    },
]


def _clear_catalog(db: Session, empresa_id: int) -> None:
    for model in (MenuItem, VariationGroup, Variation, Category):
        for row in db.query(model).filter(model.empresa_id == empresa_id).all():
            db.delete(row)
        db.commit()


def seed_catalog(db: Session, empresa_id: int) -> dict[str, int]:
    """
    Substitui o catálogo da empresa pelo cardápio de exemplo.

    Cada etapa é gravada separadamente; uma falha no meio deixa o que já foi
    gravado.
    """
    logger.info(f"Seed do cardápio para empresa {empresa_id}")
    _clear_catalog(db, empresa_id)

    categories: dict[str, Category] = {}
    for data in SAMPLE_CATEGORIES:
        categories[data["key"]] = Category(empresa_id=empresa_id, nome=data["nome"], ordem=data["ordem"])
        db.add(categories[data["key"]])
    db.commit()

    variations: dict[str, Variation] = {}
    for data in SAMPLE_VARIATIONS:
        variations[data["key"]] = Variation(
            empresa_id=empresa_id,
            nome=data["nome"],
            preco_adicional=data["preco_adicional"],
            disponivel=True,
        )
        db.add(variations[data["key"]])
    db.commit()

    groups: dict[str, VariationGroup] = {}
    for data in SAMPLE_GROUPS:
        group = VariationGroup(
            empresa_id=empresa_id,
            nome=data["nome"],
            min_obrigatorio=data["min_obrigatorio"],
            max_permitido=data["max_permitido"],
            mensagem_personalizada=data["mensagem_personalizada"],
        )
        group.membros = [
            GroupVariation(variacao_id=variations[key].id, posicao=pos)
            for pos, key in enumerate(data["variacoes"])
        ]
        groups[data["key"]] = group
        db.add(group)
    db.commit()

    items = []
    for data in SAMPLE_ITEMS:
        item = MenuItem(
            empresa_id=empresa_id,
            categoria_id=categories[data["categoria"]].id,
            nome=data["nome"],
            descricao=data["descricao"],
            preco=data["preco"],
            imagem=data["imagem"],
            popular=data["popular"],
            disponivel=True,
        )
        item.vinculos_grupos = [
            ItemVariationGroup(grupo_id=groups[key].id, posicao=pos)
            for pos, key in enumerate(data["grupos"])
        ]
        items.append(item)
        db.add(item)
    db.commit()

    counts = {
        "categorias": len(categories),
        "variacoes": len(variations),
        "grupos": len(groups),
        "itens": len(items),
    }
    logger.info(f"Seed concluído para empresa {empresa_id}: {counts}")
    return counts
