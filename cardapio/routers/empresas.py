"""Router público: dados da empresa e cardápio."""

import logging

from fastapi import APIRouter, HTTPException, Request
from slowapi import Limiter
from slowapi.util import get_remote_address
from sqlalchemy.orm import selectinload

from ..database import DbSession
from ..models import Category, Empresa, ItemVariationGroup, MenuItem, VariationGroup
from ..schemas import EmpresaOut, MenuCategoryOut, MenuItemOut, MenuOut, VariationOut
from ..services.orders import get_empresa_by_slug
from ..services.variations import get_variations

logger = logging.getLogger(__name__)

router = APIRouter()
limiter = Limiter(key_func=get_remote_address)


def empresa_or_404(db: DbSession, slug: str) -> Empresa:
    empresa = get_empresa_by_slug(db, slug)
    if not empresa:
        raise HTTPException(status_code=404, detail="Empresa não encontrada")
    return empresa


@router.get("/{slug}", response_model=EmpresaOut)
@limiter.limit("60/minute")
def get_empresa(request: Request, slug: str, db: DbSession):
    """Dados públicos da empresa."""
    return empresa_or_404(db, slug)


@router.get("/{slug}/cardapio", response_model=MenuOut)
@limiter.limit("60/minute")
def get_cardapio(request: Request, slug: str, db: DbSession):
    """
    Cardápio público: categorias em ordem com os itens disponíveis, os
    grupos de variação de cada item e as variações disponíveis.
    """
    empresa = empresa_or_404(db, slug)

    categorias = (
        db.query(Category)
        .filter(Category.empresa_id == empresa.id)
        .order_by(Category.ordem.is_(None), Category.ordem, Category.id)
        .all()
    )
    itens = (
        db.query(MenuItem)
        .options(
            selectinload(MenuItem.vinculos_grupos)
            .selectinload(ItemVariationGroup.grupo)
            .selectinload(VariationGroup.membros)
        )
        .filter(MenuItem.empresa_id == empresa.id, MenuItem.disponivel.is_(True))
        .order_by(MenuItem.popular.desc(), MenuItem.nome)
        .all()
    )

    por_categoria: dict[int, list[MenuItemOut]] = {}
    for item in itens:
        if item.categoria_id is None:
            continue
        por_categoria.setdefault(item.categoria_id, []).append(MenuItemOut.model_validate(item))

    return MenuOut(
        empresa=EmpresaOut.model_validate(empresa),
        categorias=[
            MenuCategoryOut(id=c.id, nome=c.nome, ordem=c.ordem, itens=por_categoria.get(c.id, []))
            for c in categorias
        ],
        variacoes=[VariationOut.model_validate(v) for v in get_variations(db, empresa.id, only_available=True)],
    )


@router.get("/{slug}/variacoes", response_model=list[VariationOut])
@limiter.limit("60/minute")
def list_variacoes(request: Request, slug: str, db: DbSession):
    """Variações disponíveis da empresa."""
    empresa = empresa_or_404(db, slug)
    return get_variations(db, empresa.id, only_available=True)
