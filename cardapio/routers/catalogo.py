"""Router administrativo do catálogo: categorias, variações, grupos e itens."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from slowapi import Limiter
from slowapi.util import get_remote_address

from ..database import DbSession
from ..models import (
    Category,
    GroupVariation,
    ItemVariationGroup,
    MenuItem,
    User,
    Variation,
    VariationGroup,
)
from ..schemas import (
    CategoryCreate,
    CategoryOut,
    CategoryUpdate,
    MenuItemCreate,
    MenuItemOut,
    MenuItemUpdate,
    Role,
    VariationCreate,
    VariationGroupCreate,
    VariationGroupOut,
    VariationGroupUpdate,
    VariationOut,
    VariationUpdate,
)
from ..services.seed import seed_catalog
from ..services.variations import get_variations
from .auth import get_empresa_id, require_role

logger = logging.getLogger(__name__)

router = APIRouter()
limiter = Limiter(key_func=get_remote_address)

AdminUser = Depends(require_role(Role.ADMIN))


def _get_owned(db: DbSession, model, obj_id: int, empresa_id: int, detail: str):
    obj = db.get(model, obj_id)
    if not obj or obj.empresa_id != empresa_id:
        raise HTTPException(status_code=404, detail=detail)
    return obj


def _owned_ids(db: DbSession, model, ids: list[int], empresa_id: int, label: str) -> list:
    """Carrega os registros na ordem pedida; 400 se algum não for da empresa."""
    if not ids:
        return []
    rows = {r.id: r for r in db.query(model).filter(model.id.in_(ids), model.empresa_id == empresa_id).all()}
    missing = [i for i in ids if i not in rows]
    if missing:
        raise HTTPException(status_code=400, detail=f"{label} inválidos: {missing}")
    return [rows[i] for i in dict.fromkeys(ids)]


def _positioned(link, posicao: int):
    link.posicao = posicao
    return link


# === Categorias ===


@router.get("/categorias", response_model=list[CategoryOut])
def list_categorias(db: DbSession, user: User = AdminUser):
    empresa_id = get_empresa_id(user)
    return (
        db.query(Category)
        .filter(Category.empresa_id == empresa_id)
        .order_by(Category.ordem.is_(None), Category.ordem, Category.id)
        .all()
    )


@router.post("/categorias", response_model=CategoryOut, status_code=201)
@limiter.limit("30/minute")
def create_categoria(request: Request, payload: CategoryCreate, db: DbSession, user: User = AdminUser):
    """Cria uma categoria."""
    categoria = Category(empresa_id=get_empresa_id(user), nome=payload.nome.strip(), ordem=payload.ordem)
    db.add(categoria)
    db.commit()
    db.refresh(categoria)
    logger.info(f"Categoria criada: {categoria.nome} (empresa {categoria.empresa_id})")
    return categoria


@router.put("/categorias/{categoria_id}", response_model=CategoryOut)
@limiter.limit("30/minute")
def update_categoria(
    request: Request, categoria_id: int, payload: CategoryUpdate, db: DbSession, user: User = AdminUser
):
    categoria = _get_owned(db, Category, categoria_id, get_empresa_id(user), "Categoria não encontrada")
    for field, value in payload.model_dump(exclude_unset=True).items():
        setattr(categoria, field, value)
    db.commit()
    db.refresh(categoria)
    return categoria


@router.delete("/categorias/{categoria_id}", status_code=204)
@limiter.limit("30/minute")
def delete_categoria(request: Request, categoria_id: int, db: DbSession, user: User = AdminUser):
    """Remove a categoria; os itens ficam sem categoria."""
    categoria = _get_owned(db, Category, categoria_id, get_empresa_id(user), "Categoria não encontrada")
    db.delete(categoria)
    db.commit()
    logger.info(f"Categoria {categoria_id} removida")


# === Variações ===


@router.get("/variacoes", response_model=list[VariationOut])
def list_variacoes(db: DbSession, user: User = AdminUser):
    return get_variations(db, get_empresa_id(user))


@router.post("/variacoes", response_model=VariationOut, status_code=201)
@limiter.limit("30/minute")
def create_variacao(request: Request, payload: VariationCreate, db: DbSession, user: User = AdminUser):
    """Cria uma variação (adicional)."""
    empresa_id = get_empresa_id(user)
    variacao = Variation(
        empresa_id=empresa_id,
        nome=payload.nome.strip(),
        descricao=payload.descricao,
        preco_adicional=payload.preco_adicional,
        disponivel=payload.disponivel,
        categorias=_owned_ids(db, Category, payload.categoria_ids, empresa_id, "Categorias"),
    )
    db.add(variacao)
    db.commit()
    db.refresh(variacao)
    logger.info(f"Variação criada: {variacao.nome} (+{variacao.preco_adicional:.2f})")
    return variacao


@router.put("/variacoes/{variacao_id}", response_model=VariationOut)
@limiter.limit("30/minute")
def update_variacao(
    request: Request, variacao_id: int, payload: VariationUpdate, db: DbSession, user: User = AdminUser
):
    empresa_id = get_empresa_id(user)
    variacao = _get_owned(db, Variation, variacao_id, empresa_id, "Variação não encontrada")
    data = payload.model_dump(exclude_unset=True)
    if "categoria_ids" in data:
        variacao.categorias = _owned_ids(db, Category, data.pop("categoria_ids") or [], empresa_id, "Categorias")
    for field, value in data.items():
        setattr(variacao, field, value)
    db.commit()
    db.refresh(variacao)
    return variacao


@router.delete("/variacoes/{variacao_id}", status_code=204)
@limiter.limit("30/minute")
def delete_variacao(request: Request, variacao_id: int, db: DbSession, user: User = AdminUser):
    """Remove a variação e a tira dos grupos em que aparece."""
    variacao = _get_owned(db, Variation, variacao_id, get_empresa_id(user), "Variação não encontrada")
    db.query(GroupVariation).filter(GroupVariation.variacao_id == variacao.id).delete()
    db.delete(variacao)
    db.commit()


# === Grupos de variação ===


@router.get("/grupos-variacao", response_model=list[VariationGroupOut])
def list_grupos(db: DbSession, user: User = AdminUser):
    return (
        db.query(VariationGroup)
        .filter(VariationGroup.empresa_id == get_empresa_id(user))
        .order_by(VariationGroup.nome)
        .all()
    )


@router.post("/grupos-variacao", response_model=VariationGroupOut, status_code=201)
@limiter.limit("30/minute")
def create_grupo(request: Request, payload: VariationGroupCreate, db: DbSession, user: User = AdminUser):
    """
    Cria um grupo de variações.

    - **min_obrigatorio** / **max_permitido**: limites da soma das quantidades
    - **variacao_ids**: variações na ordem de exibição
    - **mensagem_personalizada**: aceita {min}, {max} e {count}
    """
    empresa_id = get_empresa_id(user)
    variacoes = _owned_ids(db, Variation, payload.variacao_ids, empresa_id, "Variações")
    grupo = VariationGroup(
        empresa_id=empresa_id,
        nome=payload.nome.strip(),
        min_obrigatorio=payload.min_obrigatorio,
        max_permitido=payload.max_permitido,
        mensagem_personalizada=payload.mensagem_personalizada,
        membros=[GroupVariation(variacao_id=v.id, posicao=pos) for pos, v in enumerate(variacoes)],
    )
    db.add(grupo)
    db.commit()
    db.refresh(grupo)
    logger.info(f"Grupo de variação criado: {grupo.nome} ({grupo.min_obrigatorio}-{grupo.max_permitido})")
    return grupo


@router.put("/grupos-variacao/{grupo_id}", response_model=VariationGroupOut)
@limiter.limit("30/minute")
def update_grupo(
    request: Request, grupo_id: int, payload: VariationGroupUpdate, db: DbSession, user: User = AdminUser
):
    empresa_id = get_empresa_id(user)
    grupo = _get_owned(db, VariationGroup, grupo_id, empresa_id, "Grupo de variação não encontrado")
    data = payload.model_dump(exclude_unset=True)

    min_ = data.get("min_obrigatorio", grupo.min_obrigatorio)
    max_ = data.get("max_permitido", grupo.max_permitido)
    if min_ is None or max_ is None or min_ > max_:
        raise HTTPException(status_code=422, detail="min_obrigatorio não pode ser maior que max_permitido")

    if "variacao_ids" in data:
        variacoes = _owned_ids(db, Variation, data.pop("variacao_ids") or [], empresa_id, "Variações")
        atuais = {m.variacao_id: m for m in grupo.membros}
        grupo.membros = [
            _positioned(atuais.get(v.id) or GroupVariation(variacao_id=v.id), pos) for pos, v in enumerate(variacoes)
        ]
    for field, value in data.items():
        setattr(grupo, field, value)
    db.commit()
    db.refresh(grupo)
    return grupo


@router.delete("/grupos-variacao/{grupo_id}", status_code=204)
@limiter.limit("30/minute")
def delete_grupo(request: Request, grupo_id: int, db: DbSession, user: User = AdminUser):
    grupo = _get_owned(db, VariationGroup, grupo_id, get_empresa_id(user), "Grupo de variação não encontrado")
    db.query(ItemVariationGroup).filter(ItemVariationGroup.grupo_id == grupo.id).delete()
    db.delete(grupo)
    db.commit()


# === Itens do cardápio ===


@router.get("/itens", response_model=list[MenuItemOut])
def list_itens(db: DbSession, user: User = AdminUser):
    """Todos os itens, inclusive indisponíveis."""
    return (
        db.query(MenuItem)
        .filter(MenuItem.empresa_id == get_empresa_id(user))
        .order_by(MenuItem.nome)
        .all()
    )


@router.post("/itens", response_model=MenuItemOut, status_code=201)
@limiter.limit("30/minute")
def create_item(request: Request, payload: MenuItemCreate, db: DbSession, user: User = AdminUser):
    """
    Cria um item do cardápio.

    - **preco_a_partir_de**: o preço base não entra no total; o valor vem
      das variações escolhidas
    - **grupo_ids**: grupos de variação na ordem de exibição
    """
    empresa_id = get_empresa_id(user)
    if payload.categoria_id is not None:
        _get_owned(db, Category, payload.categoria_id, empresa_id, "Categoria não encontrada")
    grupos = _owned_ids(db, VariationGroup, payload.grupo_ids, empresa_id, "Grupos de variação")

    item = MenuItem(
        empresa_id=empresa_id,
        **payload.model_dump(exclude={"grupo_ids"}),
        vinculos_grupos=[ItemVariationGroup(grupo_id=g.id, posicao=pos) for pos, g in enumerate(grupos)],
    )
    db.add(item)
    db.commit()
    db.refresh(item)
    logger.info(f"Item criado: {item.nome} ({item.preco:.2f}) empresa {empresa_id}")
    return item


@router.put("/itens/{item_id}", response_model=MenuItemOut)
@limiter.limit("30/minute")
def update_item(request: Request, item_id: int, payload: MenuItemUpdate, db: DbSession, user: User = AdminUser):
    empresa_id = get_empresa_id(user)
    item = _get_owned(db, MenuItem, item_id, empresa_id, "Item não encontrado")
    data = payload.model_dump(exclude_unset=True)

    if data.get("categoria_id") is not None:
        _get_owned(db, Category, data["categoria_id"], empresa_id, "Categoria não encontrada")
    if "grupo_ids" in data:
        grupos = _owned_ids(db, VariationGroup, data.pop("grupo_ids") or [], empresa_id, "Grupos de variação")
        atuais = {v.grupo_id: v for v in item.vinculos_grupos}
        item.vinculos_grupos = [
            _positioned(atuais.get(g.id) or ItemVariationGroup(grupo_id=g.id), pos) for pos, g in enumerate(grupos)
        ]
    for field, value in data.items():
        setattr(item, field, value)
    db.commit()
    db.refresh(item)
    return item


@router.delete("/itens/{item_id}", status_code=204)
@limiter.limit("30/minute")
def delete_item(request: Request, item_id: int, db: DbSession, user: User = AdminUser):
    """Remove o item. Pedidos já feitos guardam o próprio retrato."""
    item = _get_owned(db, MenuItem, item_id, get_empresa_id(user), "Item não encontrado")
    db.delete(item)
    db.commit()
    logger.info(f"Item {item_id} removido")


# === Seed ===


@router.post("/seed")
@limiter.limit("3/minute")
def seed(request: Request, db: DbSession, user: User = AdminUser):
    """Substitui o catálogo da empresa pelo cardápio de exemplo."""
    return {"message": "Cardápio de exemplo criado", **seed_catalog(db, get_empresa_id(user))}
