"""Models SQLAlchemy do Cardápio Delivery."""

from datetime import UTC, datetime

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Table,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from .database import Base


def utc_now() -> datetime:
    """Retorna datetime atual em UTC."""
    return datetime.now(UTC)


def as_utc(value: datetime | None) -> datetime | None:
    """Normaliza datetimes lidos do banco (SQLite devolve sem timezone)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


# =============================================================================
# EMPRESAS E USUÁRIOS
# =============================================================================

class Empresa(Base):
    """Empresa (tenant). Todo catálogo, pedido e usuário pertence a uma."""

    __tablename__ = "empresas"

    id = Column(Integer, primary_key=True, index=True)
    nome = Column(String(255), nullable=False)
    telefone = Column(String(20), nullable=True)
    slug = Column(String(120), unique=True, nullable=False, index=True)
    admin_id = Column(Integer, nullable=True)  # sem FK: usuário e empresa são criados juntos
    created_at = Column(DateTime(timezone=True), default=utc_now)

    usuarios = relationship("User", back_populates="empresa")


class User(Base):
    """Usuário do sistema (admin, entregador, pdv ou cliente)."""

    __tablename__ = "usuarios"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    nome = Column(String(255), nullable=False)
    telefone = Column(String(20), nullable=True)
    role = Column(String(20), nullable=False, default="cliente", index=True)  # admin|entregador|pdv|cliente
    empresa_id = Column(Integer, ForeignKey("empresas.id", ondelete="SET NULL"), nullable=True, index=True)

    # Dados do entregador
    placa = Column(String(10), nullable=True)
    cpf = Column(String(14), nullable=True)
    status_entregador = Column(String(10), nullable=True)  # ativo|inativo

    # Status
    is_active = Column(Boolean, default=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), default=utc_now)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)
    last_login = Column(DateTime(timezone=True), nullable=True)

    # Relationships
    empresa = relationship("Empresa", back_populates="usuarios")
    sessions = relationship("UserSession", back_populates="user", cascade="all, delete-orphan")

    __table_args__ = (
        Index("ix_usuarios_empresa_role", "empresa_id", "role"),
    )


class UserSession(Base):
    """Modelo para sessões de usuário (tokens de refresh)."""

    __tablename__ = "user_sessions"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("usuarios.id", ondelete="CASCADE"), nullable=False, index=True)
    refresh_token_hash = Column(String(255), nullable=False, unique=True)
    device_info = Column(String(255), nullable=True)
    ip_address = Column(String(45), nullable=True)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime(timezone=True), default=utc_now)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    last_used_at = Column(DateTime(timezone=True), default=utc_now)

    user = relationship("User", back_populates="sessions")

    __table_args__ = (
        Index("ix_sessions_user_active", "user_id", "is_active"),
    )


class PasswordResetToken(Base):
    """Modelo para tokens de recuperação de senha."""

    __tablename__ = "password_reset_tokens"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("usuarios.id", ondelete="CASCADE"), nullable=False, index=True)
    token_hash = Column(String(255), nullable=False, unique=True)
    is_used = Column(Boolean, default=False)
    created_at = Column(DateTime(timezone=True), default=utc_now)
    expires_at = Column(DateTime(timezone=True), nullable=False)


# =============================================================================
# CATÁLOGO
# =============================================================================

# Tabela de associação Variação <-> Categoria (N:N)
variacao_categorias = Table(
    "variacao_categorias",
    Base.metadata,
    Column("variacao_id", Integer, ForeignKey("variacoes.id", ondelete="CASCADE"), primary_key=True),
    Column("categoria_id", Integer, ForeignKey("categorias.id", ondelete="CASCADE"), primary_key=True),
)


class Category(Base):
    """Categoria do cardápio."""

    __tablename__ = "categorias"

    id = Column(Integer, primary_key=True, index=True)
    empresa_id = Column(Integer, ForeignKey("empresas.id", ondelete="CASCADE"), nullable=False, index=True)
    nome = Column(String(120), nullable=False)
    ordem = Column(Integer, nullable=True)

    itens = relationship("MenuItem", back_populates="categoria")


class Variation(Base):
    """Variação/adicional que pode ser escolhida para um item."""

    __tablename__ = "variacoes"

    id = Column(Integer, primary_key=True, index=True)
    empresa_id = Column(Integer, ForeignKey("empresas.id", ondelete="CASCADE"), nullable=False, index=True)
    nome = Column(String(120), nullable=False)
    descricao = Column(String(255), nullable=True)
    preco_adicional = Column(Float, nullable=False, default=0.0)
    disponivel = Column(Boolean, default=True)

    categorias = relationship("Category", secondary=variacao_categorias)

    @property
    def categoria_ids(self) -> list[int]:
        return [c.id for c in self.categorias]


class GroupVariation(Base):
    """Variação dentro de um grupo, com posição de exibição."""

    __tablename__ = "grupo_variacoes"

    grupo_id = Column(Integer, ForeignKey("grupos_variacao.id", ondelete="CASCADE"), primary_key=True)
    variacao_id = Column(Integer, ForeignKey("variacoes.id", ondelete="CASCADE"), primary_key=True)
    posicao = Column(Integer, nullable=False, default=0)

    variacao = relationship("Variation")


class VariationGroup(Base):
    """Grupo de variações com limites mínimo/máximo de seleção."""

    __tablename__ = "grupos_variacao"

    id = Column(Integer, primary_key=True, index=True)
    empresa_id = Column(Integer, ForeignKey("empresas.id", ondelete="CASCADE"), nullable=False, index=True)
    nome = Column(String(120), nullable=False)
    min_obrigatorio = Column(Integer, nullable=False, default=0)
    max_permitido = Column(Integer, nullable=False, default=1)
    mensagem_personalizada = Column(String(255), nullable=True)  # aceita {min}, {max} e {count}

    membros = relationship(
        "GroupVariation",
        order_by="GroupVariation.posicao",
        cascade="all, delete-orphan",
    )

    @property
    def variacao_ids(self) -> list[int]:
        return [m.variacao_id for m in self.membros]


class ItemVariationGroup(Base):
    """Grupo de variação vinculado a um item do cardápio."""

    __tablename__ = "item_grupos_variacao"

    item_id = Column(Integer, ForeignKey("itens_cardapio.id", ondelete="CASCADE"), primary_key=True)
    grupo_id = Column(Integer, ForeignKey("grupos_variacao.id", ondelete="CASCADE"), primary_key=True)
    posicao = Column(Integer, nullable=False, default=0)

    grupo = relationship("VariationGroup")


class MenuItem(Base):
    """Item do cardápio."""

    __tablename__ = "itens_cardapio"

    id = Column(Integer, primary_key=True, index=True)
    empresa_id = Column(Integer, ForeignKey("empresas.id", ondelete="CASCADE"), nullable=False, index=True)
    categoria_id = Column(Integer, ForeignKey("categorias.id", ondelete="SET NULL"), nullable=True, index=True)
    nome = Column(String(255), nullable=False)
    descricao = Column(Text, nullable=True)
    preco = Column(Float, nullable=False, default=0.0)
    imagem = Column(String(500), nullable=True)
    popular = Column(Boolean, default=False)
    preco_a_partir_de = Column(Boolean, default=False)  # preço base não entra no total
    disponivel = Column(Boolean, default=True)
    created_at = Column(DateTime(timezone=True), default=utc_now)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)

    categoria = relationship("Category", back_populates="itens")
    vinculos_grupos = relationship(
        "ItemVariationGroup",
        order_by="ItemVariationGroup.posicao",
        cascade="all, delete-orphan",
    )

    @property
    def grupos(self) -> list[VariationGroup]:
        return [v.grupo for v in self.vinculos_grupos]


class Coupon(Base):
    """Cupom de desconto (percentual ou fixo) de uma empresa."""

    __tablename__ = "cupons"

    id = Column(Integer, primary_key=True, index=True)
    empresa_id = Column(Integer, ForeignKey("empresas.id", ondelete="CASCADE"), nullable=False, index=True)
    nome = Column(String(50), nullable=False)  # código, sempre em maiúsculas
    tipo = Column(String(20), nullable=False)  # percentual|fixo
    valor = Column(Float, nullable=False)
    validade = Column(Date, nullable=False)
    ativo = Column(Boolean, default=True)
    descricao = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utc_now)

    __table_args__ = (
        UniqueConstraint("empresa_id", "nome", name="uq_cupons_empresa_nome"),
    )


# =============================================================================
# PEDIDOS
# =============================================================================

class Order(Base):
    """Pedido. Guarda um retrato dos preços no momento da criação."""

    __tablename__ = "pedidos"

    id = Column(Integer, primary_key=True, index=True)
    empresa_id = Column(Integer, ForeignKey("empresas.id", ondelete="CASCADE"), nullable=False, index=True)

    # Cliente
    cliente_nome = Column(String(255), nullable=False)
    cliente_telefone = Column(String(20), nullable=False, index=True)

    # Endereço
    endereco_rua = Column(String(255), nullable=False)
    endereco_numero = Column(String(20), nullable=False)
    endereco_complemento = Column(String(120), nullable=True)
    endereco_bairro = Column(String(120), nullable=False)
    endereco_cidade = Column(String(120), nullable=False)
    endereco_estado = Column(String(2), nullable=False)
    endereco_cep = Column(String(9), nullable=True)

    # Status
    status = Column(String(20), nullable=False, default="pending", index=True)
    metodo_pagamento = Column(String(30), nullable=False)  # card|cash|pix|payroll_discount
    status_pagamento = Column(String(20), nullable=False, default="a_receber")  # a_receber|recebido
    motivo_cancelamento = Column(Text, nullable=True)

    # Valores
    subtotal = Column(Float, nullable=False, default=0.0)
    taxa_entrega = Column(Float, nullable=False, default=0.0)
    desconto = Column(Float, nullable=False, default=0.0)
    total = Column(Float, nullable=False, default=0.0)

    # Cupom (retrato)
    cupom_codigo = Column(String(50), nullable=True)
    cupom_tipo = Column(String(20), nullable=True)
    cupom_valor = Column(Float, nullable=True)

    entregador_id = Column(Integer, ForeignKey("usuarios.id", ondelete="SET NULL"), nullable=True, index=True)
    observacoes = Column(Text, nullable=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), default=utc_now, index=True)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)
    delivered_at = Column(DateTime(timezone=True), nullable=True)
    # Incrementada a cada UPDATE; gravação concorrente vira StaleDataError
    versao = Column(Integer, nullable=False, default=1)

    itens = relationship("OrderItem", back_populates="pedido", cascade="all, delete-orphan")
    entregador = relationship("User")

    __table_args__ = (
        Index("ix_pedidos_empresa_created", "empresa_id", "created_at"),
        Index("ix_pedidos_empresa_status", "empresa_id", "status"),
    )
    __mapper_args__ = {"version_id_col": versao}

    @property
    def endereco(self) -> dict:
        return {
            "rua": self.endereco_rua,
            "numero": self.endereco_numero,
            "complemento": self.endereco_complemento,
            "bairro": self.endereco_bairro,
            "cidade": self.endereco_cidade,
            "estado": self.endereco_estado,
            "cep": self.endereco_cep,
        }


class OrderItem(Base):
    """Item de um pedido, com retrato das variações escolhidas."""

    __tablename__ = "itens_pedido"

    id = Column(Integer, primary_key=True, index=True)
    pedido_id = Column(Integer, ForeignKey("pedidos.id", ondelete="CASCADE"), nullable=False, index=True)
    menu_item_id = Column(Integer, nullable=True)  # item pode ser removido do cardápio depois
    nome = Column(String(255), nullable=False)
    preco = Column(Float, nullable=False, default=0.0)
    quantidade = Column(Integer, nullable=False, default=1)
    preco_a_partir_de = Column(Boolean, default=False)
    observacoes = Column(String(255), nullable=True)
    variacoes = Column(JSON, nullable=False, default=list)

    pedido = relationship("Order", back_populates="itens")
