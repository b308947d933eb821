"""Schemas Pydantic para validação e serialização."""

import re
from datetime import date, datetime
from enum import Enum
from typing import Annotated

from pydantic import (
    BaseModel,
    ConfigDict,
    EmailStr,
    Field,
    PlainSerializer,
    field_validator,
    model_validator,
)


# === Enums ===


class OrderStatus(str, Enum):
    """Status possíveis de um pedido."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    PREPARING = "preparing"
    READY = "ready"
    DELIVERING = "delivering"
    RECEIVED = "received"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    TO_DEDUCT = "to_deduct"
    PAID = "paid"


class PaymentMethod(str, Enum):
    """Formas de pagamento aceitas."""

    CARD = "card"
    CASH = "cash"
    PIX = "pix"
    PAYROLL_DISCOUNT = "payroll_discount"


class PaymentStatus(str, Enum):
    """Status de pagamento de um pedido."""

    A_RECEBER = "a_receber"
    RECEBIDO = "recebido"


class CouponType(str, Enum):
    """Tipos de cupom."""

    PERCENTUAL = "percentual"
    FIXO = "fixo"


class Role(str, Enum):
    """Papéis de usuário."""

    ADMIN = "admin"
    ENTREGADOR = "entregador"
    PDV = "pdv"
    CLIENTE = "cliente"


# Valores monetários acumulam em precisão total e só são arredondados na saída
Money = Annotated[float, PlainSerializer(lambda v: round(v, 2), return_type=float)]

CEP_PATTERN = re.compile(r"^\d{8}$")


def clean_cep(value: str) -> str:
    """Remove formatação do CEP."""
    return "".join(c for c in value if c.isdigit())


# === Carrinho / variações selecionadas ===


class SelectedVariation(BaseModel):
    """Variação escolhida pelo cliente."""

    variation_id: int
    quantity: int = Field(default=1, ge=0)
    name: str | None = None
    additional_price: float | None = Field(None, ge=0)


class SelectedVariationGroup(BaseModel):
    """Variações escolhidas dentro de um grupo."""

    group_id: int
    group_name: str | None = None
    variations: list[SelectedVariation] = Field(default_factory=list)


class CartLineIn(BaseModel):
    """Linha de carrinho enviada pelo cliente."""

    menu_item_id: int
    quantity: int = Field(default=1, ge=1)
    selected_variations: list[SelectedVariationGroup] = Field(default_factory=list)
    observacoes: str | None = Field(None, max_length=255)


class CartQuoteRequest(BaseModel):
    """Request para calcular os totais de um carrinho."""

    empresa_slug: str
    itens: list[CartLineIn] = Field(..., min_length=1)
    cupom: str | None = None


class CartLineOut(BaseModel):
    """Linha de carrinho consolidada."""

    key: str
    menu_item_id: int
    nome: str
    preco: Money
    preco_a_partir_de: bool
    quantidade: int
    variacoes: list[SelectedVariationGroup]
    subtotal: Money


# === Cupons ===


class CouponBase(BaseModel):
    """Campos comuns de cupom."""

    tipo: CouponType
    valor: float = Field(..., ge=0)
    validade: date
    ativo: bool = True
    descricao: str | None = Field(None, max_length=255)


class CouponCreate(CouponBase):
    """Schema para criar cupom."""

    nome: str = Field(..., min_length=1, max_length=50)

    @field_validator("nome")
    @classmethod
    def normalize_nome(cls, v: str) -> str:
        """Códigos de cupom são sempre maiúsculos e sem espaços nas pontas."""
        return v.strip().upper()

    @model_validator(mode="after")
    def validate_percentual(self) -> "CouponCreate":
        if self.tipo == CouponType.PERCENTUAL and self.valor > 100:
            raise ValueError("Cupom percentual deve ter valor entre 0 e 100")
        return self


class CouponUpdate(BaseModel):
    """Schema para atualizar cupom (campos opcionais)."""

    nome: str | None = Field(None, min_length=1, max_length=50)
    tipo: CouponType | None = None
    valor: float | None = Field(None, ge=0)
    validade: date | None = None
    ativo: bool | None = None
    descricao: str | None = Field(None, max_length=255)

    @field_validator("nome")
    @classmethod
    def normalize_nome(cls, v: str | None) -> str | None:
        return v.strip().upper() if v is not None else v


class CouponOut(CouponBase):
    """Schema de saída para cupom."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    nome: str
    empresa_id: int


class CouponValidateRequest(BaseModel):
    """Request para validar um cupom."""

    empresa_slug: str
    codigo: str = Field(..., min_length=1)
    subtotal: float | None = Field(None, ge=0)


class CouponValidateResponse(BaseModel):
    """Cupom válido e, se informado o subtotal, o desconto calculado."""

    cupom: CouponOut
    desconto: Money | None = None
    total: Money | None = None


class CartQuoteResponse(BaseModel):
    """Totais do carrinho."""

    itens: list[CartLineOut]
    item_count: int
    subtotal: Money
    desconto: Money
    total: Money
    cupom: CouponOut | None = None
    cupom_erro: str | None = None


# === Catálogo ===


class CategoryCreate(BaseModel):
    """Schema para criar categoria."""

    nome: str = Field(..., min_length=1, max_length=120)
    ordem: int | None = None


class CategoryUpdate(BaseModel):
    nome: str | None = Field(None, min_length=1, max_length=120)
    ordem: int | None = None


class CategoryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    nome: str
    ordem: int | None = None


class VariationCreate(BaseModel):
    """Schema para criar variação."""

    nome: str = Field(..., min_length=1, max_length=120)
    descricao: str | None = Field(None, max_length=255)
    preco_adicional: float = Field(default=0.0, ge=0)
    disponivel: bool = True
    categoria_ids: list[int] = Field(default_factory=list)


class VariationUpdate(BaseModel):
    nome: str | None = Field(None, min_length=1, max_length=120)
    descricao: str | None = Field(None, max_length=255)
    preco_adicional: float | None = Field(None, ge=0)
    disponivel: bool | None = None
    categoria_ids: list[int] | None = None


class VariationOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    nome: str
    descricao: str | None = None
    preco_adicional: Money
    disponivel: bool
    categoria_ids: list[int]


class VariationGroupCreate(BaseModel):
    """Schema para criar grupo de variação."""

    nome: str = Field(..., min_length=1, max_length=120)
    min_obrigatorio: int = Field(default=0, ge=0)
    max_permitido: int = Field(default=1, ge=0)
    variacao_ids: list[int] = Field(default_factory=list)
    mensagem_personalizada: str | None = Field(None, max_length=255)

    @model_validator(mode="after")
    def validate_bounds(self) -> "VariationGroupCreate":
        """Garante 0 <= mínimo <= máximo."""
        if self.min_obrigatorio > self.max_permitido:
            raise ValueError("min_obrigatorio não pode ser maior que max_permitido")
        return self


class VariationGroupUpdate(BaseModel):
    nome: str | None = Field(None, min_length=1, max_length=120)
    min_obrigatorio: int | None = Field(None, ge=0)
    max_permitido: int | None = Field(None, ge=0)
    variacao_ids: list[int] | None = None
    mensagem_personalizada: str | None = Field(None, max_length=255)


class VariationGroupOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    nome: str
    min_obrigatorio: int
    max_permitido: int
    variacao_ids: list[int]
    mensagem_personalizada: str | None = None


class MenuItemCreate(BaseModel):
    """Schema para criar item do cardápio."""

    nome: str = Field(..., min_length=1, max_length=255)
    descricao: str | None = None
    preco: float = Field(default=0.0, ge=0)
    imagem: str | None = Field(None, max_length=500)
    categoria_id: int | None = None
    popular: bool = False
    preco_a_partir_de: bool = False
    disponivel: bool = True
    grupo_ids: list[int] = Field(default_factory=list)


class MenuItemUpdate(BaseModel):
    nome: str | None = Field(None, min_length=1, max_length=255)
    descricao: str | None = None
    preco: float | None = Field(None, ge=0)
    imagem: str | None = Field(None, max_length=500)
    categoria_id: int | None = None
    popular: bool | None = None
    preco_a_partir_de: bool | None = None
    disponivel: bool | None = None
    grupo_ids: list[int] | None = None


class MenuItemOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    nome: str
    descricao: str | None = None
    preco: Money
    imagem: str | None = None
    categoria_id: int | None = None
    popular: bool
    preco_a_partir_de: bool
    disponivel: bool
    grupos: list[VariationGroupOut]


class EmpresaOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    nome: str
    telefone: str | None = None
    slug: str


class MenuCategoryOut(CategoryOut):
    itens: list[MenuItemOut]


class MenuOut(BaseModel):
    """Cardápio público de uma empresa."""

    empresa: EmpresaOut
    categorias: list[MenuCategoryOut]
    variacoes: list[VariationOut]


# === Pedidos ===


class AddressIn(BaseModel):
    """Endereço de entrega."""

    rua: str = Field(..., min_length=1, max_length=255)
    numero: str = Field(..., min_length=1, max_length=20)
    complemento: str | None = Field(None, max_length=120)
    bairro: str = Field(..., min_length=1, max_length=120)
    cidade: str = Field(..., min_length=1, max_length=120)
    estado: str = Field(..., min_length=2, max_length=2)
    cep: str | None = None

    @field_validator("estado")
    @classmethod
    def upper_estado(cls, v: str) -> str:
        return v.upper()

    @field_validator("cep")
    @classmethod
    def validate_cep(cls, v: str | None) -> str | None:
        """Salva o CEP sem formatação."""
        if v is None:
            return v
        cleaned = clean_cep(v)
        if not CEP_PATTERN.match(cleaned):
            raise ValueError("CEP deve conter 8 dígitos")
        return cleaned


class AddressOut(BaseModel):
    rua: str
    numero: str
    complemento: str | None = None
    bairro: str
    cidade: str
    estado: str
    cep: str | None = None


class CheckoutRequest(BaseModel):
    """Request de finalização de pedido pelo cliente."""

    empresa_slug: str
    cliente_nome: str = Field(..., min_length=2, max_length=255)
    cliente_telefone: str = Field(..., min_length=8, max_length=20)
    endereco: AddressIn
    itens: list[CartLineIn] = Field(..., min_length=1)
    metodo_pagamento: PaymentMethod
    observacoes: str | None = None
    cupom: str | None = None
    taxa_entrega: float = Field(default=0.0, ge=0)


class PdvOrderRequest(BaseModel):
    """Request de pedido lançado no PDV."""

    cliente_nome: str = Field(..., min_length=1, max_length=255)
    cliente_telefone: str = Field(..., min_length=1, max_length=20)
    endereco: str | None = Field(None, max_length=255)
    itens: list[CartLineIn] = Field(..., min_length=1)
    metodo_pagamento: PaymentMethod = PaymentMethod.CASH
    observacoes: str | None = None


class OrderItemOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    menu_item_id: int | None = None
    nome: str
    preco: Money
    quantidade: int
    preco_a_partir_de: bool
    observacoes: str | None = None
    variacoes: list[SelectedVariationGroup]


class OrderOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    empresa_id: int
    cliente_nome: str
    cliente_telefone: str
    endereco: AddressOut
    itens: list[OrderItemOut]
    status: OrderStatus
    metodo_pagamento: PaymentMethod
    status_pagamento: PaymentStatus
    subtotal: Money
    taxa_entrega: Money
    desconto: Money
    total: Money
    cupom_codigo: str | None = None
    cupom_tipo: CouponType | None = None
    cupom_valor: float | None = None
    entregador_id: int | None = None
    observacoes: str | None = None
    motivo_cancelamento: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    delivered_at: datetime | None = None


class OrderListResponse(BaseModel):
    items: list[OrderOut]
    total: int


class StatusUpdateRequest(BaseModel):
    """Request de mudança de status dentro da política de transições."""

    status: OrderStatus
    motivo_cancelamento: str | None = None
    entregador_id: int | None = None
    expected_updated_at: datetime | None = Field(
        None, description="Se informado, rejeita a alteração quando o pedido mudou desde então"
    )


class PaymentStatusUpdate(BaseModel):
    status_pagamento: PaymentStatus
    expected_updated_at: datetime | None = None


class OrderCorrection(BaseModel):
    """Correção administrativa: ignora a política de transições."""

    status: OrderStatus | None = None
    status_pagamento: PaymentStatus | None = None
    entregador_id: int | None = None
    observacoes: str | None = None
    motivo_cancelamento: str | None = None


class NextStatusOptionsOut(BaseModel):
    status: OrderStatus
    pagamento_recebido: bool
    opcoes: list[OrderStatus]
    pode_finalizar: bool


# === Entregadores ===


class DelivererCreate(BaseModel):
    """Schema para cadastrar entregador."""

    email: EmailStr
    password: str = Field(..., min_length=6)
    nome: str = Field(..., min_length=2)
    telefone: str | None = None
    placa: str | None = Field(None, max_length=10)
    cpf: str | None = Field(None, max_length=14)
    status_entregador: str = Field(default="ativo", pattern="^(ativo|inativo)$")


class DelivererOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    email: str
    nome: str
    telefone: str | None = None
    placa: str | None = None
    cpf: str | None = None
    status_entregador: str | None = None
    empresa_id: int | None = None


# === Endereço (CEP) ===


class AddressLookupOut(BaseModel):
    """Endereço sugerido pelo serviço de CEP (não autoritativo)."""

    cep: str
    rua: str = ""
    bairro: str = ""
    cidade: str = ""
    estado: str = ""


# === Health ===


class HealthResponse(BaseModel):
    """Response do health check."""

    status: str
    db: bool
    redis: bool
