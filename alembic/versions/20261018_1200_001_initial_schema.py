"""Initial schema - empresas, usuários, catálogo, cupons e pedidos

Revision ID: 001
Revises:
Create Date: 2026-10-18 12:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # === Empresas ===
    op.create_table(
        'empresas',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('nome', sa.String(255), nullable=False),
        sa.Column('telefone', sa.String(20), nullable=True),
        sa.Column('slug', sa.String(120), nullable=False),
        sa.Column('admin_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_empresas_id', 'empresas', ['id'], unique=False)
    op.create_index('ix_empresas_slug', 'empresas', ['slug'], unique=True)

    # === Usuários ===
    op.create_table(
        'usuarios',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('password_hash', sa.String(255), nullable=False),
        sa.Column('nome', sa.String(255), nullable=False),
        sa.Column('telefone', sa.String(20), nullable=True),
        sa.Column('role', sa.String(20), nullable=False),
        sa.Column('empresa_id', sa.Integer(), nullable=True),
        sa.Column('placa', sa.String(10), nullable=True),
        sa.Column('cpf', sa.String(14), nullable=True),
        sa.Column('status_entregador', sa.String(10), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_login', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['empresa_id'], ['empresas.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_usuarios_id', 'usuarios', ['id'], unique=False)
    op.create_index('ix_usuarios_email', 'usuarios', ['email'], unique=True)
    op.create_index('ix_usuarios_role', 'usuarios', ['role'], unique=False)
    op.create_index('ix_usuarios_empresa_id', 'usuarios', ['empresa_id'], unique=False)
    op.create_index('ix_usuarios_empresa_role', 'usuarios', ['empresa_id', 'role'], unique=False)

    op.create_table(
        'user_sessions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('refresh_token_hash', sa.String(255), nullable=False),
        sa.Column('device_info', sa.String(255), nullable=True),
        sa.Column('ip_address', sa.String(45), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('last_used_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['usuarios.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('refresh_token_hash')
    )
    op.create_index('ix_user_sessions_id', 'user_sessions', ['id'], unique=False)
    op.create_index('ix_user_sessions_user_id', 'user_sessions', ['user_id'], unique=False)
    op.create_index('ix_sessions_user_active', 'user_sessions', ['user_id', 'is_active'], unique=False)

    op.create_table(
        'password_reset_tokens',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('token_hash', sa.String(255), nullable=False),
        sa.Column('is_used', sa.Boolean(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['usuarios.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('token_hash')
    )
    op.create_index('ix_password_reset_tokens_id', 'password_reset_tokens', ['id'], unique=False)
    op.create_index('ix_password_reset_tokens_user_id', 'password_reset_tokens', ['user_id'], unique=False)

    # === Catálogo ===
    op.create_table(
        'categorias',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('empresa_id', sa.Integer(), nullable=False),
        sa.Column('nome', sa.String(120), nullable=False),
        sa.Column('ordem', sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(['empresa_id'], ['empresas.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_categorias_id', 'categorias', ['id'], unique=False)
    op.create_index('ix_categorias_empresa_id', 'categorias', ['empresa_id'], unique=False)

    op.create_table(
        'variacoes',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('empresa_id', sa.Integer(), nullable=False),
        sa.Column('nome', sa.String(120), nullable=False),
        sa.Column('descricao', sa.String(255), nullable=True),
        sa.Column('preco_adicional', sa.Float(), nullable=False),
        sa.Column('disponivel', sa.Boolean(), nullable=True),
        sa.ForeignKeyConstraint(['empresa_id'], ['empresas.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_variacoes_id', 'variacoes', ['id'], unique=False)
    op.create_index('ix_variacoes_empresa_id', 'variacoes', ['empresa_id'], unique=False)

    op.create_table(
        'variacao_categorias',
        sa.Column('variacao_id', sa.Integer(), nullable=False),
        sa.Column('categoria_id', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['variacao_id'], ['variacoes.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['categoria_id'], ['categorias.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('variacao_id', 'categoria_id')
    )

    op.create_table(
        'grupos_variacao',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('empresa_id', sa.Integer(), nullable=False),
        sa.Column('nome', sa.String(120), nullable=False),
        sa.Column('min_obrigatorio', sa.Integer(), nullable=False),
        sa.Column('max_permitido', sa.Integer(), nullable=False),
        sa.Column('mensagem_personalizada', sa.String(255), nullable=True),
        sa.ForeignKeyConstraint(['empresa_id'], ['empresas.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_grupos_variacao_id', 'grupos_variacao', ['id'], unique=False)
    op.create_index('ix_grupos_variacao_empresa_id', 'grupos_variacao', ['empresa_id'], unique=False)

    op.create_table(
        'grupo_variacoes',
        sa.Column('grupo_id', sa.Integer(), nullable=False),
        sa.Column('variacao_id', sa.Integer(), nullable=False),
        sa.Column('posicao', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['grupo_id'], ['grupos_variacao.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['variacao_id'], ['variacoes.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('grupo_id', 'variacao_id')
    )

    op.create_table(
        'itens_cardapio',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('empresa_id', sa.Integer(), nullable=False),
        sa.Column('categoria_id', sa.Integer(), nullable=True),
        sa.Column('nome', sa.String(255), nullable=False),
        sa.Column('descricao', sa.Text(), nullable=True),
        sa.Column('preco', sa.Float(), nullable=False),
        sa.Column('imagem', sa.String(500), nullable=True),
        sa.Column('popular', sa.Boolean(), nullable=True),
        sa.Column('preco_a_partir_de', sa.Boolean(), nullable=True),
        sa.Column('disponivel', sa.Boolean(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['empresa_id'], ['empresas.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['categoria_id'], ['categorias.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_itens_cardapio_id', 'itens_cardapio', ['id'], unique=False)
    op.create_index('ix_itens_cardapio_empresa_id', 'itens_cardapio', ['empresa_id'], unique=False)
    op.create_index('ix_itens_cardapio_categoria_id', 'itens_cardapio', ['categoria_id'], unique=False)

    op.create_table(
        'item_grupos_variacao',
        sa.Column('item_id', sa.Integer(), nullable=False),
        sa.Column('grupo_id', sa.Integer(), nullable=False),
        sa.Column('posicao', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['item_id'], ['itens_cardapio.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['grupo_id'], ['grupos_variacao.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('item_id', 'grupo_id')
    )

    # === Cupons ===
    op.create_table(
        'cupons',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('empresa_id', sa.Integer(), nullable=False),
        sa.Column('nome', sa.String(50), nullable=False),
        sa.Column('tipo', sa.String(20), nullable=False),
        sa.Column('valor', sa.Float(), nullable=False),
        sa.Column('validade', sa.Date(), nullable=False),
        sa.Column('ativo', sa.Boolean(), nullable=True),
        sa.Column('descricao', sa.String(255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['empresa_id'], ['empresas.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('empresa_id', 'nome', name='uq_cupons_empresa_nome')
    )
    op.create_index('ix_cupons_id', 'cupons', ['id'], unique=False)
    op.create_index('ix_cupons_empresa_id', 'cupons', ['empresa_id'], unique=False)

    # === Pedidos ===
    op.create_table(
        'pedidos',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('empresa_id', sa.Integer(), nullable=False),
        sa.Column('cliente_nome', sa.String(255), nullable=False),
        sa.Column('cliente_telefone', sa.String(20), nullable=False),
        sa.Column('endereco_rua', sa.String(255), nullable=False),
        sa.Column('endereco_numero', sa.String(20), nullable=False),
        sa.Column('endereco_complemento', sa.String(120), nullable=True),
        sa.Column('endereco_bairro', sa.String(120), nullable=False),
        sa.Column('endereco_cidade', sa.String(120), nullable=False),
        sa.Column('endereco_estado', sa.String(2), nullable=False),
        sa.Column('endereco_cep', sa.String(9), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('metodo_pagamento', sa.String(30), nullable=False),
        sa.Column('status_pagamento', sa.String(20), nullable=False, server_default='a_receber'),
        sa.Column('motivo_cancelamento', sa.Text(), nullable=True),
        sa.Column('subtotal', sa.Float(), nullable=False),
        sa.Column('taxa_entrega', sa.Float(), nullable=False),
        sa.Column('desconto', sa.Float(), nullable=False),
        sa.Column('total', sa.Float(), nullable=False),
        sa.Column('cupom_codigo', sa.String(50), nullable=True),
        sa.Column('cupom_tipo', sa.String(20), nullable=True),
        sa.Column('cupom_valor', sa.Float(), nullable=True),
        sa.Column('entregador_id', sa.Integer(), nullable=True),
        sa.Column('observacoes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('delivered_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('versao', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['empresa_id'], ['empresas.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['entregador_id'], ['usuarios.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_pedidos_id', 'pedidos', ['id'], unique=False)
    op.create_index('ix_pedidos_empresa_id', 'pedidos', ['empresa_id'], unique=False)
    op.create_index('ix_pedidos_cliente_telefone', 'pedidos', ['cliente_telefone'], unique=False)
    op.create_index('ix_pedidos_status', 'pedidos', ['status'], unique=False)
    op.create_index('ix_pedidos_entregador_id', 'pedidos', ['entregador_id'], unique=False)
    op.create_index('ix_pedidos_created_at', 'pedidos', ['created_at'], unique=False)
    op.create_index('ix_pedidos_empresa_created', 'pedidos', ['empresa_id', 'created_at'], unique=False)
    op.create_index('ix_pedidos_empresa_status', 'pedidos', ['empresa_id', 'status'], unique=False)

    op.create_table(
        'itens_pedido',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('pedido_id', sa.Integer(), nullable=False),
        sa.Column('menu_item_id', sa.Integer(), nullable=True),
        sa.Column('nome', sa.String(255), nullable=False),
        sa.Column('preco', sa.Float(), nullable=False),
        sa.Column('quantidade', sa.Integer(), nullable=False),
        sa.Column('preco_a_partir_de', sa.Boolean(), nullable=True),
        sa.Column('observacoes', sa.String(255), nullable=True),
        sa.Column('variacoes', sa.JSON(), nullable=False),
        sa.ForeignKeyConstraint(['pedido_id'], ['pedidos.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_itens_pedido_id', 'itens_pedido', ['id'], unique=False)
    op.create_index('ix_itens_pedido_pedido_id', 'itens_pedido', ['pedido_id'], unique=False)


def downgrade() -> None:
    op.drop_table('itens_pedido')
    op.drop_table('pedidos')
    op.drop_table('cupons')
    op.drop_table('item_grupos_variacao')
    op.drop_table('itens_cardapio')
    op.drop_table('grupo_variacoes')
    op.drop_table('grupos_variacao')
    op.drop_table('variacao_categorias')
    op.drop_table('variacoes')
    op.drop_table('categorias')
    op.drop_table('password_reset_tokens')
    op.drop_table('user_sessions')
    op.drop_table('usuarios')
    op.drop_table('empresas')
