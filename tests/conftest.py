"""Configuração de fixtures para testes."""

import os

os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["ENV"] = "test"
os.environ["BUSINESS_TIMEZONE"] = "America/Sao_Paulo"
os.environ["STATUS_WEBHOOK_URL"] = ""
os.environ["PASSWORD_RESET_WEBHOOK_URL"] = ""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from cardapio import main
from cardapio.database import Base, get_db
from cardapio.main import app
from cardapio.models import Empresa, MenuItem, Variation, VariationGroup
from cardapio.routers import (
    auth,
    carrinho,
    catalogo,
    cupons,
    empresas,
    enderecos,
    entregadores,
    pdv,
    pedidos,
)
from cardapio.schemas import Role
from cardapio.services.auth import AuthService, create_access_token
from cardapio.services.notifications import get_order_events
from cardapio.services.seed import seed_catalog


# Banco de dados em memória para testes
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Sem rate limit nos testes
for module in (main, auth, carrinho, catalogo, cupons, empresas, enderecos, entregadores, pdv, pedidos):
    module.limiter.enabled = False


class RecordingEvents:
    """Gancho de notificações que só registra os pedidos alterados."""

    def __init__(self):
        self.changes = []

    def order_changed(self, order):
        self.changes.append((order.id, order.status))


@pytest.fixture(scope="function")
def db_session():
    """Cria uma sessão de banco de dados para testes."""
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def events():
    return RecordingEvents()


@pytest.fixture(scope="function")
def client(db_session, events):
    """Cria um cliente de teste com banco de dados isolado."""

    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_order_events] = lambda: events
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def empresa(db_session):
    """Empresa de teste."""
    empresa = Empresa(nome="Lanchonete Teste", telefone="91999990000", slug="lanchonete-teste")
    db_session.add(empresa)
    db_session.commit()
    db_session.refresh(empresa)
    return empresa


def make_user(db_session, empresa, role: str, email: str, **extra):
    return AuthService(db_session).create_user(
        email=email,
        password="senha123",
        nome=f"Usuário {role}",
        role=role,
        empresa_id=empresa.id if empresa else None,
        **extra,
    )


def auth_headers(user) -> dict:
    token = create_access_token(user.id, user.role, user.empresa_id)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def admin_user(db_session, empresa):
    user = make_user(db_session, empresa, Role.ADMIN.value, "admin@teste.com")
    empresa.admin_id = user.id
    db_session.commit()
    return user


@pytest.fixture
def admin_headers(admin_user):
    return auth_headers(admin_user)


@pytest.fixture
def entregador(db_session, empresa):
    return make_user(
        db_session, empresa, Role.ENTREGADOR.value, "entregador@teste.com",
        placa="ABC1D23", status_entregador="ativo",
    )


@pytest.fixture
def entregador_headers(entregador):
    return auth_headers(entregador)


@pytest.fixture
def pdv_headers(db_session, empresa):
    return auth_headers(make_user(db_session, empresa, Role.PDV.value, "pdv@teste.com"))


@pytest.fixture
def cliente_headers(db_session, empresa):
    return auth_headers(make_user(db_session, empresa, Role.CLIENTE.value, "cliente@teste.com"))


@pytest.fixture
def catalog(db_session, empresa):
    """Cardápio de exemplo: Hamburguer Clássico (25,00) com grupo Adicionais (0 a 2)."""
    seed_catalog(db_session, empresa.id)
    variations = {
        v.nome: v for v in db_session.query(Variation).filter(Variation.empresa_id == empresa.id).all()
    }
    return {
        "item": db_session.query(MenuItem).filter(MenuItem.empresa_id == empresa.id).one(),
        "grupo": db_session.query(VariationGroup).filter(VariationGroup.empresa_id == empresa.id).one(),
        "bacon": variations["Bacon Crocante"],
        "queijo": variations["Queijo Extra"],
    }


@pytest.fixture
def sample_address():
    return {
        "rua": "Rua das Flores",
        "numero": "123",
        "bairro": "Centro",
        "cidade": "Belém",
        "estado": "pa",
        "cep": "66000-000",
    }


@pytest.fixture
def checkout_payload(empresa, catalog, sample_address):
    """Pedido de 2 hambúrgueres com bacon."""
    return {
        "empresa_slug": empresa.slug,
        "cliente_nome": "Maria Silva",
        "cliente_telefone": "91988887777",
        "endereco": sample_address,
        "itens": [
            {
                "menu_item_id": catalog["item"].id,
                "quantity": 2,
                "selected_variations": [
                    {
                        "group_id": catalog["grupo"].id,
                        "variations": [{"variation_id": catalog["bacon"].id, "quantity": 1}],
                    }
                ],
            }
        ],
        "metodo_pagamento": "cash",
    }


@pytest.fixture
def headers_for():
    """Gera o header Authorization para qualquer usuário."""
    return auth_headers
