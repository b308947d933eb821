"""Testes para cadastro de entregadores e fila de entregas."""

import pytest

from cardapio.models import User
from cardapio.schemas import Role
from cardapio.services.auth import AuthService


@pytest.fixture
def outro_entregador(db_session, empresa):
    return AuthService(db_session).create_user(
        email="outro@teste.com", password="senha123", nome="Outro", role=Role.ENTREGADOR.value,
        empresa_id=empresa.id, status_entregador="ativo",
    )


@pytest.fixture
def em_rota(client, admin_headers, checkout_payload, entregador):
    """Cria um pedido e o coloca em rota com o entregador."""

    def make(metodo="cash"):
        checkout_payload["metodo_pagamento"] = metodo
        pedido = client.post("/pedidos/", json=checkout_payload).json()
        response = client.patch(
            f"/pedidos/{pedido['id']}",
            json={"status": "delivering", "entregador_id": entregador.id},
            headers=admin_headers,
        )
        assert response.status_code == 200
        return response.json()

    return make


class TestCadastro:
    """Testes para endpoints /entregadores (admin)."""

    def test_create(self, client, admin_headers, empresa, db_session):
        response = client.post(
            "/entregadores/",
            json={"email": "moto@teste.com", "password": "senha123", "nome": "Carlos", "placa": "QWE1R23"},
            headers=admin_headers,
        )
        assert response.status_code == 201
        data = response.json()
        assert data["status_entregador"] == "ativo"
        assert data["empresa_id"] == empresa.id

        user = db_session.get(User, data["id"])
        assert user.role == "entregador"

        login = client.post("/auth/login", json={"email": "moto@teste.com", "password": "senha123"})
        assert login.status_code == 200

    def test_duplicate_email(self, client, admin_headers, entregador):
        response = client.post(
            "/entregadores/",
            json={"email": "entregador@teste.com", "password": "senha123", "nome": "Carlos"},
            headers=admin_headers,
        )
        assert response.status_code == 409

    def test_list(self, client, admin_headers, entregador, outro_entregador):
        nomes = [e["nome"] for e in client.get("/entregadores/", headers=admin_headers).json()]
        assert nomes == ["Outro", "Usuário entregador"]

    def test_toggle(self, client, admin_headers, entregador):
        """Desativar o entregador não bloqueia o login."""
        response = client.post(f"/entregadores/{entregador.id}/toggle", headers=admin_headers)
        assert response.json()["status_entregador"] == "inativo"

        login = client.post("/auth/login", json={"email": "entregador@teste.com", "password": "senha123"})
        assert login.status_code == 200

        response = client.post(f"/entregadores/{entregador.id}/toggle", headers=admin_headers)
        assert response.json()["status_entregador"] == "ativo"

    def test_toggle_not_courier(self, client, admin_headers, admin_user):
        response = client.post(f"/entregadores/{admin_user.id}/toggle", headers=admin_headers)
        assert response.status_code == 404

    def test_requires_admin(self, client, entregador_headers):
        assert client.get("/entregadores/", headers=entregador_headers).status_code == 403


class TestFila:
    """Testes para a fila de entregas."""

    def test_courier_sees_own_orders(
        self, client, em_rota, entregador_headers, outro_entregador, headers_for, admin_headers
    ):
        pedido = em_rota()

        fila = client.get("/entregadores/fila", headers=entregador_headers).json()
        assert [p["id"] for p in fila] == [pedido["id"]]

        assert client.get("/entregadores/fila", headers=headers_for(outro_entregador)).json() == []
        assert len(client.get("/entregadores/fila", headers=admin_headers).json()) == 1

    def test_pdv_denied(self, client, pdv_headers):
        assert client.get("/entregadores/fila", headers=pdv_headers).status_code == 403

    def test_confirm_cash(self, client, em_rota, entregador_headers, events):
        """Dinheiro a cobrar vira 'received' e o pagamento fica recebido."""
        pedido = em_rota("cash")
        response = client.post(f"/entregadores/fila/{pedido['id']}/confirmar", headers=entregador_headers)
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "received"
        assert data["status_pagamento"] == "recebido"
        assert events.changes[-1] == (pedido["id"], "received")

        assert client.get("/entregadores/fila", headers=entregador_headers).json() == []

        again = client.post(f"/entregadores/fila/{pedido['id']}/confirmar", headers=entregador_headers)
        assert again.status_code == 400
        assert again.json()["detail"] == "Pedido não está em rota de entrega"

    def test_confirm_paid(self, client, em_rota, entregador_headers, admin_headers):
        pedido = em_rota("pix")
        client.post(
            f"/pedidos/{pedido['id']}/pagamento", json={"status_pagamento": "recebido"}, headers=admin_headers
        )
        response = client.post(f"/entregadores/fila/{pedido['id']}/confirmar", headers=entregador_headers)
        assert response.json()["status"] == "delivered"
        assert response.json()["delivered_at"] is not None

    def test_confirm_card(self, client, em_rota, entregador_headers, events):
        """Cartão cobrado na maquininha encerra direto como 'delivered'."""
        pedido = em_rota("card")
        response = client.post(f"/entregadores/fila/{pedido['id']}/confirmar", headers=entregador_headers)
        assert response.status_code == 200
        assert response.json()["status"] == "delivered"
        assert response.json()["delivered_at"] is not None
        assert events.changes[-1] == (pedido["id"], "delivered")

    def test_confirm_payroll(self, client, em_rota, entregador_headers):
        pedido = em_rota("payroll_discount")
        response = client.post(f"/entregadores/fila/{pedido['id']}/confirmar", headers=entregador_headers)
        assert response.json()["status"] == "to_deduct"
        assert response.json()["status_pagamento"] == "a_receber"

    def test_other_courier_cannot_confirm(self, client, em_rota, outro_entregador, headers_for):
        pedido = em_rota()
        response = client.post(
            f"/entregadores/fila/{pedido['id']}/confirmar", headers=headers_for(outro_entregador)
        )
        assert response.status_code == 404
