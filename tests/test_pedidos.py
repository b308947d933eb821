"""Testes para carrinho, checkout, gestão de pedidos e PDV."""

from datetime import UTC, datetime, timedelta

import pytest
from sqlalchemy.orm import sessionmaker

from cardapio.config import settings
from cardapio.models import Coupon, Empresa, Order
from cardapio.services.order_status import set_status
from cardapio.services.orders import StaleOrderError, check_expected_updated_at, commit_order


@pytest.fixture
def cupom(db_session, empresa):
    coupon = Coupon(
        empresa_id=empresa.id, nome="DESC10", tipo="percentual", valor=10,
        validade=settings.today() + timedelta(days=1),
    )
    db_session.add(coupon)
    db_session.commit()
    return coupon


@pytest.fixture
def pedido(client, checkout_payload):
    """Pedido em dinheiro criado pelo checkout."""
    response = client.post("/pedidos/", json=checkout_payload)
    assert response.status_code == 201
    return response.json()


def bacon_line(catalog, quantity=1, extra_queijo=False):
    variations = [{"variation_id": catalog["bacon"].id, "quantity": 1}]
    if extra_queijo:
        variations.append({"variation_id": catalog["queijo"].id, "quantity": 1})
    return {
        "menu_item_id": catalog["item"].id,
        "quantity": quantity,
        "selected_variations": [{"group_id": catalog["grupo"].id, "variations": variations}],
    }


class TestCotacao:
    """Testes para endpoint /carrinho/cotacao."""

    def test_merges_equal_lines(self, client, empresa, catalog):
        """Mesmo item com as mesmas escolhas em outra ordem vira uma linha."""
        line_a = bacon_line(catalog, extra_queijo=True)
        line_b = bacon_line(catalog, extra_queijo=True)
        line_b["selected_variations"][0]["variations"].reverse()

        response = client.post(
            "/carrinho/cotacao", json={"empresa_slug": empresa.slug, "itens": [line_a, line_b]}
        )
        assert response.status_code == 200
        data = response.json()
        assert len(data["itens"]) == 1
        assert data["itens"][0]["quantidade"] == 2
        assert data["item_count"] == 2
        assert data["subtotal"] == 61.0
        assert data["total"] == 61.0

    def test_with_coupon(self, client, empresa, catalog, cupom):
        response = client.post(
            "/carrinho/cotacao",
            json={"empresa_slug": empresa.slug, "itens": [bacon_line(catalog, 2)], "cupom": "desc10"},
        )
        data = response.json()
        assert data["subtotal"] == 57.0
        assert data["desconto"] == 5.7
        assert data["total"] == 51.3
        assert data["cupom"]["nome"] == "DESC10"

    def test_rejected_coupon_keeps_quote(self, client, empresa, catalog):
        """Cupom recusado volta em cupom_erro e o desconto fica zerado."""
        response = client.post(
            "/carrinho/cotacao",
            json={"empresa_slug": empresa.slug, "itens": [bacon_line(catalog)], "cupom": "NAOEXISTE"},
        )
        assert response.status_code == 200
        data = response.json()
        assert data["desconto"] == 0
        assert data["cupom"] is None
        assert "cupom" in data["cupom_erro"]

    def test_selection_over_max(self, client, empresa, catalog):
        line = bacon_line(catalog)
        line["selected_variations"][0]["variations"][0]["quantity"] = 3
        response = client.post("/carrinho/cotacao", json={"empresa_slug": empresa.slug, "itens": [line]})
        assert response.status_code == 400
        assert response.json()["detail"] == "Escolha seus adicionais (3/2 selecionados)"

    def test_client_price_ignored(self, client, empresa, catalog):
        """Preço enviado pelo cliente é substituído pelo do cardápio."""
        line = bacon_line(catalog)
        line["selected_variations"][0]["variations"][0]["additional_price"] = 0.01
        data = client.post("/carrinho/cotacao", json={"empresa_slug": empresa.slug, "itens": [line]}).json()
        assert data["subtotal"] == 28.5


class TestCheckout:
    """Testes para o checkout do cliente."""

    def test_cash_order(self, pedido, events):
        """(25,00 + 3,50) x 2 = 57,00, pendente e a receber."""
        assert pedido["subtotal"] == 57.0
        assert pedido["desconto"] == 0
        assert pedido["total"] == 57.0
        assert pedido["status"] == "pending"
        assert pedido["status_pagamento"] == "a_receber"
        assert pedido["endereco"]["estado"] == "PA"
        assert pedido["endereco"]["cep"] == "66000000"
        assert pedido["itens"][0]["variacoes"][0]["variations"][0]["name"] == "Bacon Crocante"
        assert events.changes == [(pedido["id"], "pending")]

    def test_coupon_and_delivery_fee(self, client, checkout_payload, cupom):
        checkout_payload.update(cupom="desc10", taxa_entrega=5.0)
        data = client.post("/pedidos/", json=checkout_payload).json()
        assert data["desconto"] == 5.7
        assert data["total"] == 56.3
        assert data["cupom_codigo"] == "DESC10"
        assert data["cupom_tipo"] == "percentual"

    def test_snapshot_survives_coupon_change(self, client, checkout_payload, cupom, db_session):
        """Pedido guarda o retrato do cupom."""
        checkout_payload["cupom"] = "DESC10"
        data = client.post("/pedidos/", json=checkout_payload).json()
        cupom.valor = 50
        db_session.commit()
        assert db_session.get(Order, data["id"]).cupom_valor == 10

    def test_expired_coupon_rejected(self, client, checkout_payload, cupom, db_session):
        cupom.validade = settings.today() - timedelta(days=1)
        db_session.commit()
        checkout_payload["cupom"] = "DESC10"
        response = client.post("/pedidos/", json=checkout_payload)
        assert response.status_code == 400
        assert response.json()["detail"] == "Este cupom não é mais válido."

    def test_unavailable_item(self, client, checkout_payload, catalog, db_session):
        catalog["item"].disponivel = False
        db_session.commit()
        response = client.post("/pedidos/", json=checkout_payload)
        assert response.status_code == 400
        assert "indisponível" in response.json()["detail"]

    def test_item_from_other_company(self, client, checkout_payload, db_session):
        outra = Empresa(nome="Outra", slug="outra")
        db_session.add(outra)
        db_session.commit()
        checkout_payload["empresa_slug"] = "outra"
        assert client.post("/pedidos/", json=checkout_payload).status_code == 400

    def test_unknown_company(self, client, checkout_payload):
        checkout_payload["empresa_slug"] = "nao-existe"
        assert client.post("/pedidos/", json=checkout_payload).status_code == 404

    def test_orders_by_phone(self, client, empresa, pedido):
        response = client.get(f"/pedidos/telefone/91988887777?empresa_slug={empresa.slug}")
        assert response.status_code == 200
        assert [p["id"] for p in response.json()] == [pedido["id"]]


class TestStatus:
    """Testes para mudança de status pelo admin."""

    def advance(self, client, headers, order_id, status, **extra):
        return client.post(f"/pedidos/{order_id}/status", json={"status": status, **extra}, headers=headers)

    def test_forward_and_options(self, client, admin_headers, pedido, events):
        response = self.advance(client, admin_headers, pedido["id"], "confirmed")
        assert response.status_code == 200
        assert response.json()["status"] == "confirmed"
        assert events.changes[-1] == (pedido["id"], "confirmed")

        options = client.get(f"/pedidos/{pedido['id']}/opcoes-status", headers=admin_headers).json()
        assert options["opcoes"] == ["preparing", "cancelled"]
        assert options["pode_finalizar"] is False

    def test_skip_rejected(self, client, admin_headers, pedido):
        response = self.advance(client, admin_headers, pedido["id"], "ready")
        assert response.status_code == 400

    def test_cancel_requires_reason(self, client, admin_headers, pedido):
        assert self.advance(client, admin_headers, pedido["id"], "cancelled").status_code == 400

        response = self.advance(
            client, admin_headers, pedido["id"], "cancelled", motivo_cancelamento="Cliente desistiu"
        )
        assert response.status_code == 200
        assert response.json()["motivo_cancelamento"] == "Cliente desistiu"

    def test_delivering_requires_active_courier(self, client, admin_headers, pedido, entregador, db_session):
        for status in ("confirmed", "preparing", "ready"):
            self.advance(client, admin_headers, pedido["id"], status)

        assert self.advance(client, admin_headers, pedido["id"], "delivering").status_code == 400

        entregador.status_entregador = "inativo"
        db_session.commit()
        response = self.advance(client, admin_headers, pedido["id"], "delivering", entregador_id=entregador.id)
        assert response.status_code == 400
        assert response.json()["detail"] == "Entregador inválido para esta empresa"

        entregador.status_entregador = "ativo"
        db_session.commit()
        response = self.advance(client, admin_headers, pedido["id"], "delivering", entregador_id=entregador.id)
        assert response.status_code == 200
        assert response.json()["entregador_id"] == entregador.id

    def test_stale_update_conflict(self, client, admin_headers, pedido):
        """Alteração baseada numa versão antiga do pedido recebe 409."""
        response = self.advance(
            client, admin_headers, pedido["id"], "confirmed", expected_updated_at="2000-01-01T00:00:00Z"
        )
        assert response.status_code == 409

        response = self.advance(
            client, admin_headers, pedido["id"], "confirmed", expected_updated_at=pedido["updated_at"]
        )
        assert response.status_code == 200

    def test_payment_then_deliver(self, client, admin_headers, pedido):
        """Pagamento recebido antes da entrega pula 'received'."""
        client.patch(f"/pedidos/{pedido['id']}", json={"status": "delivering"}, headers=admin_headers)
        response = client.post(
            f"/pedidos/{pedido['id']}/pagamento", json={"status_pagamento": "recebido"}, headers=admin_headers
        )
        assert response.json()["status_pagamento"] == "recebido"

        options = client.get(f"/pedidos/{pedido['id']}/opcoes-status", headers=admin_headers).json()
        assert options["opcoes"] == ["delivered", "cancelled"]

        delivered = self.advance(client, admin_headers, pedido["id"], "delivered").json()
        assert delivered["delivered_at"] is not None

    def test_other_company_order(self, client, admin_headers, db_session, checkout_payload, pedido):
        order = db_session.get(Order, pedido["id"])
        outra = Empresa(nome="Outra", slug="outra")
        db_session.add(outra)
        db_session.commit()
        order.empresa_id = outra.id
        db_session.commit()
        assert client.get(f"/pedidos/{pedido['id']}", headers=admin_headers).status_code == 404

    def test_requires_admin(self, client, entregador_headers, pedido):
        response = self.advance(client, entregador_headers, pedido["id"], "confirmed")
        assert response.status_code == 403


class TestGravacaoConcorrente:
    """Duas sessões alterando o mesmo pedido a partir da mesma leitura."""

    def test_second_writer_rejected(self, db_session, pedido):
        Sessao = sessionmaker(bind=db_session.get_bind(), autoflush=False)
        sessao_a, sessao_b = Sessao(), Sessao()
        try:
            pedido_a = sessao_a.get(Order, pedido["id"])
            pedido_b = sessao_b.get(Order, pedido["id"])
            lido_em = pedido_a.updated_at
            check_expected_updated_at(pedido_a, lido_em)
            check_expected_updated_at(pedido_b, lido_em)

            set_status(pedido_a, "confirmed", datetime.now(UTC))
            commit_order(sessao_a, pedido_a)

            set_status(pedido_b, "cancelled", datetime.now(UTC))
            with pytest.raises(StaleOrderError):
                commit_order(sessao_b, pedido_b)
        finally:
            sessao_a.close()
            sessao_b.close()

        db_session.expire_all()
        order = db_session.get(Order, pedido["id"])
        assert order.status == "confirmed"
        assert order.versao == 2

    def test_version_bumps_on_each_write(self, client, admin_headers, pedido, db_session):
        client.post(f"/pedidos/{pedido['id']}/status", json={"status": "confirmed"}, headers=admin_headers)
        client.post(f"/pedidos/{pedido['id']}/status", json={"status": "preparing"}, headers=admin_headers)
        assert db_session.get(Order, pedido["id"]).versao == 3


class TestCorrecao:
    """Testes para a correção administrativa (PATCH)."""

    def test_any_status_and_delivered_at(self, client, admin_headers, pedido):
        """Voltar de 'delivered' limpa delivered_at."""
        delivered = client.patch(f"/pedidos/{pedido['id']}", json={"status": "delivered"}, headers=admin_headers)
        assert delivered.json()["delivered_at"] is not None

        reverted = client.patch(f"/pedidos/{pedido['id']}", json={"status": "preparing"}, headers=admin_headers)
        assert reverted.json()["status"] == "preparing"
        assert reverted.json()["delivered_at"] is None

    def test_explicit_payment_status_wins(self, client, admin_headers, pedido):
        response = client.patch(
            f"/pedidos/{pedido['id']}",
            json={"status": "paid", "status_pagamento": "a_receber", "observacoes": "ajuste"},
            headers=admin_headers,
        )
        data = response.json()
        assert data["status"] == "paid"
        assert data["status_pagamento"] == "a_receber"
        assert data["observacoes"] == "ajuste"


class TestListagem:
    """Testes para a listagem de pedidos do admin."""

    def test_list(self, client, admin_headers, pedido):
        data = client.get("/pedidos/", headers=admin_headers).json()
        assert data["total"] == 1
        assert data["items"][0]["id"] == pedido["id"]

    def test_date_filter(self, client, admin_headers, pedido):
        amanha = (settings.today() + timedelta(days=1)).isoformat()
        assert client.get(f"/pedidos/?inicio={amanha}", headers=admin_headers).json()["total"] == 0

    def test_to_deduct_filter(self, client, admin_headers, pdv_headers, pedido, catalog):
        """'A descontar' lista desconto em folha ainda a receber."""
        pdv_order = client.post(
            "/pdv/pedidos",
            json={
                "cliente_nome": "Funcionário",
                "cliente_telefone": "123",
                "itens": [bacon_line(catalog)],
                "metodo_pagamento": "payroll_discount",
            },
            headers=pdv_headers,
        ).json()

        data = client.get("/pedidos/?status=to_deduct", headers=admin_headers).json()
        assert [p["id"] for p in data["items"]] == [pdv_order["id"]]

        client.post(
            f"/pedidos/{pdv_order['id']}/pagamento", json={"status_pagamento": "recebido"}, headers=admin_headers
        )
        assert client.get("/pedidos/?status=to_deduct", headers=admin_headers).json()["total"] == 0

    def test_payment_method_filter(self, client, admin_headers, pedido):
        assert client.get("/pedidos/?metodo_pagamento=pix", headers=admin_headers).json()["total"] == 0
        assert client.get("/pedidos/?metodo_pagamento=cash", headers=admin_headers).json()["total"] == 1


class TestFinalizar:
    def test_payroll_paid_finalized(self, client, admin_headers, checkout_payload):
        checkout_payload["metodo_pagamento"] = "payroll_discount"
        pedido = client.post("/pedidos/", json=checkout_payload).json()

        assert client.post(f"/pedidos/{pedido['id']}/finalizar", headers=admin_headers).status_code == 400

        client.patch(f"/pedidos/{pedido['id']}", json={"status": "to_deduct"}, headers=admin_headers)
        paid = client.post(f"/pedidos/{pedido['id']}/status", json={"status": "paid"}, headers=admin_headers)
        assert paid.json()["status_pagamento"] == "recebido"

        response = client.post(f"/pedidos/{pedido['id']}/finalizar", headers=admin_headers)
        assert response.status_code == 200
        assert response.json()["status"] == "delivered"


class TestPdv:
    """Testes para pedidos lançados no PDV."""

    def pdv_order(self, client, headers, catalog, metodo, **extra):
        return client.post(
            "/pdv/pedidos",
            json={
                "cliente_nome": "Balcão",
                "cliente_telefone": "0",
                "itens": [bacon_line(catalog)],
                "metodo_pagamento": metodo,
                **extra,
            },
            headers=headers,
        )

    def test_payroll_born_delivered(self, client, pdv_headers, catalog, events):
        """Desconto em folha nasce entregue e a receber."""
        response = self.pdv_order(client, pdv_headers, catalog, "payroll_discount")
        assert response.status_code == 201
        data = response.json()
        assert data["status"] == "delivered"
        assert data["status_pagamento"] == "a_receber"
        assert data["delivered_at"] is not None
        assert data["endereco"]["rua"] == "Não informado"
        assert data["endereco"]["estado"] == "NI"
        assert events.changes == [(data["id"], "delivered")]

    def test_pix_received(self, client, pdv_headers, catalog):
        data = self.pdv_order(client, pdv_headers, catalog, "pix", endereco="Rua B, 45").json()
        assert data["status"] == "pending"
        assert data["status_pagamento"] == "recebido"
        assert data["endereco"]["rua"] == "Rua B, 45"
        assert data["endereco"]["numero"] == "S/N"

    def test_cash_pending(self, client, pdv_headers, catalog):
        data = self.pdv_order(client, pdv_headers, catalog, "cash").json()
        assert (data["status"], data["status_pagamento"]) == ("pending", "a_receber")

    def test_admin_allowed(self, client, admin_headers, catalog):
        assert self.pdv_order(client, admin_headers, catalog, "cash").status_code == 201

    def test_cliente_denied(self, client, cliente_headers, catalog):
        assert self.pdv_order(client, cliente_headers, catalog, "cash").status_code == 403
