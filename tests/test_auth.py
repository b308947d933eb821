"""Testes para autenticação e papéis."""

from unittest.mock import MagicMock, patch
from urllib.parse import parse_qs, urlparse

import pytest

from cardapio.models import Empresa, PasswordResetToken
from cardapio.schemas import Role
from cardapio.services import notifications
from cardapio.services.auth import AuthService, is_authorized, slugify, unique_slug
from cardapio.services.notifications import PASSWORD_RESET_JOB


class TestIsAuthorized:
    """Testes para a verificação de papéis."""

    @pytest.mark.parametrize("required", list(Role))
    def test_admin_passes_everything(self, required):
        assert is_authorized("admin", required)

    def test_exact_role(self):
        assert is_authorized("entregador", Role.ENTREGADOR)
        assert is_authorized("pdv", "pdv")

    def test_other_role_denied(self):
        assert not is_authorized("entregador", Role.ADMIN)
        assert not is_authorized("cliente", Role.PDV)

    def test_without_role(self):
        assert not is_authorized(None, Role.CLIENTE)
        assert not is_authorized("", Role.CLIENTE)


class TestSlug:
    """Testes para o slug da empresa."""

    def test_slugify(self):
        assert slugify("Lanchonete do Zé") == "lanchonete-do-ze"
        assert slugify("  Pizza & Cia!  ") == "pizza-cia"

    def test_unique_slug(self, db_session, empresa):
        assert unique_slug(db_session, "Lanchonete Teste") == "lanchonete-teste-2"
        assert unique_slug(db_session, "Outra Casa") == "outra-casa"


class TestRegister:
    """Testes para cadastro."""

    def test_register_cliente(self, client):
        response = client.post(
            "/auth/register",
            json={"email": "Joao@Teste.com", "password": "senha123", "nome": "João"},
        )
        assert response.status_code == 201
        data = response.json()
        assert data["email"] == "joao@teste.com"
        assert data["role"] == "cliente"
        assert data["empresa_id"] is None

    def test_register_duplicate_email(self, client, admin_user):
        response = client.post(
            "/auth/register",
            json={"email": "admin@teste.com", "password": "senha123", "nome": "Outro"},
        )
        assert response.status_code == 409

    def test_register_admin_creates_company(self, client, db_session):
        """Admin é criado junto com a empresa."""
        response = client.post(
            "/auth/register-admin",
            json={
                "email": "dono@pizzaria.com",
                "password": "senha123",
                "nome": "Dono",
                "empresa_nome": "Pizzaria Bella Nápoli",
            },
        )
        assert response.status_code == 201
        data = response.json()
        assert data["user"]["role"] == "admin"
        assert data["empresa"]["slug"] == "pizzaria-bella-napoli"
        assert data["user"]["empresa_id"] == data["empresa"]["id"]

        empresa = db_session.get(Empresa, data["empresa"]["id"])
        assert empresa.admin_id == data["user"]["id"]


class TestLogin:
    """Testes para login, refresh e logout."""

    def login(self, client, password="senha123"):
        return client.post("/auth/login", json={"email": "admin@teste.com", "password": password})

    def test_login(self, client, admin_user):
        response = self.login(client)
        assert response.status_code == 200
        data = response.json()
        assert data["user"]["role"] == "admin"

        me = client.get("/auth/me", headers={"Authorization": f"Bearer {data['access_token']}"})
        assert me.status_code == 200
        assert me.json()["email"] == "admin@teste.com"

    def test_wrong_password(self, client, admin_user):
        response = self.login(client, password="errada1")
        assert response.status_code == 401
        assert response.json()["detail"] == "Email ou senha incorretos"

    def test_me_without_token(self, client):
        assert client.get("/auth/me").status_code == 401

    def test_me_invalid_token(self, client):
        response = client.get("/auth/me", headers={"Authorization": "Bearer invalido"})
        assert response.status_code == 401

    def test_refresh_rotates_token(self, client, admin_user):
        """Refresh token antigo deixa de valer."""
        tokens = self.login(client).json()

        response = client.post("/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
        assert response.status_code == 200
        new_tokens = response.json()
        assert new_tokens["refresh_token"] != tokens["refresh_token"]

        reused = client.post("/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
        assert reused.status_code == 401

    def test_logout(self, client, admin_user):
        tokens = self.login(client).json()
        assert client.post("/auth/logout", json={"refresh_token": tokens["refresh_token"]}).status_code == 200

        response = client.post("/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
        assert response.status_code == 401

    def test_inactive_user_cannot_login(self, client, admin_user, db_session):
        admin_user.is_active = False
        db_session.commit()
        assert self.login(client).status_code == 401


class TestPasswordReset:
    """Testes para recuperação de senha."""

    def test_same_answer_for_unknown_email(self, client, admin_user):
        known = client.post("/auth/password-reset/request", json={"email": "admin@teste.com"})
        unknown = client.post("/auth/password-reset/request", json={"email": "ninguem@teste.com"})
        assert known.status_code == unknown.status_code == 200
        assert known.json() == unknown.json()

    def test_reset_flow(self, client, admin_user):
        """O link enfileirado leva o token que redefine a senha."""
        queue = MagicMock()
        with (
            patch.object(notifications.settings, "password_reset_webhook_url", "http://msg.test/reset"),
            patch("cardapio.services.notifications.get_queue", return_value=queue),
        ):
            client.post("/auth/password-reset/request", json={"email": "admin@teste.com"})

        job, payload = queue.enqueue.call_args.args
        assert job == PASSWORD_RESET_JOB
        assert payload["email"] == "admin@teste.com"
        token = parse_qs(urlparse(payload["link"]).query)["token"][0]

        response = client.post(
            "/auth/password-reset/confirm", json={"token": token, "new_password": "novasenha"}
        )
        assert response.status_code == 200

        login = client.post("/auth/login", json={"email": "admin@teste.com", "password": "novasenha"})
        assert login.status_code == 200

        reused = client.post(
            "/auth/password-reset/confirm", json={"token": token, "new_password": "outrasenha"}
        )
        assert reused.status_code == 400

    def test_unknown_email_enqueues_nothing(self, client):
        queue = MagicMock()
        with (
            patch.object(notifications.settings, "password_reset_webhook_url", "http://msg.test/reset"),
            patch("cardapio.services.notifications.get_queue", return_value=queue),
        ):
            client.post("/auth/password-reset/request", json={"email": "ninguem@teste.com"})
        queue.enqueue.assert_not_called()

    def test_reset_token_created_without_webhook(self, client, admin_user, db_session):
        """Sem webhook configurado o token é gerado mas nada é enfileirado."""
        with (
            patch.object(notifications.settings, "password_reset_webhook_url", ""),
            patch("cardapio.services.notifications.get_queue") as get_queue,
        ):
            response = client.post("/auth/password-reset/request", json={"email": "admin@teste.com"})
        assert response.status_code == 200
        get_queue.assert_not_called()
        assert db_session.query(PasswordResetToken).filter_by(user_id=admin_user.id).count() == 1

    def test_invalid_token(self, client):
        response = client.post(
            "/auth/password-reset/confirm", json={"token": "x", "new_password": "novasenha"}
        )
        assert response.status_code == 400
        assert response.json()["detail"] == "Token inválido ou expirado"


class TestCompanyScope:
    """Usuário sem empresa não acessa rotas administrativas."""

    def test_admin_without_company(self, client, db_session, headers_for):
        user = AuthService(db_session).create_user(
            email="solto@teste.com", password="senha123", nome="Solto", role=Role.ADMIN.value
        )
        response = client.get("/admin/categorias", headers=headers_for(user))
        assert response.status_code == 403
        assert response.json()["detail"] == "Empresa não encontrada para o usuário"
