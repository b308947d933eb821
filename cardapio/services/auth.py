"""Serviço de autenticação: senhas, tokens JWT, sessões e papéis por empresa."""

import hashlib
import logging
import re
import secrets
import unicodedata
from datetime import UTC, datetime, timedelta
from typing import Optional

import bcrypt
import jwt
from sqlalchemy.orm import Session

from ..config import settings
from ..models import Empresa, PasswordResetToken, User, UserSession, as_utc
from ..schemas import Role

logger = logging.getLogger(__name__)

JWT_ALGORITHM = "HS256"
ACCESS_TOKEN_LIFETIME = timedelta(minutes=30)
REFRESH_TOKEN_LIFETIME = timedelta(days=30)
RESET_TOKEN_LIFETIME = timedelta(hours=1)


class RegistrationError(Exception):
    """Cadastro recusado (email já usado, etc.)."""


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt(rounds=12)).decode()


def verify_password(password: str, password_hash: str) -> bool:
    return bcrypt.checkpw(password.encode(), password_hash.encode())


def _digest(token: str) -> str:
    # Só o SHA-256 dos tokens vai para o banco
    return hashlib.sha256(token.encode()).hexdigest()


def is_authorized(user_role: str | None, required_role: str | Role) -> bool:
    """
    Confere o papel do usuário.

    admin passa em qualquer verificação; os demais papéis precisam ser
    exatamente o exigido.
    """
    if not user_role:
        return False
    required = required_role.value if isinstance(required_role, Role) else required_role
    return user_role in (Role.ADMIN.value, required)


def slugify(nome: str) -> str:
    """'Lanchonete do Zé' -> 'lanchonete-do-ze'"""
    ascii_nome = unicodedata.normalize("NFKD", nome).encode("ascii", "ignore").decode()
    partes = re.findall(r"[a-z0-9_]+", ascii_nome.lower())
    return "-".join(partes)


def unique_slug(db: Session, nome: str) -> str:
    base = slugify(nome) or "empresa"
    existentes = {
        slug for (slug,) in db.query(Empresa.slug).filter(Empresa.slug.like(f"{base}%"))
    }
    if base not in existentes:
        return base
    sufixo = 2
    while f"{base}-{sufixo}" in existentes:
        sufixo += 1
    return f"{base}-{sufixo}"


def _encode_jwt(claims: dict, lifetime: timedelta) -> str:
    agora = datetime.now(UTC)
    return jwt.encode(
        {**claims, "iat": agora, "exp": agora + lifetime},
        settings.secret_key,
        algorithm=JWT_ALGORITHM,
    )


def create_access_token(user_id: int, role: str, empresa_id: Optional[int]) -> str:
    """Access token curto; carrega papel e empresa para as dependências de rota."""
    claims = {"sub": str(user_id), "role": role, "empresa_id": empresa_id, "type": "access"}
    return _encode_jwt(claims, ACCESS_TOKEN_LIFETIME)


def create_refresh_token(user_id: int, session_id: int) -> str:
    claims = {
        "sub": str(user_id),
        "session_id": session_id,
        "type": "refresh",
        "jti": secrets.token_urlsafe(16),
    }
    return _encode_jwt(claims, REFRESH_TOKEN_LIFETIME)


def decode_token(token: str) -> Optional[dict]:
    """Payload do JWT, ou None se expirado ou inválido."""
    try:
        return jwt.decode(token, settings.secret_key, algorithms=[JWT_ALGORITHM])
    except jwt.InvalidTokenError:
        return None


class AuthService:
    """Operações de conta e sessão sobre uma sessão do SQLAlchemy."""

    def __init__(self, db: Session):
        self.db = db

    # --- usuários -----------------------------------------------------------

    def get_user_by_id(self, user_id: int) -> Optional[User]:
        return self.db.query(User).filter(User.id == user_id, User.is_active.is_(True)).first()

    def email_in_use(self, email: str) -> bool:
        return self.db.query(User.id).filter(User.email == email.lower()).first() is not None

    def authenticate(self, email: str, password: str) -> Optional[User]:
        """Usuário ativo com email e senha corretos, ou None."""
        user = self.db.query(User).filter(
            User.email == email.lower(),
            User.is_active.is_(True),
        ).first()
        if user and verify_password(password, user.password_hash):
            return user
        return None

    def create_user(
        self,
        email: str,
        password: str,
        nome: str,
        role: str = Role.CLIENTE.value,
        telefone: Optional[str] = None,
        empresa_id: Optional[int] = None,
        commit: bool = True,
        **extra,
    ) -> User:
        """
        Cadastra um usuário com o papel informado.

        Campos adicionais (placa, status_entregador...) vão em ``extra``.
        Com ``commit=False`` apenas faz flush, para compor transações maiores.

        Raises:
            RegistrationError: email já cadastrado
        """
        if self.email_in_use(email):
            raise RegistrationError("Email já cadastrado")

        user = User(
            email=email.lower(),
            password_hash=hash_password(password),
            nome=nome,
            telefone=telefone,
            role=role,
            empresa_id=empresa_id,
            **extra,
        )
        self.db.add(user)
        if not commit:
            self.db.flush()
            return user

        self.db.commit()
        self.db.refresh(user)
        logger.info(f"Usuário {user.id} cadastrado como {role}")
        return user

    def register_admin(
        self,
        email: str,
        password: str,
        nome: str,
        empresa_nome: str,
        telefone: Optional[str] = None,
    ) -> tuple[User, Empresa]:
        """Cria a empresa e o seu administrador na mesma transação."""
        empresa = Empresa(nome=empresa_nome, telefone=telefone, slug=unique_slug(self.db, empresa_nome))
        self.db.add(empresa)
        self.db.flush()

        admin = self.create_user(
            email=email,
            password=password,
            nome=nome,
            role=Role.ADMIN.value,
            telefone=telefone,
            empresa_id=empresa.id,
            commit=False,
        )
        empresa.admin_id = admin.id
        self.db.commit()
        self.db.refresh(admin)
        self.db.refresh(empresa)

        logger.info(f"Empresa criada: {empresa.nome} (slug {empresa.slug}), admin {admin.id}")
        return admin, empresa

    def update_password(self, user: User, new_password: str) -> None:
        user.password_hash = hash_password(new_password)
        self.db.commit()

    # --- sessões ------------------------------------------------------------

    def _issue_tokens(self, session: UserSession, user: User) -> tuple[str, str]:
        """Gera o par de tokens e grava o hash do refresh na sessão."""
        refresh_token = create_refresh_token(user.id, session.id)
        session.refresh_token_hash = _digest(refresh_token)
        session.expires_at = datetime.now(UTC) + REFRESH_TOKEN_LIFETIME
        return create_access_token(user.id, user.role, user.empresa_id), refresh_token

    def create_session(
        self,
        user: User,
        device_info: Optional[str] = None,
        ip_address: Optional[str] = None,
    ) -> tuple[str, str]:
        """Abre uma sessão de login. Retorna (access_token, refresh_token)."""
        session = UserSession(
            user_id=user.id,
            refresh_token_hash=_digest(secrets.token_urlsafe(16)),
            device_info=device_info[:255] if device_info else None,
            ip_address=ip_address,
            expires_at=datetime.now(UTC) + REFRESH_TOKEN_LIFETIME,
        )
        self.db.add(session)
        self.db.flush()

        tokens = self._issue_tokens(session, user)
        user.last_login = datetime.now(UTC)
        self.db.commit()

        logger.info(f"Login: usuário {user.id} ({user.role})")
        return tokens

    def refresh_session(self, refresh_token: str) -> Optional[tuple[str, str]]:
        """
        Troca um refresh token por um novo par de tokens.

        O refresh apresentado deixa de valer (rotação). Retorna None quando o
        token é inválido, foi revogado ou já foi trocado.
        """
        payload = decode_token(refresh_token)
        if not payload or payload.get("type") != "refresh":
            return None

        user_id = int(payload.get("sub", 0))
        session = self.db.query(UserSession).filter(
            UserSession.id == payload.get("session_id"),
            UserSession.user_id == user_id,
            UserSession.is_active.is_(True),
        ).first()
        if (
            session is None
            or as_utc(session.expires_at) < datetime.now(UTC)
            or session.refresh_token_hash != _digest(refresh_token)
        ):
            return None

        user = self.get_user_by_id(user_id)
        if user is None:
            return None

        tokens = self._issue_tokens(session, user)
        session.last_used_at = datetime.now(UTC)
        self.db.commit()
        return tokens

    def logout(self, session_id: int, user_id: int) -> bool:
        """Revoga a sessão; False se ela não existe."""
        updated = self.db.query(UserSession).filter(
            UserSession.id == session_id,
            UserSession.user_id == user_id,
        ).update({"is_active": False})
        self.db.commit()
        return updated > 0

    # --- recuperação de senha -----------------------------------------------

    def create_password_reset_token(self, user: User) -> str:
        """Emite um token de recuperação; os pendentes do usuário são descartados."""
        self.db.query(PasswordResetToken).filter(
            PasswordResetToken.user_id == user.id,
            PasswordResetToken.is_used.is_(False),
        ).update({"is_used": True})

        token = secrets.token_urlsafe(32)
        self.db.add(PasswordResetToken(
            user_id=user.id,
            token_hash=_digest(token),
            expires_at=datetime.now(UTC) + RESET_TOKEN_LIFETIME,
        ))
        self.db.commit()
        return token

    def _active_reset_token(self, token: str) -> Optional[PasswordResetToken]:
        return self.db.query(PasswordResetToken).filter(
            PasswordResetToken.token_hash == _digest(token),
            PasswordResetToken.is_used.is_(False),
        ).first()

    def verify_password_reset_token(self, token: str) -> Optional[User]:
        reset = self._active_reset_token(token)
        if reset is None or as_utc(reset.expires_at) <= datetime.now(UTC):
            return None
        return self.db.get(User, reset.user_id)

    def use_password_reset_token(self, token: str) -> bool:
        reset = self._active_reset_token(token)
        if reset is None:
            return False
        reset.is_used = True
        self.db.commit()
        return True
