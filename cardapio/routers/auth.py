"""Router de contas: cadastro, login com JWT e dependências de papel/empresa."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel, ConfigDict, EmailStr, Field
from slowapi import Limiter
from slowapi.util import get_remote_address

from ..database import DbSession
from ..models import User
from ..schemas import EmpresaOut, Role
from ..services.auth import AuthService, RegistrationError, decode_token, is_authorized
from ..services.notifications import enqueue_password_reset

logger = logging.getLogger(__name__)
router = APIRouter()
limiter = Limiter(key_func=get_remote_address)
bearer = HTTPBearer(auto_error=False)


class Credentials(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=6)


class RegisterRequest(Credentials):
    """Cadastro de cliente."""
    nome: str = Field(..., min_length=2)
    telefone: Optional[str] = None


class AdminRegisterRequest(RegisterRequest):
    """Cadastro do administrador junto com a empresa."""
    empresa_nome: str = Field(..., min_length=2, max_length=255)


class UserOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    email: str
    nome: str
    telefone: Optional[str] = None
    role: Role
    empresa_id: Optional[int] = None
    is_active: bool


class Tokens(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"


class LoginResponse(Tokens):
    user: UserOut


class AdminRegisterResponse(BaseModel):
    user: UserOut
    empresa: EmpresaOut


class RefreshRequest(BaseModel):
    refresh_token: str


class PasswordResetRequest(BaseModel):
    email: EmailStr


class PasswordResetConfirm(BaseModel):
    token: str
    new_password: str = Field(..., min_length=6)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


# --- dependências -----------------------------------------------------------

def get_current_user(
    db: DbSession,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer),
) -> User:
    """Usuário do access token no header Authorization."""
    if credentials is None:
        raise _unauthorized("Token de autenticação não fornecido")

    payload = decode_token(credentials.credentials)
    if not payload or payload.get("type") != "access":
        raise _unauthorized("Token inválido ou expirado")

    user = AuthService(db).get_user_by_id(int(payload.get("sub", 0)))
    if user is None:
        raise _unauthorized("Usuário não encontrado ou inativo")
    return user


def require_role(*roles: Role):
    """Dependency factory: exige um dos papéis (admin passa sempre)."""

    def checker(user: User = Depends(get_current_user)) -> User:
        if not any(is_authorized(user.role, role) for role in roles):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Permissão negada")
        return user

    return checker


def get_empresa_id(user: User) -> int:
    """Empresa do usuário logado; 403 quando não há vínculo."""
    if user.empresa_id is None:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Empresa não encontrada para o usuário",
        )
    return user.empresa_id


# --- cadastro ---------------------------------------------------------------

@router.post("/register", response_model=UserOut, status_code=status.HTTP_201_CREATED)
@limiter.limit("10/minute")
def register(request: Request, data: RegisterRequest, db: DbSession):
    try:
        return AuthService(db).create_user(
            email=data.email,
            password=data.password,
            nome=data.nome,
            telefone=data.telefone,
        )
    except RegistrationError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))


@router.post("/register-admin", response_model=AdminRegisterResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit("5/minute")
def register_admin(request: Request, data: AdminRegisterRequest, db: DbSession):
    """
    Cria uma empresa e o seu administrador.

    O slug da empresa vem do nome: minúsculas, espaços viram '-', outros
    símbolos são removidos.
    """
    try:
        admin, empresa = AuthService(db).register_admin(
            email=data.email,
            password=data.password,
            nome=data.nome,
            empresa_nome=data.empresa_nome,
            telefone=data.telefone,
        )
    except RegistrationError as e:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    return AdminRegisterResponse(user=UserOut.model_validate(admin), empresa=EmpresaOut.model_validate(empresa))


# --- sessão -----------------------------------------------------------------

@router.post("/login", response_model=LoginResponse)
@limiter.limit("10/minute")
def login(request: Request, data: Credentials, db: DbSession):
    service = AuthService(db)
    user = service.authenticate(data.email, data.password)
    if user is None:
        logger.info(f"Login recusado para {data.email}")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Email ou senha incorretos")

    access, refresh = service.create_session(
        user,
        device_info=request.headers.get("user-agent"),
        ip_address=request.client.host if request.client else None,
    )
    return LoginResponse(access_token=access, refresh_token=refresh, user=UserOut.model_validate(user))


@router.post("/refresh", response_model=Tokens)
@limiter.limit("30/minute")
def refresh(request: Request, data: RefreshRequest, db: DbSession):
    """Troca o refresh token por um novo par; o anterior deixa de valer."""
    tokens = AuthService(db).refresh_session(data.refresh_token)
    if tokens is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Refresh token inválido ou expirado",
        )
    access, new_refresh = tokens
    return Tokens(access_token=access, refresh_token=new_refresh)


@router.post("/logout")
def logout(data: RefreshRequest, db: DbSession):
    payload = decode_token(data.refresh_token)
    if payload and payload.get("type") == "refresh":
        AuthService(db).logout(payload.get("session_id"), int(payload.get("sub", 0)))
    return {"message": "Logout realizado"}


@router.get("/me", response_model=UserOut)
def get_me(user: User = Depends(get_current_user)):
    return user


# --- recuperação de senha ---------------------------------------------------

@router.post("/password-reset/request")
@limiter.limit("5/minute")
def request_password_reset(request: Request, data: PasswordResetRequest, db: DbSession):
    """
    Gera um token de recuperação e enfileira o envio do link.

    A resposta é a mesma exista ou não o email.
    """
    user = db.query(User).filter(User.email == data.email.lower(), User.is_active.is_(True)).first()
    if user is not None:
        token = AuthService(db).create_password_reset_token(user)
        enqueue_password_reset(user.email, user.nome, token)
        logger.info(f"Token de recuperação gerado para usuário {user.id}")
    return {"message": "Se o email estiver cadastrado, você receberá as instruções"}


@router.post("/password-reset/confirm")
@limiter.limit("10/minute")
def confirm_password_reset(request: Request, data: PasswordResetConfirm, db: DbSession):
    service = AuthService(db)
    user = service.verify_password_reset_token(data.token)
    if user is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Token inválido ou expirado")

    service.update_password(user, data.new_password)
    service.use_password_reset_token(data.token)
    logger.info(f"Senha redefinida para usuário {user.id}")
    return {"message": "Senha alterada com sucesso"}
