"""Routers module."""

from .auth import router as auth_router
from .carrinho import router as carrinho_router
from .catalogo import router as catalogo_router
from .cupons import router as cupons_router
from .empresas import router as empresas_router
from .enderecos import router as enderecos_router
from .entregadores import router as entregadores_router
from .pdv import router as pdv_router
from .pedidos import router as pedidos_router

__all__ = [
    "auth_router",
    "carrinho_router",
    "catalogo_router",
    "cupons_router",
    "empresas_router",
    "enderecos_router",
    "entregadores_router",
    "pdv_router",
    "pedidos_router",
]
