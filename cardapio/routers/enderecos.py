"""Router de endereços: sugestão por CEP."""

from fastapi import APIRouter, HTTPException, Request
from slowapi import Limiter
from slowapi.util import get_remote_address

from ..schemas import AddressLookupOut
from ..services.cep import lookup_cep

router = APIRouter()
limiter = Limiter(key_func=get_remote_address)


@router.get("/cep/{cep}", response_model=AddressLookupOut)
@limiter.limit("30/minute")
async def buscar_cep(request: Request, cep: str):
    """Sugere rua, bairro, cidade e estado a partir do CEP."""
    endereco = await lookup_cep(cep)
    if endereco is None:
        raise HTTPException(status_code=404, detail="CEP não encontrado")
    return endereco
