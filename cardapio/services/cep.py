"""Consulta de endereço por CEP (ViaCEP)."""

import logging

import httpx

from ..config import settings
from ..schemas import CEP_PATTERN, AddressLookupOut, clean_cep

logger = logging.getLogger(__name__)


async def lookup_cep(cep: str, transport: httpx.AsyncBaseTransport | None = None) -> AddressLookupOut | None:
    """
    Busca o endereço de um CEP.

    O resultado é só uma sugestão para preencher o formulário. CEP inválido,
    inexistente ou serviço fora do ar retornam None.
    """
    digits = clean_cep(cep)
    if not CEP_PATTERN.match(digits):
        return None

    try:
        async with httpx.AsyncClient(
            base_url=settings.cep_api_url, timeout=settings.cep_timeout, transport=transport
        ) as client:
            resp = await client.get(f"/{digits}/json/")
    except httpx.HTTPError as e:
        logger.warning(f"Serviço de CEP indisponível ({digits}): {e}")
        return None

    if resp.status_code >= 400:
        logger.warning(f"Serviço de CEP retornou {resp.status_code} para {digits}")
        return None

    try:
        data = resp.json()
    except ValueError:
        logger.warning(f"Resposta inválida do serviço de CEP para {digits}")
        return None

    if not isinstance(data, dict) or data.get("erro"):
        return None

    return AddressLookupOut(
        cep=digits,
        rua=data.get("logradouro") or "",
        bairro=data.get("bairro") or "",
        cidade=data.get("localidade") or "",
        estado=data.get("uf") or "",
    )
