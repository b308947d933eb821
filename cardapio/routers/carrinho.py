"""Router do carrinho: cotação de totais."""

import logging

from fastapi import APIRouter, HTTPException, Request
from slowapi import Limiter
from slowapi.util import get_remote_address

from ..config import settings
from ..database import DbSession
from ..schemas import CartLineOut, CartQuoteRequest, CartQuoteResponse, CouponOut
from ..services.orders import OrderError, get_empresa_by_slug, quote_cart
from ..services.variations import VariationSelectionError

logger = logging.getLogger(__name__)

router = APIRouter()
limiter = Limiter(key_func=get_remote_address)


@router.post("/cotacao", response_model=CartQuoteResponse)
@limiter.limit("60/minute")
def cotacao(request: Request, payload: CartQuoteRequest, db: DbSession):
    """
    Calcula os totais de um carrinho com os preços atuais do cardápio.

    Linhas com o mesmo item e as mesmas escolhas são somadas. Cupom recusado
    não impede a cotação: volta em `cupom_erro` e o desconto fica zerado.
    """
    empresa = get_empresa_by_slug(db, payload.empresa_slug)
    if not empresa:
        raise HTTPException(status_code=404, detail="Empresa não encontrada")

    try:
        quote = quote_cart(db, empresa.id, payload.itens, payload.cupom, settings.today())
    except (OrderError, VariationSelectionError) as e:
        raise HTTPException(status_code=400, detail=str(e))

    return CartQuoteResponse(
        itens=[
            CartLineOut(
                key=item.key,
                menu_item_id=item.menu_item_id,
                nome=item.nome,
                preco=item.preco,
                preco_a_partir_de=item.preco_a_partir_de,
                quantidade=item.quantidade,
                variacoes=list(item.variacoes),
                subtotal=item.subtotal,
            )
            for item in quote.state.items
        ],
        item_count=quote.totals.item_count,
        subtotal=quote.totals.subtotal,
        desconto=quote.totals.discount,
        total=quote.totals.final_total,
        cupom=CouponOut.model_validate(quote.coupon) if quote.coupon else None,
        cupom_erro=quote.coupon_error,
    )
