# recordshop/api/routers/seller_auth.py
from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response

from recordshop.api.deps import get_seller_auth_service, require_admin
from recordshop.domain.errors import ConfigurationError, SellerAuthError
from recordshop.domain.schemas import SellerConnectOut, SellerStatusOut
from recordshop.services.seller_auth_service import SellerAuthService
from recordshop.utils.settings import OAUTH_SECRET_COOKIE, OAUTH_SECRET_TTL_SECONDS
from recordshop.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/auth/discogs", tags=["admin"])


@router.get("", response_model=SellerConnectOut, dependencies=[Depends(require_admin)])
def start_connect(
    response: Response,
    callback_url: str = Query(..., min_length=1),
    svc: SellerAuthService = Depends(get_seller_auth_service),
):
    """Poczatek laczenia konta sprzedawcy. Sekret request tokena idzie do cookie."""
    try:
        start = svc.start(callback_url)
    except ConfigurationError as e:
        logger.error(f"Seller connect not configured: {e}")
        raise HTTPException(status_code=500, detail="Marketplace OAuth is not configured")
    except SellerAuthError as e:
        raise HTTPException(status_code=502, detail=str(e))

    response.set_cookie(
        OAUTH_SECRET_COOKIE,
        start.oauth_token_secret,
        max_age=OAUTH_SECRET_TTL_SECONDS,
        httponly=True,
        samesite="lax",
    )
    return SellerConnectOut(oauth_token=start.oauth_token, authorize_url=start.authorize_url)


# bez klucza admina - tu wraca przegladarka z marketplace, sekret jest w cookie
@router.get("/callback", response_model=SellerStatusOut)
def connect_callback(
    request: Request,
    response: Response,
    oauth_token: str | None = None,
    oauth_verifier: str | None = None,
    svc: SellerAuthService = Depends(get_seller_auth_service),
):
    oauth_token_secret = request.cookies.get(OAUTH_SECRET_COOKIE)
    if not oauth_token or not oauth_verifier or not oauth_token_secret:
        logger.warning(
            f"Invalid OAuth callback: token={bool(oauth_token)} verifier={bool(oauth_verifier)} "
            f"secret={bool(oauth_token_secret)}"
        )
        raise HTTPException(status_code=400, detail="Invalid OAuth callback parameters")

    try:
        credential = svc.complete(oauth_token, oauth_token_secret, oauth_verifier)
    except ConfigurationError as e:
        logger.error(f"Seller connect not configured: {e}")
        raise HTTPException(status_code=500, detail="Marketplace OAuth is not configured")
    except SellerAuthError as e:
        raise HTTPException(status_code=502, detail=str(e))

    response.delete_cookie(OAUTH_SECRET_COOKIE)
    return SellerStatusOut(connected=True, username=credential.username, last_verified=credential.last_verified)


@router.get("/status", response_model=SellerStatusOut, dependencies=[Depends(require_admin)])
def connect_status(svc: SellerAuthService = Depends(get_seller_auth_service)):
    return svc.status()
