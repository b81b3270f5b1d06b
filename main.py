import hmac
from typing import Any, Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from passlib.context import CryptContext
from pymongo.database import Database

from analytics import RateLimiter, parse_event_type, record_event
from cart_service import compute_cart_totals
from config import Settings, get_settings
from dashboard_range import parse_dashboard_selection
from dashboard_stats import get_dashboard_stats
from database import connect, create_document, get_db, get_documents, serialize_id
from errors import (
    ComptaMatchError,
    DatabaseUnavailableError,
    DuplicatePromoCodeError,
    InvalidBinaryError,
    InvalidProductsError,
    InvalidPromoCodeError,
    OrderNotFoundError,
    PromoCodeNotFoundError,
)
from logging_setup import configure_level, get_logger
from order_service import create_pending_order, mark_order_paid
from promo_admin import create_promo_code, delete_promo_code, list_promo_codes, update_promo_code
from promo_service import apply_promo_to_cart
from schemas import (
    CartRequest,
    CheckoutRequest,
    MarkPaidRequest,
    Product as ProductSchema,
    ProductCreate,
    PromoCodePayload,
    TrackEventRequest,
    User as UserSchema,
    UserCreate,
    UserLogin,
)

settings = get_settings()
configure_level(settings.log_level)
logger = get_logger("api")

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

app = FastAPI(title="ComptaMatch API")
app.state.rate_limiter = RateLimiter()

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

ERROR_STATUS_CODES = {
    InvalidProductsError: 400,
    InvalidBinaryError: 400,
    InvalidPromoCodeError: 400,
    PromoCodeNotFoundError: 404,
    OrderNotFoundError: 404,
    DuplicatePromoCodeError: 409,
    DatabaseUnavailableError: 503,
}


@app.exception_handler(ComptaMatchError)
async def comptamatch_error_handler(request: Request, exc: ComptaMatchError) -> JSONResponse:
    status_code = ERROR_STATUS_CODES.get(type(exc), 500)
    if request.url.path.startswith("/api/cart/"):
        logger.error("cart request failed: %s", exc)
        return cart_error(status_code, "SERVER", "Le service est momentanément indisponible.")
    return JSONResponse(
        status_code=status_code,
        content={"detail": str(exc), "error_type": type(exc).__name__},
    )


# Helpers

def require_admin(
    x_admin_token: Optional[str] = Header(None),
    settings: Settings = Depends(get_settings),
) -> None:
    expected = settings.admin_api_token
    if not expected or not hmac.compare_digest(x_admin_token or "", expected):
        raise HTTPException(status_code=401, detail="Authentification administrateur requise")


def cart_error(status_code: int, error_code: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"ok": False, "errorCode": error_code, "message": message},
    )


EMPTY_CART = (400, "EMPTY", "Votre panier est vide ou invalide.")
INVALID_PRODUCTS = (400, "PRODUCTS", "Certains produits du panier sont invalides.")
INVALID_BINARY = (400, "BINARY", "Une version de logiciel sélectionnée n'est plus disponible.")
INVALID_PROMO = (400, "INVALID", "Ce code promo est invalide ou expiré.")


def is_valid_cart(items: Any) -> bool:
    return isinstance(items, list) and len(items) > 0 and all(isinstance(it, dict) for it in items)


def client_ip(request: Request, trust_proxy: bool = False) -> str:
    # X-Forwarded-For is client-controlled unless a proxy we run sets it
    if trust_proxy:
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded and forwarded.split(",")[0].strip():
            return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


def parse_flag(value: Optional[str]) -> bool:
    return (value or "").strip().lower() in ("1", "true", "yes", "on")


# Health
@app.get("/")
def read_root():
    return {"message": "ComptaMatch backend running"}


@app.get("/api/health")
def health(settings: Settings = Depends(get_settings)):
    try:
        db = connect(settings)
        if db is None:
            return {"backend": "ok", "db": "not_configured"}
        return {"backend": "ok", "db": "ok", "collections": db.list_collection_names()}
    except Exception as e:
        logger.warning("health check failed: %s", e)
        return {"backend": "ok", "db": "error"}


# Auth (sessionless - return user id)
@app.post("/api/auth/register")
def register(user: UserCreate, db: Database = Depends(get_db)):
    if db["user"].find_one({"email": user.email}):
        raise HTTPException(status_code=400, detail="Un compte existe déjà avec cet e-mail")
    password_hash = pwd_context.hash(user.password)
    user_doc = UserSchema(name=user.name, email=user.email, password_hash=password_hash)
    user_id = create_document(db, "user", user_doc)
    return {"user_id": user_id, "name": user.name, "email": user.email}


@app.post("/api/auth/login")
def login(creds: UserLogin, db: Database = Depends(get_db)):
    doc = db["user"].find_one({"email": creds.email})
    if not doc or not pwd_context.verify(creds.password, doc.get("password_hash", "")):
        raise HTTPException(status_code=401, detail="E-mail ou mot de passe incorrect")
    return {"user_id": str(doc.get("_id")), "name": doc.get("name"), "email": doc.get("email")}


# Products
@app.post("/api/products", dependencies=[Depends(require_admin)], status_code=201)
def create_product(p: ProductCreate, db: Database = Depends(get_db)):
    prod = ProductSchema(**p.model_dump())
    prod_id = create_document(db, "product", prod)
    return {"product_id": prod_id}


@app.get("/api/products")
def list_products(db: Database = Depends(get_db)):
    docs = get_documents(db, "product", {"is_active": True})
    return [ProductSchema(**serialize_id(d)).model_dump(by_alias=True) for d in docs]


# Cart
@app.post("/api/cart/apply-promo")
def apply_promo(payload: CartRequest, db: Database = Depends(get_db)):
    if not is_valid_cart(payload.items):
        return cart_error(*EMPTY_CART)
    code = payload.code if isinstance(payload.code, str) else ""
    try:
        result = apply_promo_to_cart(db, payload.items, code)
    except InvalidProductsError:
        return cart_error(*INVALID_PRODUCTS)
    except InvalidBinaryError:
        return cart_error(*INVALID_BINARY)
    except Exception:
        logger.exception("Erreur lors de la validation du code promo")
        return cart_error(500, "SERVER", "Impossible de valider le code promo pour le moment.")

    if result is None:
        return cart_error(*INVALID_PROMO)

    return {
        "ok": True,
        "code": result["code"],
        "discountAmount": result["discount_amount"],
        "newTotal": result["new_total"],
        "message": "Réduction appliquée avec succès.",
    }


@app.post("/api/cart/remove-promo")
def remove_promo(payload: CartRequest, db: Database = Depends(get_db)):
    if not is_valid_cart(payload.items):
        return cart_error(*EMPTY_CART)
    try:
        cart = compute_cart_totals(db, payload.items)
    except InvalidProductsError:
        return cart_error(*INVALID_PRODUCTS)
    except InvalidBinaryError:
        return cart_error(*INVALID_BINARY)
    except Exception:
        logger.exception("Erreur lors du retrait du code promo")
        return cart_error(500, "SERVER", "Impossible de retirer le code promo pour le moment.")

    return {
        "ok": True,
        "discountAmount": 0,
        "newTotal": cart.total_cents,
        "message": "Code promo retiré.",
    }


# Checkout -> create a pending order; payment is confirmed by mark-paid
@app.post("/api/checkout", status_code=201)
def checkout(req: CheckoutRequest, db: Database = Depends(get_db), settings: Settings = Depends(get_settings)):
    if not is_valid_cart(req.items):
        raise HTTPException(status_code=400, detail="Votre panier est vide ou invalide.")
    order = create_pending_order(db, req.user_id, req.items, req.code, currency=settings.currency)
    return {
        "order_id": order.id,
        "total": order.total_paid,
        "discount_amount": order.discount_amount,
        "status": order.status.value,
    }


# Analytics
@app.post("/api/analytics/track", status_code=204)
def track_event(
    payload: TrackEventRequest,
    request: Request,
    db: Database = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    if not settings.tracking_enabled:
        return JSONResponse(status_code=503, content={"message": "Tracking désactivé."})

    ip = client_ip(request, settings.trust_proxy)
    if request.app.state.rate_limiter.hit(ip):
        return JSONResponse(status_code=429, content={"message": "Trop d'événements. Réessayer plus tard."})

    event_type = parse_event_type(payload.type)
    if event_type is None:
        return JSONResponse(status_code=400, content={"message": "Type d'événement invalide."})

    record_event(db, event_type, payload, ip)
    return Response(status_code=204)


# Admin
@app.get("/api/admin/dashboard", dependencies=[Depends(require_admin)])
def admin_dashboard(
    range: Optional[str] = None,
    year: Optional[str] = None,
    month: Optional[str] = None,
    week_start: Optional[str] = Query(None, alias="weekStart"),
    day: Optional[str] = None,
    include_test_account: Optional[str] = Query(None, alias="includeTestAccount"),
    db: Database = Depends(get_db),
):
    try:
        selection = parse_dashboard_selection(range, year, month, week_start, day)
        stats = get_dashboard_stats(db, selection, include_test_account=parse_flag(include_test_account))
    except Exception:
        logger.exception("Erreur lors du chargement du dashboard admin")
        return JSONResponse(status_code=500, content={"message": "Impossible de charger les statistiques."})
    return {"stats": stats.model_dump(by_alias=True, mode="json")}


@app.get("/api/admin/promo-codes", dependencies=[Depends(require_admin)])
def admin_list_promo_codes(db: Database = Depends(get_db)):
    return {"promos": [p.model_dump(by_alias=True, mode="json") for p in list_promo_codes(db)]}


@app.post("/api/admin/promo-codes", dependencies=[Depends(require_admin)], status_code=201)
def admin_create_promo_code(payload: PromoCodePayload, db: Database = Depends(get_db)):
    promo = create_promo_code(db, payload)
    return {"promo": promo.model_dump(by_alias=True, mode="json")}


@app.patch("/api/admin/promo-codes/{promo_id}", dependencies=[Depends(require_admin)])
def admin_update_promo_code(promo_id: str, payload: PromoCodePayload, db: Database = Depends(get_db)):
    promo = update_promo_code(db, promo_id, payload)
    return {"promo": promo.model_dump(by_alias=True, mode="json")}


@app.delete("/api/admin/promo-codes/{promo_id}", dependencies=[Depends(require_admin)], status_code=204)
def admin_delete_promo_code(promo_id: str, db: Database = Depends(get_db)):
    delete_promo_code(db, promo_id)
    return Response(status_code=204)


@app.post("/api/admin/orders/{order_id}/mark-paid", dependencies=[Depends(require_admin)])
def admin_mark_order_paid(order_id: str, payload: MarkPaidRequest, db: Database = Depends(get_db)):
    order = mark_order_paid(db, order_id, paid_at=payload.paid_at, stripe_fee_amount=payload.stripe_fee_amount)
    return {"order": order.model_dump(by_alias=True, mode="json")}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=settings.port)
