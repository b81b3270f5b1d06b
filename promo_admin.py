"""Back-office management of promo codes."""
from typing import Any, Dict, List, Optional

from pymongo import DESCENDING
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from database import create_document, serialize_id, to_naive_utc, to_object_id, utc_now
from errors import DuplicatePromoCodeError, InvalidPromoCodeError, PromoCodeNotFoundError
from logging_setup import get_logger
from promo_service import canonical_code
from schemas import DiscountType, PromoCode, PromoCodePayload, TargetType

logger = get_logger("promo_admin")


def _discount_type(value: Optional[str]) -> DiscountType:
    try:
        return DiscountType((value or "").strip().upper())
    except ValueError:
        raise InvalidPromoCodeError("Le type de réduction doit être 'PERCENT' ou 'AMOUNT'.")


def _target_type(value: Optional[str]) -> TargetType:
    try:
        return TargetType((value or "ALL").strip().upper())
    except ValueError:
        raise InvalidPromoCodeError("La cible doit être 'ALL', 'PRODUCT' ou 'CATEGORY'.")


def _validate(promo: PromoCode) -> PromoCode:
    if not promo.code:
        raise InvalidPromoCodeError("Le code promo est obligatoire.")
    if promo.discount_type is None:
        raise InvalidPromoCodeError("Le type de réduction doit être 'PERCENT' ou 'AMOUNT'.")
    if promo.discount_value <= 0:
        raise InvalidPromoCodeError("La valeur de réduction doit être strictement positive.")
    if promo.discount_type == DiscountType.PERCENT and promo.discount_value > 100:
        raise InvalidPromoCodeError("Une réduction en pourcentage ne peut dépasser 100.")
    if promo.max_uses is not None and promo.max_uses <= 0:
        raise InvalidPromoCodeError("maxUses doit être un entier positif ou null pour illimité.")
    if promo.starts_at and promo.ends_at and promo.starts_at > promo.ends_at:
        raise InvalidPromoCodeError("La date de début doit précéder la date de fin.")
    if promo.target_type == TargetType.ALL:
        promo.product_category_id = None
    return promo


def _load(db: Database, promo_id: str) -> Dict[str, Any]:
    oid = to_object_id(promo_id)
    doc = db["promocode"].find_one({"_id": oid}) if oid is not None else None
    if doc is None:
        raise PromoCodeNotFoundError(promo_id)
    return doc


def _code_taken(db: Database, code: str, promo_id: Optional[str] = None) -> bool:
    query: Dict[str, Any] = {"code": code}
    if promo_id is not None:
        query["_id"] = {"$ne": to_object_id(promo_id)}
    return db["promocode"].find_one(query) is not None


def list_promo_codes(db: Database) -> List[PromoCode]:
    docs = db["promocode"].find().sort("created_at", DESCENDING)
    return [PromoCode(**serialize_id(doc)) for doc in docs]


def create_promo_code(db: Database, payload: PromoCodePayload) -> PromoCode:
    if payload.discount_value is None:
        raise InvalidPromoCodeError("La valeur de réduction est obligatoire.")
    promo = _validate(
        PromoCode(
            code=canonical_code(payload.code),
            description=(payload.description or "").strip() or None,
            is_active=True if payload.is_active is None else payload.is_active,
            target_type=_target_type(payload.target_type),
            product_category_id=payload.product_category_id or None,
            discount_type=_discount_type(payload.discount_type),
            discount_value=round(payload.discount_value),
            starts_at=to_naive_utc(payload.starts_at),
            ends_at=to_naive_utc(payload.ends_at),
            max_uses=payload.max_uses,
            current_uses=0,
        )
    )
    if _code_taken(db, promo.code):
        raise DuplicatePromoCodeError(promo.code)
    # the unique index on code settles concurrent creates
    try:
        promo.id = create_document(db, "promocode", promo)
    except DuplicateKeyError:
        raise DuplicatePromoCodeError(promo.code)
    logger.info("promo code %s created", promo.code)
    return promo


def update_promo_code(db: Database, promo_id: str, payload: PromoCodePayload) -> PromoCode:
    current = PromoCode(**serialize_id(_load(db, promo_id)))
    changes = payload.model_dump(exclude_unset=True)

    if "code" in changes:
        current.code = canonical_code(payload.code)
        if _code_taken(db, current.code, promo_id):
            raise DuplicatePromoCodeError(current.code)
    if "description" in changes:
        current.description = (payload.description or "").strip() or None
    if "discount_type" in changes:
        current.discount_type = _discount_type(payload.discount_type)
    if "discount_value" in changes:
        if payload.discount_value is None:
            raise InvalidPromoCodeError("La valeur de réduction est obligatoire.")
        current.discount_value = round(payload.discount_value)
    if "max_uses" in changes:
        current.max_uses = payload.max_uses
    if "is_active" in changes and payload.is_active is not None:
        current.is_active = payload.is_active
    if "starts_at" in changes:
        current.starts_at = to_naive_utc(payload.starts_at)
    if "ends_at" in changes:
        current.ends_at = to_naive_utc(payload.ends_at)
    if "target_type" in changes:
        current.target_type = _target_type(payload.target_type)
    if "product_category_id" in changes:
        current.product_category_id = payload.product_category_id or None

    _validate(current)
    fields = current.model_dump(exclude={"id", "current_uses"})
    fields["target_type"] = current.target_type.value
    fields["discount_type"] = current.discount_type.value
    fields["updated_at"] = utc_now()
    try:
        db["promocode"].update_one({"_id": to_object_id(promo_id)}, {"$set": fields})
    except DuplicateKeyError:
        raise DuplicatePromoCodeError(current.code)
    logger.info("promo code %s updated", current.code)
    return current


def delete_promo_code(db: Database, promo_id: str) -> None:
    doc = _load(db, promo_id)
    db["promocode"].delete_one({"_id": doc["_id"]})
    logger.info("promo code %s deleted", doc.get("code"))
