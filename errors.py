"""Custom exceptions for the ComptaMatch API."""


class ComptaMatchError(Exception):
    """Base exception for all ComptaMatch errors."""

    pass


class InvalidProductsError(ComptaMatchError):
    """Raised when a cart references a missing, inactive or duplicated product."""

    def __init__(self):
        super().__init__("INVALID_PRODUCTS")


class InvalidBinaryError(ComptaMatchError):
    """Raised when a product binary/version is no longer available.

    Reserved for the downloads subsystem; the cart engine never raises it.
    """

    def __init__(self):
        super().__init__("INVALID_BINARY")


class PromoCodeNotFoundError(ComptaMatchError):
    """Raised when a promo code id doesn't exist."""

    def __init__(self, promo_id: str):
        self.promo_id = promo_id
        super().__init__(f"Code promo introuvable : {promo_id}")


class DuplicatePromoCodeError(ComptaMatchError):
    """Raised when creating a promo code whose canonical form already exists."""

    def __init__(self, code: str):
        self.code = code
        super().__init__(f"Le code promo {code} existe déjà.")


class InvalidPromoCodeError(ComptaMatchError):
    """Raised when an admin promo payload fails validation."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)


class OrderNotFoundError(ComptaMatchError):
    """Raised when an order id doesn't exist."""

    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__(f"Commande introuvable : {order_id}")


class DatabaseUnavailableError(ComptaMatchError):
    """Raised when DATABASE_URL / DATABASE_NAME are not configured."""

    def __init__(self):
        super().__init__("Base de données non configurée.")
