# recordshop/domain/errors.py


class ConfigurationError(RuntimeError):
    """Brak wymaganej konfiguracji (token, URL). Nie ponawiamy."""


class RetryExhaustedError(RuntimeError):
    """Remote call failed after every retry attempt."""

    def __init__(self, url: str, last_status: int | None, attempts: int):
        self.url = url
        self.last_status = last_status
        self.attempts = attempts
        status = last_status if last_status is not None else "no response"
        super().__init__(f"Request to {url} failed after {attempts} attempts (last status: {status})")


class InvalidExternalId(ValueError):
    pass


class CartItemNotFound(ValueError):
    pass


class InvalidStatusTransition(ValueError):
    pass


class MetadataParseError(ValueError):
    """Webhook metadata nie pasuje do kontraktu (items / customer)."""


class SellerAuthError(RuntimeError):
    """Marketplace odrzucil albo nie dokonczyl wymiany tokenow OAuth1."""
