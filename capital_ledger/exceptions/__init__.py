"""Custom exceptions for the capital ledger."""

class LedgerError(Exception):
    """Base exception for all application errors."""
    def __init__(self, message="An internal error occurred", status_code=500, payload=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload

    def to_dict(self):
        rv = dict(self.payload or ())
        rv['message'] = self.message
        rv['status'] = 'error'
        return rv

class BusinessLogicError(LedgerError):
    """Exception raised for business logic violations."""
    def __init__(self, message, status_code=400, payload=None):
        super().__init__(message, status_code, payload)

class NotFoundError(LedgerError):
    """Exception raised when a resource is not found."""
    def __init__(self, message="Resource not found", payload=None):
        super().__init__(message, 404, payload)

class InvalidAmountError(BusinessLogicError):
    """Raised when a monetary amount is not a positive integer of minor units."""
    def __init__(self, amount, field='amount'):
        message = f"Invalid {field}: {amount!r} (must be a positive whole number of minor units)"
        super().__init__(message, payload={'field': field})
        self.amount = amount

class StoreNotFoundError(NotFoundError):
    """Raised when a store id does not resolve to an existing store."""
    def __init__(self, store_id):
        super().__init__(f"Store {store_id} not found", payload={'store_id': store_id})
        self.store_id = store_id

class StoreMismatchError(BusinessLogicError):
    """Raised when a product or sale does not belong to the store an operation targets."""
    def __init__(self, resource_id, store_id, resource='product'):
        message = f"{resource.capitalize()} {resource_id} does not belong to store {store_id}"
        payload = {f'{resource}_id': resource_id, 'store_id': store_id}
        super().__init__(message, status_code=409, payload=payload)

class MissingCostError(BusinessLogicError):
    """Raised when a credit-mode sale has no known cost price."""
    def __init__(self, item):
        super().__init__(f"Missing cost price for credit sale of {item}", payload={'item': item})

class LedgerTimeoutError(LedgerError):
    """Raised when an operation could not acquire its locks in time."""
    def __init__(self, message="Ledger operation timed out waiting for locks"):
        super().__init__(message, 503)
