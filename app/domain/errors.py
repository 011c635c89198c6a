"""
Domain-level error types shared by use cases and the HTTP layer.
"""


class NotFoundError(LookupError):
    """A referenced record (card, debt, statement...) does not exist."""

    def __init__(self, entity: str, record_id):
        super().__init__(f"{entity} not found: {record_id}")
        self.entity = entity
        self.record_id = record_id


class FinanceValidationError(ValueError):
    pass
