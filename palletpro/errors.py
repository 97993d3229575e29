from __future__ import annotations


class StaleWriteError(Exception):
    """The stored record moved past the version the caller last saw.

    Not retried automatically; the user reloads and reapplies the change.
    """

    def __init__(self, entity: str, entity_id: int | None = None) -> None:
        self.entity = entity
        self.entity_id = entity_id
        if entity_id is None:
            super().__init__(f'{entity} was modified by another session')
        else:
            super().__init__(f'{entity} {entity_id} was modified by another session')


class RecordNotFoundError(Exception):
    def __init__(self, entity: str, entity_id: int) -> None:
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f'{entity} {entity_id} not found')


class TierLimitError(Exception):
    def __init__(self, limit: str, required_tier: str | None, message: str) -> None:
        self.limit = limit
        self.required_tier = required_tier
        super().__init__(message)
