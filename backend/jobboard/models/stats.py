from jobboard.models.base import CamelModel


class BoardStats(CamelModel):
    """Aggregates derived from the collections on every read."""
    total_jobs: int = 0
    active_jobs: int = 0
    total_payments: int = 0
    pending_payments: int = 0
    unread_messages: int = 0
