class StoreError(Exception):
    """The document store could not complete an operation (I/O, locking, corrupt data)."""


class DocumentNotFound(StoreError):
    def __init__(self, collection: str, doc_id: str):
        super().__init__(f"{collection}/{doc_id} does not exist")
        self.collection = collection
        self.doc_id = doc_id


class DocumentExists(StoreError):
    def __init__(self, collection: str, doc_id: str):
        super().__init__(f"{collection}/{doc_id} already exists")
        self.collection = collection
        self.doc_id = doc_id


class ProductNotDeletableError(Exception):
    """Raised when deleting a product that ships with the catalog."""

    def __init__(self, pid):
        super().__init__(
            f"Product {pid} is part of the default catalog and cannot be deleted. "
            "Only products added from the admin console can be deleted."
        )
        self.pid = pid


class TicketClosedError(Exception):
    """Raised when replying to a ticket that is already resolved."""

    def __init__(self, tid: str):
        super().__init__(f"Ticket {tid} is resolved and no longer accepts replies")
        self.tid = tid


class PermissionDenied(Exception):
    """The current user lacks the admin role for this operation."""
