class PersistenceError(Exception):
    """
    Raised by repository adapters when a read/write against the store fails.
    Always transient from the monitor's point of view: the caller clears its
    marker and the next evaluation pass retries.
    """
    def __init__(self, operation: str, entity_id: str | None, msg: str):
        super().__init__(f"{operation} failed for {entity_id}: {msg}")
        self.operation = operation
        self.entity_id = entity_id
        self.msg = msg


class InvalidDocumentError(Exception):
    """
    Raised when a stored document cannot be mapped into a domain entity.
    The document is skipped for the current cycle.
    """
    def __init__(self, collection: str, doc_id: str | None, msg: str):
        super().__init__(f"invalid {collection} document {doc_id}: {msg}")
        self.collection = collection
        self.doc_id = doc_id
        self.msg = msg
