"""Error types shared by the listing write path, the queue and the sweep."""


class ValidationError(ValueError):
    """Rejected listing input: bad auction deadline, unknown time zone, missing price."""


class NotFoundError(LookupError):
    def __init__(self, listing_id):
        super().__init__(f"Listing {listing_id} not found")
        self.listing_id = listing_id


class TransientStoreError(RuntimeError):
    """Storage failure worth retrying (connection drop, lock timeout)."""


class SweepInProgressError(RuntimeError):
    """A trending sweep is already running in this process."""
