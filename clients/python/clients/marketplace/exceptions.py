from typing import Optional


class MarketplaceClientError(Exception):
    """Base exception for listing workflow errors. All are session-local."""
    pass


class WalletUnavailable(MarketplaceClientError):
    """No wallet provider is present, or it exposes no account."""
    pass


class NetworkFetchFailed(MarketplaceClientError):
    """A read (claims, listings, balance) did not complete."""
    pass


class SelectionRequired(MarketplaceClientError):
    pass


class AlreadyListed(MarketplaceClientError):
    pass


class InvalidAmount(MarketplaceClientError):
    pass


class ExceedsApproved(MarketplaceClientError):
    pass


class InsufficientBalance(MarketplaceClientError):
    pass


class BackendRejected(MarketplaceClientError):
    """The backend answered a write with ``success: false``.

    ``str(err)`` is the backend message, unmodified.
    """

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class SubmissionInProgress(MarketplaceClientError):
    pass


class WorkflowNotReady(MarketplaceClientError):
    pass
