from typing import Optional


class BaseServiceError(Exception):
    """Base exception for all service-related errors."""
    pass

class ValidationError(BaseServiceError):
    """Raised when data validation fails."""
    pass

class ProductNotFoundError(BaseServiceError):
    """Raised when product is not found."""
    pass

class ConcurrentUpdateError(BaseServiceError):
    """Raised when a versioned row was changed by another writer in between read and write."""
    pass

# --- Marketplace ---

class MarketplaceAPIError(BaseServiceError):
    """Raised when marketplace API calls fail. Item-level and retryable."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code

class MarketplaceRateLimitError(MarketplaceAPIError):
    """Raised when the marketplace answers 429."""

    def __init__(self, message: str, retry_after: Optional[float] = None):
        super().__init__(message, status_code=429)
        self.retry_after = retry_after

class MarketplaceNotFoundError(MarketplaceAPIError):
    """Raised when a remote offer or order does not exist."""
    pass

class MarketplaceAuthError(MarketplaceAPIError):
    """Raised when credentials are rejected. Fatal for a whole sync job."""
    pass

# --- Sync ---

class SyncError(BaseServiceError):
    """Raised when synchronization fails."""
    pass

class SyncJobNotFoundError(SyncError):
    pass

class InvalidJobTransitionError(SyncError):
    """Raised on a backwards or repeated sync job status change."""
    pass

class SyncJobTimeoutError(SyncError):
    """Raised when a sync job exceeds its deadline."""
    pass

class UnknownStrategyError(SyncError):
    pass

# --- Webhooks ---

class WebhookError(BaseServiceError):
    """Base exception for webhook processing errors."""
    pass

class WebhookEventNotFoundError(WebhookError):
    pass

class WebhookEventAlreadyProcessedError(WebhookError):
    """Raised when a retry is requested for an event that already succeeded."""
    pass

class WebhookPayloadError(WebhookError):
    """Raised when a webhook payload fails validation at the boundary."""
    pass
