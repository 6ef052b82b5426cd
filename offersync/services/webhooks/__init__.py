from .processor import WebhookEventProcessor

__all__ = ['WebhookEventProcessor']
