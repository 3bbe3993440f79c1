"""Configuration for the training results webhook."""

from .settings import SecretProvider, WebhookConfig, get_config

__all__ = ["WebhookConfig", "SecretProvider", "get_config"]
