from stackdock.clients.base import BaseHTTPClient, PermanentHTTPError, RetryableHTTPError
from stackdock.clients.digitalocean import DigitalOceanClient

__all__ = ["BaseHTTPClient", "DigitalOceanClient", "PermanentHTTPError", "RetryableHTTPError"]
