"""HTTP clients for the identity and profile services."""

from task_market.clients.identity_client import IdentityClient
from task_market.clients.profile_client import ProfileClient

__all__ = ["IdentityClient", "ProfileClient"]
