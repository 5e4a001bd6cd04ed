"""
Authentication module for calsync.

Provides the OAuth 2.0 flow, the credential store and the token lifecycle
manager for calendar integrations.
"""

from calsync.auth.google_oauth import (
    GoogleOAuthFlow,
    OAuthTokens,
    GoogleUserInfo,
)
from calsync.auth.token_manager import TokenLifecycleManager
from calsync.auth.token_storage import (
    get_integration,
    get_integration_by_id,
    list_integrations,
    save_integration,
    update_integration_settings,
    delete_integration,
)

__all__ = [
    # OAuth flow
    "GoogleOAuthFlow",
    "OAuthTokens",
    "GoogleUserInfo",
    # Token lifecycle
    "TokenLifecycleManager",
    # Credential store
    "get_integration",
    "get_integration_by_id",
    "list_integrations",
    "save_integration",
    "update_integration_settings",
    "delete_integration",
]
