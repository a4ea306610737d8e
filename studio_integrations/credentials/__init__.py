"""Workspace credentials: storage, resolution, OAuth refresh and token health."""
from .health import TokenHealth, summarize_health, token_health
from .oauth import (
    FormOAuthRefresher,
    GoogleOAuthRefresher,
    OAuthRefresher,
    TokenGrant,
    default_refreshers,
)
from .resolver import Credential, CredentialResolver, CredentialSource
from .store import (
    CredentialKind,
    CredentialRecord,
    CredentialStore,
    InMemoryCredentialStore,
    SqliteCredentialStore,
)

__all__ = [
    "TokenHealth",
    "summarize_health",
    "token_health",
    "FormOAuthRefresher",
    "GoogleOAuthRefresher",
    "OAuthRefresher",
    "TokenGrant",
    "default_refreshers",
    "Credential",
    "CredentialResolver",
    "CredentialSource",
    "CredentialKind",
    "CredentialRecord",
    "CredentialStore",
    "InMemoryCredentialStore",
    "SqliteCredentialStore",
]
