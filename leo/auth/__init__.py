from leo.auth.credentials import (
    Credentials,
    credentials_path,
    delete_credentials,
    load_credentials,
    save_credentials,
)
from leo.auth.provider import GeminiAuthProvider, has_valid_credentials

__all__ = [
    "Credentials",
    "GeminiAuthProvider",
    "credentials_path",
    "delete_credentials",
    "has_valid_credentials",
    "load_credentials",
    "save_credentials",
]
