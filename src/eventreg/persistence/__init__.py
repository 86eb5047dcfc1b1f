"""Registration persistence."""

from .store import DuplicateRegistrationError, InMemoryRegistrationStore, RegistrationStore, StoreError
from .supabase_store import SupabaseRegistrationStore, get_registration_store

__all__ = [
    "DuplicateRegistrationError",
    "InMemoryRegistrationStore",
    "RegistrationStore",
    "StoreError",
    "SupabaseRegistrationStore",
    "get_registration_store",
]
