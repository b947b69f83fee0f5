from .registration_store import RegistrationStore

__all__ = ["RegistrationStore"]
