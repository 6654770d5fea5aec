from payments.stores.interfaces import CustomerIdentityStore

__all__ = ["CustomerIdentityStore"]
