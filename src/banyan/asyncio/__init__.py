from .aioconnection import AIOLDAPConnection

__all__ = ["AIOLDAPConnection"]
