# Caller identity

from .auth import CallerIdentity, JWTIdentity, get_current_identity

__all__ = ["CallerIdentity", "JWTIdentity", "get_current_identity"]
