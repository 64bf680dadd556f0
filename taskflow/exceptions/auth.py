# taskflow/exceptions/auth.py
from fastapi import HTTPException, status


class AuthenticationError(HTTPException):
    """Missing or unusable bearer token"""
    def __init__(self, detail: str = "Could not validate credentials"):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            headers={"WWW-Authenticate": "Bearer"}
        )


class TokenExpiredError(AuthenticationError):
    """Token has expired"""
    def __init__(self):
        super().__init__(detail="Token has expired")


class MissingIdentityClaimsError(AuthenticationError):
    """Provider token without the subject or email the API keys users on"""
    def __init__(self):
        super().__init__(detail="Token is missing identity claims")
