"""
Password hashing (bcrypt) for accounts held by the mock identity provider.

Hosted backends hash passwords themselves; this only backs the local
account directory used in development and tests.
"""

from passlib.context import CryptContext

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def get_password_hash(plain: str) -> str:
    return pwd_context.hash(plain)


def verify_password(plain: str, hashed: str) -> bool:
    return pwd_context.verify(plain, hashed)
