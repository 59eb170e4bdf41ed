"""
Security helpers
Token encryption at rest and the admin-token gate for dashboard endpoints
"""

import base64
import hashlib
import logging
import secrets
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken
from fastapi import Depends, Header, HTTPException
from sqlalchemy.orm import Session

from .config import ADMIN_CONFIG_ID, SECRET_KEY, TOKEN_ENCRYPTION_KEY
from .database import get_db
from .models import AdminConfig

logger = logging.getLogger(__name__)


def _build_cipher() -> Fernet:
    if TOKEN_ENCRYPTION_KEY:
        return Fernet(TOKEN_ENCRYPTION_KEY.encode())
    # Fernet needs 32 url-safe base64 bytes; derive them from SECRET_KEY
    derived = base64.urlsafe_b64encode(hashlib.sha256(SECRET_KEY.encode()).digest())
    return Fernet(derived)


cipher_suite = _build_cipher()


def encrypt_token(token: str) -> str:
    """Encrypt a token for storage"""
    return cipher_suite.encrypt(token.encode()).decode()


def decrypt_token(encrypted_token: str) -> str:
    """Decrypt a stored token"""
    return cipher_suite.decrypt(encrypted_token.encode()).decode()


def decrypt_token_or_none(encrypted_token: Optional[str]) -> Optional[str]:
    if not encrypted_token:
        return None
    try:
        return decrypt_token(encrypted_token)
    except InvalidToken:
        logger.error("❌ Stored token could not be decrypted (encryption key changed?)")
        return None


def constant_time_compare(a: str, b: str) -> bool:
    """Compare two strings in constant time to prevent timing attacks"""
    return secrets.compare_digest(a.encode(), b.encode())


async def require_admin_token(
    x_admin_token: Optional[str] = Header(None),
    db: Session = Depends(get_db),
) -> AdminConfig:
    """Dependency gating dashboard and settings endpoints on the admin link token"""
    if not x_admin_token:
        raise HTTPException(status_code=401, detail="Missing admin token")

    config = db.query(AdminConfig).filter(AdminConfig.id == ADMIN_CONFIG_ID).first()
    if not config or not config.admin_token:
        logger.warning("⚠️ Admin access attempted but no admin token is configured")
        raise HTTPException(status_code=403, detail="Invalid access link")

    if not constant_time_compare(x_admin_token, config.admin_token):
        logger.warning("⚠️ Admin access attempted with an invalid token")
        raise HTTPException(status_code=403, detail="Invalid access link")

    return config
