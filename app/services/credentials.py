"""
Credential encryption/decryption and per-store carrier credential access.
"""
import base64
import binascii
import logging

from cryptography.fernet import Fernet, InvalidToken
from sqlalchemy.orm import Session

from app.config import settings
from app.models import StoreIntegration
from app.services.exceptions import CredentialNotFound, IntegrationInactive

logger = logging.getLogger(__name__)


def get_encryption_key() -> bytes:
    """Fernet key derived from ENCRYPTION_KEY"""
    key_str = settings.ENCRYPTION_KEY
    # Ensure key is 32 bytes for Fernet
    key_bytes = key_str.encode()[:32].ljust(32, b'0')
    return base64.urlsafe_b64encode(key_bytes)


def encrypt_token(token: str) -> str:
    """Encrypt a token"""
    f = Fernet(get_encryption_key())
    return f.encrypt(token.encode()).decode()


def decrypt_token(encrypted: str) -> str:
    """Decrypt a token"""
    f = Fernet(get_encryption_key())
    return f.decrypt(encrypted.encode()).decode()


def decode_secret(stored: str) -> str:
    """
    Decode a stored API key. Current rows hold Fernet tokens; rows written by the
    old admin UI hold base64 of the plaintext and are decoded as such.
    Raises ValueError when neither format applies.
    """
    try:
        return decrypt_token(stored)
    except InvalidToken:
        pass
    try:
        return base64.b64decode(stored.encode(), validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError) as e:
        raise ValueError("stored credential is neither a Fernet token nor base64") from e


class CredentialResolver:
    """Read-only lookup of the decoded carrier API key for a store."""

    def __init__(self, db: Session):
        self.db = db

    def get_integration(self, store_id: str, provider_type: str) -> StoreIntegration | None:
        return (
            self.db.query(StoreIntegration)
            .filter(
                StoreIntegration.store_id == store_id,
                StoreIntegration.integration_type == provider_type,
            )
            .first()
        )

    def resolve(self, store_id: str, provider_type: str) -> str:
        """
        Return the decoded secret, or raise CredentialNotFound / IntegrationInactive.
        An inactive integration blocks the run exactly like a missing one.
        """
        integration = self.get_integration(store_id, provider_type)
        if not integration or not integration.api_key_encrypted:
            raise CredentialNotFound(store_id, provider_type)
        if not integration.is_active:
            raise IntegrationInactive(store_id, provider_type)
        try:
            secret = decode_secret(integration.api_key_encrypted)
        except ValueError:
            logger.warning("Undecodable %s credential for store %s", provider_type, store_id)
            raise CredentialNotFound(store_id, provider_type)
        if not secret.strip():
            raise CredentialNotFound(store_id, provider_type)
        return secret.strip()

    def active_store_ids(self, provider_type: str) -> list[str]:
        """Stores with an active integration that carries a key."""
        rows = (
            self.db.query(StoreIntegration.store_id)
            .filter(
                StoreIntegration.integration_type == provider_type,
                StoreIntegration.is_active.is_(True),
                StoreIntegration.api_key_encrypted.isnot(None),
            )
            .order_by(StoreIntegration.store_id)
            .all()
        )
        return [store_id for (store_id,) in rows]
