"""
Credential store for the backup login.

Passwords are kept as Fernet tokens in the stored_credentials table and are
only decrypted when a backup resolves them. The Fernet key is derived from
the application SECRET_KEY, so rotating SECRET_KEY makes stored logins
unreadable until they are set again.
"""

import base64
import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from dbbackup import db
from dbbackup.models import StoredCredential


logger = logging.getLogger(__name__)

KDF_SALT = b'dbbackup.stored_credentials.v1'
KDF_ITERATIONS = 200_000


class CredentialError(Exception):
    """Raised when stored credentials cannot be sealed or opened."""
    pass


class CredentialCipher:
    """Seals and opens the password column with a key derived from SECRET_KEY."""

    def __init__(self, secret_key: str):
        if not secret_key:
            raise CredentialError("SECRET_KEY is not configured, stored credentials are unusable")

        kdf = PBKDF2HMAC(algorithm=hashes.SHA256(), length=32, salt=KDF_SALT, iterations=KDF_ITERATIONS)
        self._fernet = Fernet(base64.urlsafe_b64encode(kdf.derive(secret_key.encode())))

    @classmethod
    def from_app(cls, app) -> 'CredentialCipher':
        return cls(app.config.get('SECRET_KEY'))

    def seal(self, password: str) -> str:
        # Fernet tokens are already urlsafe base64 text
        return self._fernet.encrypt(password.encode()).decode()

    def open(self, token: str) -> str:
        """
        Raises:
            CredentialError: Wrong SECRET_KEY or a corrupted token
        """
        try:
            return self._fernet.decrypt(token.encode()).decode()
        except InvalidToken as e:
            raise CredentialError("stored password could not be decrypted (SECRET_KEY changed?)") from e


@dataclass
class Credential:
    """Username/password pair, held in memory only while a dump runs."""

    username: str
    password: str = field(repr=False)

    def clear(self):
        """Drop the secret from this object."""
        self.password = ''

    @property
    def is_cleared(self) -> bool:
        return not self.password


class CredentialStore:
    """
    Resolves named credentials from the encrypted credential table.
    """

    def __init__(self, cipher: CredentialCipher):
        self.cipher = cipher

    def resolve(self, target: str) -> Optional[Credential]:
        """
        Look up a credential by exact target name.

        Args:
            target: Credential record name

        Returns:
            Credential, or None when no record exists

        Raises:
            CredentialError: If the stored password cannot be decrypted
        """
        record = StoredCredential.query.filter_by(target=target).first()
        if record is None:
            logger.warning(f"No stored credential found for target: {target}")
            return None

        try:
            password = self.cipher.open(record.password_encrypted)
        except CredentialError as e:
            raise CredentialError(f"Credential for {target}: {e}") from e

        return Credential(username=record.username, password=password)

    def save(self, target: str, username: str, password: str) -> StoredCredential:
        """
        Create or replace the credential stored under `target`.

        Args:
            target: Credential record name
            username: Login name
            password: Plaintext password (encrypted before it is written)

        Returns:
            The stored record
        """
        encrypted = self.cipher.seal(password)

        record = StoredCredential.query.filter_by(target=target).first()
        if record is None:
            record = StoredCredential(target=target, username=username, password_encrypted=encrypted)
            db.session.add(record)
        else:
            record.username = username
            record.password_encrypted = encrypted

        db.session.commit()
        logger.info(f"Stored credential for target: {target} (user: {username})")
        return record

    def delete(self, target: str) -> bool:
        """
        Remove the credential stored under `target`.

        Returns:
            True if a record was deleted, False if none existed
        """
        record = StoredCredential.query.filter_by(target=target).first()
        if record is None:
            return False

        db.session.delete(record)
        db.session.commit()
        logger.info(f"Removed credential for target: {target}")
        return True


@contextmanager
def credential_scope(store: CredentialStore, target: str):
    """
    Resolve a credential for the duration of a `with` block.

    The yielded credential (None when absent) is cleared on exit, whether the
    block finished or raised.
    """
    credential = store.resolve(target)
    try:
        yield credential
    finally:
        if credential is not None:
            credential.clear()
