"""Field-level PII encryption via PyNaCl ``SecretBox`` (XSalsa20-Poly1305).

Wire format
-----------
Each encrypted field is ``base64(nonce ‖ tag ‖ ciphertext)``: a fresh
24-byte random nonce, the 16-byte Poly1305 authenticator, then the
encrypted UTF-8 bytes.  This is exactly the combined output of
``SecretBox.encrypt``.

Key lifecycle
-------------
``PiiCipher`` is the key holder.  It is constructed once at startup,
initialised exactly once with a base64-encoded 32-byte master key, and then
passed to every component that reads or writes PII.  Any operation before
initialisation raises ``CipherNotInitializedError``.

Best-effort reads
-----------------
``decrypt`` fails hard on a malformed or tampered value.  Display and
prompt paths call ``reveal`` instead, which returns ``PassedThrough`` with
the original string when decryption fails.  That keeps claims stored before
encryption existed readable.
"""

from __future__ import annotations

import base64
import binascii
import logging

import nacl.exceptions
import nacl.secret
import nacl.utils
from pydantic import BaseModel, ConfigDict

logger = logging.getLogger(__name__)

KEY_SIZE = nacl.secret.SecretBox.KEY_SIZE  # 32
NONCE_SIZE = nacl.secret.SecretBox.NONCE_SIZE  # 24
TAG_SIZE = nacl.secret.SecretBox.MACBYTES  # 16


class CipherError(RuntimeError):
    """Base class for PII cipher failures."""


class CipherNotInitializedError(CipherError):
    """Raised when the cipher is used before a key was installed."""


class CipherFormatError(CipherError):
    """Raised when a value is not a ciphertext produced by this cipher."""


class CipherAuthenticationError(CipherError):
    """Raised when a ciphertext fails tag verification (tampered or wrong key)."""


class Decrypted(BaseModel):
    """``reveal`` outcome: the value was ciphertext and decrypted cleanly."""

    model_config = ConfigDict(frozen=True)

    value: str


class PassedThrough(BaseModel):
    """``reveal`` outcome: the value could not be decrypted and is returned as-is."""

    model_config = ConfigDict(frozen=True)

    value: str
    reason: str


DecryptOutcome = Decrypted | PassedThrough


def generate_master_key() -> str:
    """Return a new random master key, base64-encoded."""
    return base64.b64encode(nacl.utils.random(KEY_SIZE)).decode("ascii")


class PiiCipher:
    """Process-wide key holder for PII field encryption.

    Parameters
    ----------
    key_b64:
        Optional base64 master key.  When given the cipher is initialised
        immediately; otherwise ``initialize()`` must be called once.
    """

    def __init__(self, key_b64: str | None = None) -> None:
        self._box: nacl.secret.SecretBox | None = None
        if key_b64 is not None:
            self.initialize(key_b64)

    # ------------------------------------------------------------------
    # Key lifecycle
    # ------------------------------------------------------------------

    def initialize(self, key_b64: str) -> None:
        """Install the master key.  May be called exactly once."""
        if self._box is not None:
            raise CipherError("PII cipher is already initialised; the key is write-once.")
        try:
            key = base64.b64decode(key_b64, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise CipherError("Master key is not valid base64.") from exc
        if len(key) != KEY_SIZE:
            raise CipherError(
                f"Master key must decode to exactly {KEY_SIZE} bytes, got {len(key)}."
            )
        self._box = nacl.secret.SecretBox(key)
        logger.info("PII cipher initialised (XSalsa20-Poly1305).")

    @property
    def is_initialized(self) -> bool:
        return self._box is not None

    def _require_box(self) -> nacl.secret.SecretBox:
        if self._box is None:
            raise CipherNotInitializedError(
                "PII cipher not initialised. Call initialize() at startup."
            )
        return self._box

    # ------------------------------------------------------------------
    # Field operations
    # ------------------------------------------------------------------

    def encrypt(self, plaintext: str) -> str:
        """Encrypt one string field under a fresh random nonce."""
        box = self._require_box()
        sealed = box.encrypt(plaintext.encode("utf-8"))
        return base64.b64encode(bytes(sealed)).decode("ascii")

    def decrypt(self, value: str) -> str:
        """Decrypt one field, failing hard on malformed or tampered input."""
        box = self._require_box()
        try:
            raw = base64.b64decode(value, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise CipherFormatError("Value is not base64 ciphertext.") from exc
        if len(raw) < NONCE_SIZE + TAG_SIZE:
            raise CipherFormatError(
                f"Ciphertext too short ({len(raw)} bytes) to hold nonce and tag."
            )
        try:
            plain = box.decrypt(raw)
        except nacl.exceptions.CryptoError as exc:
            raise CipherAuthenticationError(
                "Ciphertext failed authentication (tampered or foreign key)."
            ) from exc
        try:
            return plain.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise CipherFormatError("Decrypted bytes are not UTF-8 text.") from exc

    def encrypt_optional(self, value: str | None) -> str | None:
        return self.encrypt(value) if value else value

    def reveal(self, value: str) -> DecryptOutcome:
        """Best-effort decrypt for display and prompt paths.

        Returns ``PassedThrough`` carrying the original value when it does
        not decrypt.  Legacy plaintext claims take this path.  An
        uninitialised cipher is still a programming error and raises.
        """
        try:
            return Decrypted(value=self.decrypt(value))
        except (CipherFormatError, CipherAuthenticationError) as exc:
            logger.debug("PII value passed through undecrypted: %s", exc)
            return PassedThrough(value=value, reason=str(exc))

    def reveal_optional(self, value: str | None) -> str | None:
        if value is None:
            return None
        return self.reveal(value).value
