"""Adversarial tests: PII ciphertext tampering and key confusion."""

from __future__ import annotations

import base64

import pytest

from claimflow.bridge.pii_cipher import (
    NONCE_SIZE,
    CipherAuthenticationError,
    PassedThrough,
    PiiCipher,
    generate_master_key,
)


def _flip(token: str, index: int) -> str:
    raw = bytearray(base64.b64decode(token))
    raw[index] ^= 0x01
    return base64.b64encode(bytes(raw)).decode("ascii")


class TestBitFlips:
    @pytest.mark.parametrize("region", ["nonce", "tag", "ciphertext"])
    def test_any_flipped_bit_fails_authentication(self, cipher: PiiCipher, region: str):
        token = cipher.encrypt("614-555-0142")
        index = {"nonce": 0, "tag": NONCE_SIZE, "ciphertext": -1}[region]
        with pytest.raises(CipherAuthenticationError):
            cipher.decrypt(_flip(token, index))

    def test_truncated_ciphertext_rejected(self, cipher: PiiCipher):
        raw = base64.b64decode(cipher.encrypt("Jane Doe"))
        with pytest.raises(CipherAuthenticationError):
            cipher.decrypt(base64.b64encode(raw[:-1]).decode("ascii"))

    def test_tampered_value_never_revealed_as_plaintext(self, cipher: PiiCipher):
        tampered = _flip(cipher.encrypt("Jane Doe"), -1)
        outcome = cipher.reveal(tampered)
        assert isinstance(outcome, PassedThrough)
        assert outcome.value == tampered


class TestKeyConfusion:
    def test_foreign_key_fails_authentication(self, cipher: PiiCipher):
        foreign = PiiCipher(generate_master_key())
        with pytest.raises(CipherAuthenticationError):
            cipher.decrypt(foreign.encrypt("Jane Doe"))

    def test_nonce_reuse_absent_across_many_encryptions(self, cipher: PiiCipher):
        nonces = {
            base64.b64decode(cipher.encrypt("same"))[:NONCE_SIZE] for _ in range(200)
        }
        assert len(nonces) == 200
