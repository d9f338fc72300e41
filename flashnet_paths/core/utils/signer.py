from __future__ import annotations

import hashlib
from typing import Protocol, runtime_checkable

from eth_account import Account
from eth_keys import keys

from flashnet_paths.core.errors import SigningFailed
from flashnet_paths.core.utils.intents import Intent


@runtime_checkable
class Signer(Protocol):
    async def sign(self, digest: bytes) -> bytes: ...


def message_digest(message: bytes) -> bytes:
    return hashlib.sha256(message).digest()


async def sign_message(message: bytes, signer: Signer) -> bytes:
    """Hash ``message`` with SHA-256 and have ``signer`` sign the digest."""
    digest = message_digest(message)
    try:
        signature = await signer.sign(digest)
    except SigningFailed:
        raise
    except Exception as exc:
        raise SigningFailed(f"Signer rejected message: {exc}") from exc
    if not signature:
        raise SigningFailed("Signer returned an empty signature")
    return bytes(signature)


async def sign_intent(intent: Intent, signer: Signer) -> Intent:
    signature = await sign_message(intent.message, signer)
    return intent.with_signature(signature)


async def sign_challenge(challenge: str, signer: Signer) -> bytes:
    """Sign a gateway auth challenge, which arrives hex encoded."""
    try:
        raw = bytes.fromhex(challenge.removeprefix("0x"))
    except ValueError as exc:
        raise SigningFailed(f"Challenge is not valid hex: {challenge!r}") from exc
    return await sign_message(raw, signer)


class LocalKeySigner:
    """secp256k1 identity key held in process memory."""

    def __init__(self, private_key: str | bytes) -> None:
        if isinstance(private_key, str):
            private_key = private_key if private_key.startswith("0x") else "0x" + private_key
        self._account = Account.from_key(private_key)
        self._public_key = keys.PrivateKey(bytes(self._account.key)).public_key

    @classmethod
    def generate(cls) -> LocalKeySigner:
        return cls(bytes(Account.create().key))

    @property
    def public_key_hex(self) -> str:
        return self._public_key.to_compressed_bytes().hex()

    async def identity_public_key(self) -> str:
        return self.public_key_hex

    async def sign(self, digest: bytes) -> bytes:
        if len(digest) != 32:
            raise SigningFailed(f"Expected a 32-byte digest, got {len(digest)} bytes")
        signed = self._account.unsafe_sign_hash(digest)
        return bytes(signed.signature)

    def verify(self, digest: bytes, signature: bytes) -> bool:
        sig = keys.Signature(signature_bytes=_normalize_v(signature))
        return sig.verify_msg_hash(digest, self._public_key)


def _normalize_v(signature: bytes) -> bytes:
    # eth-account emits v in {27, 28}; eth-keys expects {0, 1}
    if len(signature) == 65 and signature[64] >= 27:
        return signature[:64] + bytes([signature[64] - 27])
    return signature
