"""
Signer credential for Vara (sr25519).

The deployer is identified by ``VARA_SEED``: a BIP-39 mnemonic or a
derivation URI such as ``//Alice``. It is read from the process environment
(after the .env file is loaded) and never written anywhere by this package.

Dependencies: substrate-interface (Keypair)
"""

from __future__ import annotations

import os
from typing import Optional

from substrateinterface import Keypair

from ..pneuma.runtime import VARA_SS58_FORMAT

SEED_ENV = "VARA_SEED"

# Values shipped in .env.example files; treated as "not configured".
_PLACEHOLDERS = ("word1 word2", "your_seed_phrase_here")


class CredentialError(ValueError):
    exit_code: int = 1


def load_seed() -> str:
    """
    Load the signer seed from the environment.

    Returns:
        Mnemonic or derivation URI

    Raises:
        CredentialError: If VARA_SEED is missing or still a placeholder
    """
    seed = (os.environ.get(SEED_ENV) or "").strip()
    if not seed or any(p in seed for p in _PLACEHOLDERS):
        raise CredentialError(f"{SEED_ENV} not set. Add it to .env or the environment.")
    return seed


def keypair_from_seed(seed: str, ss58_format: int = VARA_SS58_FORMAT) -> Keypair:
    """Mnemonic first, then derivation URI."""
    try:
        return Keypair.create_from_mnemonic(seed, ss58_format=ss58_format)
    except ValueError:
        pass
    try:
        return Keypair.create_from_uri(seed, ss58_format=ss58_format)
    except ValueError as exc:
        raise CredentialError(f"{SEED_ENV} is neither a valid mnemonic nor a derivation URI") from exc


def get_keypair(seed: Optional[str] = None) -> Keypair:
    return keypair_from_seed(seed if seed is not None else load_seed())


def actor_id_of(keypair: Keypair) -> str:
    """0x-prefixed hex of the raw public key (the account's ActorId)."""
    return "0x" + bytes(keypair.public_key).hex()
