"""Sigil - deployer keypair."""
