"""
Pneuma - On-chain interaction layer for GrowStreams.

Provides the Sails wire codec, gas estimation, the transaction lifecycle
state machine and the signing adapter for Vara programs.

Uses httpx for read-only JSON-RPC and substrate-interface for signed
extrinsics.
"""
