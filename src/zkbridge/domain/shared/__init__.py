"""Shared domain utilities.

This package is domain-accessible and should not depend on application code.
"""

from .artifact_store_protocol import ArtifactStoreProtocol
from .chain_client_protocol import ChainClientProtocol
from .proof_engine_protocol import ProgressCallback, ProofEngineProtocol

__all__ = [
    "ArtifactStoreProtocol",
    "ChainClientProtocol",
    "ProgressCallback",
    "ProofEngineProtocol",
]
