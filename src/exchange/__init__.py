"""Exchange access: request signing and the REST client."""

from exchange.auth import AuthTokenSigner, EdDSAStrategy, ES256Strategy, normalize_key_material
from exchange.client import ChunkFailure, ExchangeClient, FillBatchResult
from exchange.errors import ExchangeRequestFailed, InvalidKeyMaterial

__all__ = [
    "AuthTokenSigner",
    "ChunkFailure",
    "ES256Strategy",
    "EdDSAStrategy",
    "ExchangeClient",
    "ExchangeRequestFailed",
    "FillBatchResult",
    "InvalidKeyMaterial",
    "normalize_key_material",
]
