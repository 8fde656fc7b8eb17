"""Remote texture generation.

Modules:
    - client: txt2img request/response client with future-based async calls

The painter does not depend on this package; generated images only seed new
surfaces through Surface.from_texture().
"""

from .client import GenerationClient, GenerationError, GenerationRequest, ModelInfo, as_texture

__all__ = ['GenerationClient', 'GenerationError', 'GenerationRequest', 'ModelInfo', 'as_texture']
