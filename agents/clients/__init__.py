from .inference_client import (
    InferenceClient,
    GenerationOptions,
    GenerationRequest,
    GenerationResult,
    estimate_tokens,
    get_inference_client,
)

__all__ = [
    'InferenceClient',
    'GenerationOptions',
    'GenerationRequest',
    'GenerationResult',
    'estimate_tokens',
    'get_inference_client',
]
