# =============================================================================
# Local Embedding Module
# =============================================================================
# An embedding gateway that runs a sentence-transformers model on this
# machine instead of calling a remote API. Useful offline or for testing
# the pipeline without an API key.

from sentence_transformers import SentenceTransformer

from campaign_rag.embedding import EmbeddingGateway
from campaign_rag.exceptions import EmbeddingProviderError


# Global cache of loaded models (loading is expensive)
_local_models = {}


def load_local_model(model_name, device='cpu'):
    """
    Load the sentence-transformers model, reusing it if already loaded.

    Args:
        model_name: Hugging Face model name (e.g. "all-MiniLM-L6-v2")
        device: 'cpu' or 'cuda'

    Returns:
        SentenceTransformer: The loaded model
    """
    key = (model_name, device)
    if key not in _local_models:
        print(f"Loading embedding model: {model_name} (device: {device})")
        _local_models[key] = SentenceTransformer(model_name, device=device)
    return _local_models[key]


class LocalEmbeddingGateway(EmbeddingGateway):
    """Embeddings computed locally with a sentence-transformers model."""

    def __init__(self, model='all-MiniLM-L6-v2', device='cpu'):
        self.model = model
        self.device = device

    def embed(self, texts, model=None):
        texts = list(texts)
        if not texts:
            return []

        model = model or self.model
        try:
            encoder = load_local_model(model, self.device)
        except Exception as e:
            raise EmbeddingProviderError(f"Could not load local embedding model {model}: {e}") from e

        try:
            vectors = encoder.encode(texts, convert_to_numpy=True, show_progress_bar=False)
        except Exception as e:
            raise EmbeddingProviderError(f"Local embedding failed: {e}") from e

        return [[float(x) for x in row] for row in vectors]
