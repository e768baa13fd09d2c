from .backfill import EmbeddingBackfill, RelationshipBackfill

__all__ = ["EmbeddingBackfill", "RelationshipBackfill"]
