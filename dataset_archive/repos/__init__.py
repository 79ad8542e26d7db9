"""Repository implementations: memory, local, MinIO and Temporal."""
