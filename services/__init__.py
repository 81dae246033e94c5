"""
Thumbnail Pipeline - cloud-native image thumbnail service

This package contains the two halves of the pipeline:
- Ingress service (HTTP upload, object storage write, job publish)
- Worker service (job consume, thumbnail generation, derived object write)
- Common building blocks shared by both (configuration, job model, clients)
"""

__version__ = "1.0.0"
__author__ = "Thumbnail Pipeline"
