"""
Ingress service modules
"""

from .ingress import IngressService

__all__ = [
    'IngressService',
]
