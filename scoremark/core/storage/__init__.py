"""
Repository and blob store backends.
"""
from .local import LocalBlobStore
from .rest import RestAnnotationRepository, RestBackend, RestBlobStore

__all__ = [
    'LocalBlobStore',
    'RestAnnotationRepository',
    'RestBackend',
    'RestBlobStore',
]
