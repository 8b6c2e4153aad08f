"""
Credence Providers - the provider interface and parallel evidence collection.
"""

from credence.providers.gateway import EvidenceCollector, ProviderGateway

__all__ = ["EvidenceCollector", "ProviderGateway"]
