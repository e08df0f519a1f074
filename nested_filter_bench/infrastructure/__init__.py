"""
Infrastructure package for the nested filter benchmark.

Centralizes database concerns (ephemeral instance provisioning, bulk
seeding). Keep this layer focused on I/O and resource management, decoupled
from strategy/orchestrator logic.
"""

from nested_filter_bench.infrastructure.provisioner import EphemeralMongo
from nested_filter_bench.infrastructure.seeding import seed_collection

__all__ = [
    "EphemeralMongo",
    "seed_collection",
]
