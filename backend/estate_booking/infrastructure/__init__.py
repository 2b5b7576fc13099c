"""
Infrastructure layer - external system integrations.
Keeps business logic clean from implementation details.
"""

from .redis_client import close_redis, connect_redis

__all__ = ['connect_redis', 'close_redis']
