"""Result cache"""
from .query_cache import QueryCache, hash_query
from .semantic_index import RedisSimilarityIndex

__all__ = ["QueryCache", "RedisSimilarityIndex", "hash_query"]
