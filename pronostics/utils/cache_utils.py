"""
Cache utilities for the Pronostics application
Provides caching decorators and helper functions for read-heavy API routes
"""

import functools

from flask import current_app, jsonify, request

from pronostics import cache


def make_cache_key(*args, **kwargs):
    """Generate a cache key from request path, query string and arguments"""
    path = request.path
    query = "&".join(f"{k}={v}" for k, v in sorted(request.args.items()))
    args_str = "_".join(str(arg) for arg in args)
    kwargs_str = "_".join(f"{k}_{v}" for k, v in sorted(kwargs.items()))
    return f"{path}_{query}_{args_str}_{kwargs_str}".replace("/", "_")


def cached_route(timeout=60, key_prefix="view"):
    """
    Decorator for caching JSON route payloads

    The wrapped view returns plain data (or a ``(data, status)`` tuple).
    Only successful payloads are cached; the wrapper builds the response.

    Args:
        timeout: Cache timeout in seconds
        key_prefix: Prefix for cache key, usually the model name
    """

    def decorator(f):
        @functools.wraps(f)
        def wrapped(*args, **kwargs):
            cache_key = f"{key_prefix}_{make_cache_key(*args, **kwargs)}"

            payload = cache.get(cache_key)
            if payload is not None:
                current_app.logger.debug(f"Cache hit for key: {cache_key}")
                return jsonify(payload), 200

            result = f(*args, **kwargs)
            status = 200
            if isinstance(result, tuple):
                result, status = result

            if status == 200:
                cache.set(cache_key, result, timeout=timeout)
                current_app.logger.debug(f"Cache set for key: {cache_key}")

            return jsonify(result), status

        return wrapped

    return decorator


def invalidate_cache_pattern(pattern):
    """
    Invalidate cache keys matching a pattern

    Args:
        pattern: Pattern to match cache keys
    """
    try:
        # Flask-Caching has no portable delete-by-pattern
        cache.clear()
        current_app.logger.debug(f"Cache cleared for pattern: {pattern}")
    except Exception as e:
        current_app.logger.error(f"Failed to clear cache: {e}")


def invalidate_model_cache(model_name):
    """
    Invalidate all cache entries for a specific model

    Args:
        model_name: Name of the model to invalidate
    """
    invalidate_cache_pattern(f"*{model_name}*")


class CacheManager:
    """Cache management utilities"""

    @staticmethod
    def get_cache_stats():
        return {
            "type": current_app.config.get("CACHE_TYPE", "Unknown"),
            "timeout": current_app.config.get("CACHE_DEFAULT_TIMEOUT", 300),
        }
