"""
Cache module.

Key schemes and TTLs for anime and user data on top of the process
CacheManager, plus admin routes for inspecting and invalidating it.
"""
