from flask_caching import Cache

# single shared instance, bound to the app in cache.init_cache
cache = Cache()
