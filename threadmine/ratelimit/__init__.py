# Rate limiting
from threadmine.ratelimit.limiter import RateLimiter, RateLimitStore
from threadmine.ratelimit.memory import InMemoryRateLimitStore

__all__ = ["RateLimiter", "RateLimitStore", "InMemoryRateLimitStore"]
