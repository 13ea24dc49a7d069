"""Rate limiting adapters.

The relay throttles room creation per client address with an escalating
backoff. ``RelayService`` drives ``RateLimiterEntity`` through the actor
layer and exposes its decisions as the wire models in ``schemas.rate``.
"""
