"""
Performance Optimization Service package.

The service contrasts an uncached slow data path with an optimized one:
- Caching: in-process TTL store with cache-aside reads
- Single-flight: one upstream call per key under concurrent misses
- Deadlines: upstream calls bounded by a configurable timeout
- Batching: parallel fan-out/join across every resource
- Rate limiting and slow-down on the /api routes

Structure:
- app.main: FastAPI app, routes, and lifecycle wiring.
- app.caching: TTL store and single-flight group.
- app.upstream: Simulated database and external API calls.
- app.resources: Resource registry, fetcher, and batch aggregator.
- app.reporting: Cache and process metrics reporter.
- app.ratelimit: Fixed-window limiter and request hook.
"""
