#!/usr/bin/env python3
"""
Compare the slow and optimized endpoints of a running Performance service.

Runs the six slow endpoints sequentially, the six fast endpoints
sequentially, the batch endpoint once, and a small concurrent load test
against one slow and one fast endpoint, then prints the improvement.
"""

import argparse
import asyncio
import json
import os
import sys
import time
from pathlib import Path
from typing import Any, Dict, List, Optional

import httpx

sys.path.append(os.path.join(os.path.dirname(__file__), '..'))

from service_performance.app.resources.registry import RESOURCE_NAMES  # noqa: E402


async def make_request(client: httpx.AsyncClient, endpoint: str) -> Dict[str, Any]:
    """Issue one GET and time it."""
    start = time.perf_counter()
    try:
        response = await client.get(endpoint)
        response.raise_for_status()
        return {
            "endpoint": endpoint,
            "duration_ms": round((time.perf_counter() - start) * 1000),
            "success": True,
            "status": response.status_code,
            "performance": response.json().get("performance"),
        }
    except httpx.HTTPError as exc:
        status = exc.response.status_code if isinstance(exc, httpx.HTTPStatusError) else None
        return {
            "endpoint": endpoint,
            "duration_ms": round((time.perf_counter() - start) * 1000),
            "success": False,
            "status": status,
            "error": str(exc),
        }


def _summarize(name: str, results: List[Dict[str, Any]], total_ms: int) -> Dict[str, Any]:
    successes = sum(1 for result in results if result["success"])
    return {
        "test": name,
        "total_duration_ms": total_ms,
        "average_duration_ms": round(total_ms / max(1, len(results))),
        "success_rate": round(successes / max(1, len(results)) * 100, 1),
        "results": results,
    }


async def run_sequential(client: httpx.AsyncClient, endpoints: List[str], name: str) -> Dict[str, Any]:
    print(f"\n{name}\n" + "=" * 50)
    start = time.perf_counter()
    results = []
    for endpoint in endpoints:
        result = await make_request(client, endpoint)
        results.append(result)
        print(f"{'OK ' if result['success'] else 'ERR'} {endpoint}: {result['duration_ms']}ms")
    return _summarize(name, results, round((time.perf_counter() - start) * 1000))


async def run_load(client: httpx.AsyncClient, endpoint: str, concurrency: int) -> Dict[str, Any]:
    name = f"Load test {endpoint} ({concurrency} concurrent)"
    print(f"\n{name}\n" + "=" * 50)
    start = time.perf_counter()
    results = await asyncio.gather(*(make_request(client, endpoint) for _ in range(concurrency)))
    total_ms = max(1, round((time.perf_counter() - start) * 1000))
    summary = _summarize(name, list(results), total_ms)
    summary["requests_per_second"] = round(concurrency / total_ms * 1000, 2)
    print(f"Total: {total_ms}ms  RPS: {summary['requests_per_second']}")
    return summary


def _improvement(before: int, after: int) -> float:
    return round((before - after) / before * 100, 1) if before else 0.0


async def compare(base_url: str, concurrency: int, timeout: float) -> Dict[str, Any]:
    async with httpx.AsyncClient(base_url=base_url, timeout=timeout) as client:
        try:
            (await client.get("/health")).raise_for_status()
        except httpx.HTTPError as exc:
            raise SystemExit(f"Service at {base_url} is not reachable: {exc}")

        slow = await run_sequential(client, [f"/api/slow/{name}" for name in RESOURCE_NAMES], "Slow APIs (before optimization)")
        fast = await run_sequential(client, [f"/api/fast/{name}" for name in RESOURCE_NAMES], "Fast APIs (after optimization)")
        batch = await run_sequential(client, ["/api/fast/batch"], "Batch API")
        slow_load = await run_load(client, "/api/slow/users", concurrency)
        fast_load = await run_load(client, "/api/fast/users", concurrency)

    summary = {
        "slow": slow,
        "fast": fast,
        "batch": batch,
        "slow_load": slow_load,
        "fast_load": fast_load,
        "improvement_percent": {
            "fast_vs_slow": _improvement(slow["total_duration_ms"], fast["total_duration_ms"]),
            "batch_vs_slow": _improvement(slow["total_duration_ms"], batch["total_duration_ms"]),
        },
    }

    print("\nPerformance comparison\n" + "=" * 50)
    print(f"Slow APIs total: {slow['total_duration_ms']}ms")
    print(f"Fast APIs total: {fast['total_duration_ms']}ms")
    print(f"Batch API total: {batch['total_duration_ms']}ms")
    print(f"Fast vs slow: {summary['improvement_percent']['fast_vs_slow']}% faster")
    print(f"Batch vs slow: {summary['improvement_percent']['batch_vs_slow']}% faster")
    return summary


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Compare slow and optimized Performance service endpoints.")
    parser.add_argument("--base-url", default=os.getenv("PERF_BASE_URL", "http://localhost:3008"), help="Service base URL")
    parser.add_argument("--concurrency", type=int, default=5, help="Concurrent requests in the load tests")
    parser.add_argument("--timeout", type=float, default=30.0, help="Per-request timeout in seconds")
    parser.add_argument("--output", type=Path, default=None, help="Optional path to write JSON summary")
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = _parse_args(argv)
    summary = asyncio.run(compare(args.base_url, args.concurrency, args.timeout))
    if args.output:
        args.output.write_text(json.dumps(summary, indent=2))
        print(f"\nSummary written to {args.output}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
