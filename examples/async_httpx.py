#!/usr/bin/env uv run
# /// script
# requires-python = ">=3.9"
# dependencies = [
#     "maxage[httpx]",
# ]
#
# [tool.uv.sources]
# maxage = { path = "../", editable = true }
# ///

import asyncio

from maxage import AsyncInMemoryStorage
from maxage.httpx import AsyncCacheClient


async def fetch_and_print(client, url: str):
    print(f"\n➡ Sending request to {url}...")
    response = await client.get(url)

    print(f"🔄 From Cache: {response.extensions['from_cache']}")
    print(f"⏰ Elapsed: {response.extensions['elapsed_time']:.1f} ms")
    print(f"📍 Cache-Control: {response.headers.get('cache-control')}")


async def main():
    url = "https://httpbin.org/cache/60"
    async with AsyncCacheClient(storage=AsyncInMemoryStorage(), stale_while_revalidate=True) as client:
        await fetch_and_print(client, url)
        await fetch_and_print(client, url)


if __name__ == "__main__":
    asyncio.run(main())
