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

from maxage import SyncInMemoryStorage
from maxage.httpx import SyncCacheClient

cl = SyncCacheClient(storage=SyncInMemoryStorage(capacity=32))

cl.get("https://httpbin.org/cache/60")
response = cl.get("https://httpbin.org/cache/60")
print(response.extensions)
cl.close()
