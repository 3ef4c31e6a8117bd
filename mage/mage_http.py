import os
import time
from typing import Optional, Dict, Any

import httpx


def http_download(url: str, path: str, *, config: Optional[Dict] = None,
                  transport: Optional[httpx.BaseTransport] = None) -> int:
    """
    Downloads `url` to the file at `path`, following redirects.

    config keys:
      - timeout (seconds, default 30)
      - retries (default 2): extra attempts after a transport failure
      - backoff (default 0.2): base delay, doubled on every retry
      - headers: extra request headers

    Returns the number of bytes written. Non-2xx responses raise
    `RuntimeError` and are not retried.
    """
    cfg = dict(config or {})
    timeout = float(cfg.pop('timeout', 30.0))
    retries = int(cfg.pop('retries', 2))
    backoff = float(cfg.pop('backoff', 0.2))
    headers = dict(cfg.pop('headers', {}))

    parent = os.path.dirname(path)
    if parent:
        os.makedirs(parent, exist_ok=True)

    client_args: Dict[str, Any] = {'timeout': timeout, 'follow_redirects': True}
    if transport is not None:
        client_args['transport'] = transport

    with httpx.Client(**client_args) as client:
        for attempt in range(retries + 1):
            try:
                with client.stream('GET', url, headers=headers) as resp:
                    if not 200 <= resp.status_code < 300:
                        resp.read()
                        preview = (resp.text or "")[:200]
                        raise RuntimeError(f"HTTP {resp.status_code} for {url}: {preview}")
                    written = 0
                    with open(path, 'wb') as fh:
                        for chunk in resp.iter_bytes():
                            fh.write(chunk)
                            written += len(chunk)
                    return written
            except httpx.TransportError:
                if attempt < retries:
                    time.sleep(backoff * (2 ** attempt))
                    continue
                raise
    raise RuntimeError(f"Download of {url} made no attempts")
