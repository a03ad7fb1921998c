from __future__ import annotations

import time

import httpx

from loadmon.metrics import ErrorType, RequestOutcome


async def execute_request(
    client: httpx.AsyncClient,
    url: str,
    timeout_sec: float = 30.0,
) -> RequestOutcome:
    start_mono = time.perf_counter()
    try:
        resp = await client.get(url, timeout=timeout_sec)
    except httpx.TimeoutException as exc:
        err, message = ErrorType.TIMEOUT, str(exc) or "timed out"
    except httpx.ConnectError as exc:
        err, message = ErrorType.CONNECT, str(exc) or "connection failed"
    except httpx.ReadError as exc:
        err, message = ErrorType.READ, str(exc) or "read failed"
    except (httpx.HTTPError, httpx.InvalidURL) as exc:
        err, message = ErrorType.OTHER, str(exc) or type(exc).__name__
    else:
        latency_ms = _elapsed_ms(start_mono)
        if not resp.is_success:
            return RequestOutcome(
                url=url,
                status_code=resp.status_code,
                latency_ms=latency_ms,
                bytes_received=len(resp.content),
                error_type=ErrorType.STATUS,
                error=f"HTTP {resp.status_code}",
            )
        return RequestOutcome(
            url=url,
            status_code=resp.status_code,
            latency_ms=latency_ms,
            bytes_received=len(resp.content),
        )
    return RequestOutcome(
        url=url,
        status_code=None,
        latency_ms=_elapsed_ms(start_mono),
        bytes_received=0,
        error_type=err,
        error=message,
    )


def _elapsed_ms(start_mono: float) -> float:
    return round((time.perf_counter() - start_mono) * 1000.0, 2)
