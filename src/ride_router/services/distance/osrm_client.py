"""HTTP client for interacting with OSRM services."""

from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Sequence

import httpx

from ...config import settings

logger = logging.getLogger(__name__)


class OSRMClient:
    def __init__(
        self,
        base_url: str | None = None,
        profile: str | None = None,
        timeout: float | None = None,
        max_retries: int | None = None,
        backoff_seconds: float | None = None,
        max_coordinates_per_request: int | None = None,
        max_parallel_requests: int | None = None,
    ) -> None:
        self.base_url = base_url or settings.osrm_base_url
        if not self.base_url:
            raise ValueError("OSRM base URL is not configured.")
        self.base_url = self.base_url.rstrip("/")
        self.profile = profile or settings.osrm_profile
        self.timeout = timeout if timeout is not None else settings.osrm_timeout_seconds
        self.max_retries = max_retries if max_retries is not None else settings.osrm_max_retries
        self.backoff_seconds = backoff_seconds if backoff_seconds is not None else settings.osrm_backoff_seconds
        self.max_coordinates_per_request = (
            max_coordinates_per_request
            if max_coordinates_per_request is not None
            else settings.osrm_max_coordinates_per_request
        )
        self.max_parallel_requests = (
            max_parallel_requests if max_parallel_requests is not None else settings.osrm_max_parallel_requests
        )

    def _get_client(self) -> httpx.Client:
        """Create a per-request HTTP client; chunk requests run on worker threads."""
        return httpx.Client(
            timeout=httpx.Timeout(self.timeout, connect=10.0),
            limits=httpx.Limits(max_connections=1, max_keepalive_connections=0),
        )

    def _table_single_request(
        self,
        coordinates: Sequence[tuple[float, float]],
        sources: Sequence[int] | None = None,
        destinations: Sequence[int] | None = None,
    ) -> dict:
        """Make a single OSRM table request for a subset of coordinates."""
        if len(coordinates) < 1:
            raise ValueError("At least one coordinate is required for OSRM table.")

        coordinate_str = ";".join(f"{lon:.6f},{lat:.6f}" for lat, lon in coordinates)

        if sources is None:
            sources = list(range(len(coordinates)))
        if destinations is None:
            destinations = list(range(len(coordinates)))

        params = {
            "annotations": "duration,distance",
            "sources": ";".join(str(i) for i in sources),
            "destinations": ";".join(str(i) for i in destinations),
        }
        url = f"{self.base_url}/table/v1/{self.profile}/{coordinate_str}"

        client = self._get_client()
        try:
            attempt = 0
            while True:
                try:
                    response = client.get(url, params=params)
                    response.raise_for_status()
                    data = response.json()
                    if data.get("code", "Ok") != "Ok":
                        raise ValueError(f"OSRM table request failed: {data.get('message', data.get('code'))}")
                    if "durations" not in data or "distances" not in data:
                        raise ValueError("OSRM response missing durations/distances.")
                    return data
                except httpx.HTTPStatusError as e:
                    if e.response.status_code == 414:
                        raise ValueError(
                            f"OSRM request URL too large ({len(coordinates)} coordinates). "
                            f"Try reducing max_coordinates_per_request (current: {self.max_coordinates_per_request})"
                        ) from e
                    attempt += 1
                    if attempt > self.max_retries:
                        raise
                    time.sleep(self.backoff_seconds * attempt)
                except httpx.TimeoutException as e:
                    attempt += 1
                    if attempt > self.max_retries:
                        logger.warning(f"OSRM request timed out after {self.max_retries} attempts: {e}")
                        raise
                    wait_time = self.backoff_seconds * (2 ** (attempt - 1))
                    logger.debug(f"OSRM request timeout, retrying in {wait_time:.1f}s (attempt {attempt}/{self.max_retries})")
                    time.sleep(wait_time)
                except (httpx.NetworkError, OSError) as e:
                    attempt += 1
                    if attempt > self.max_retries:
                        raise ConnectionError(
                            f"Failed to connect to OSRM service at {self.base_url}: {e}"
                        ) from e
                    wait_time = self.backoff_seconds * (2 ** (attempt - 1))
                    logger.debug(f"OSRM network error, retrying in {wait_time:.1f}s (attempt {attempt}/{self.max_retries}): {e}")
                    time.sleep(wait_time)
                except (httpx.HTTPError, ValueError):
                    attempt += 1
                    if attempt > self.max_retries:
                        raise
                    time.sleep(self.backoff_seconds * attempt)
        finally:
            client.close()

    def _process_chunk_request(
        self,
        chunks: list[list[tuple[float, float]]],
        src_chunk_idx: int,
        dst_chunk_idx: int,
    ) -> tuple[int, int, dict | None]:
        """Process a single chunk pair and return the result with its chunk indices."""
        try:
            if src_chunk_idx == dst_chunk_idx:
                result = self._table_single_request(chunks[src_chunk_idx])
            else:
                chunk_coords = chunks[src_chunk_idx] + chunks[dst_chunk_idx]
                src_indices = list(range(len(chunks[src_chunk_idx])))
                dst_indices = list(range(len(chunks[src_chunk_idx]), len(chunk_coords)))
                result = self._table_single_request(chunk_coords, src_indices, dst_indices)
            return (src_chunk_idx, dst_chunk_idx, result)
        except Exception as e:
            logger.warning(f"Failed to get OSRM data for chunk pair {src_chunk_idx}->{dst_chunk_idx}: {e}")
            return (src_chunk_idx, dst_chunk_idx, None)

    def table(self, coordinates: Sequence[tuple[float, float]]) -> dict:
        """Get distance/duration matrix for (lat, lon) coordinates, chunking large requests.

        Cells of chunk pairs that failed are left as ``None``.
        """
        if len(coordinates) < 2:
            raise ValueError("At least two coordinates are required for OSRM table.")

        if len(coordinates) <= self.max_coordinates_per_request:
            return self._table_single_request(coordinates)

        start_time = time.time()
        chunk_size = self.max_coordinates_per_request
        chunks: list[list[tuple[float, float]]] = []
        offsets: list[int] = []
        for i in range(0, len(coordinates), chunk_size):
            chunks.append(list(coordinates[i : i + chunk_size]))
            offsets.append(i)

        n = len(coordinates)
        durations: list[list[float | None]] = [[None] * n for _ in range(n)]
        distances: list[list[float | None]] = [[None] * n for _ in range(n)]

        total_requests = len(chunks) * len(chunks)
        logger.info(
            f"Chunking OSRM table request: {n} coordinates into {total_requests} requests "
            f"(max {self.max_parallel_requests} concurrent)"
        )

        failed_chunks = 0
        with ThreadPoolExecutor(max_workers=self.max_parallel_requests) as executor:
            futures = [
                executor.submit(self._process_chunk_request, chunks, src_idx, dst_idx)
                for src_idx in range(len(chunks))
                for dst_idx in range(len(chunks))
            ]
            for future in as_completed(futures):
                src_idx, dst_idx, result = future.result()
                if result is None:
                    failed_chunks += 1
                    continue
                src_offset, dst_offset = offsets[src_idx], offsets[dst_idx]
                for local_src, row in enumerate(result["durations"]):
                    for local_dst, value in enumerate(row):
                        durations[src_offset + local_src][dst_offset + local_dst] = value
                        distances[src_offset + local_src][dst_offset + local_dst] = result["distances"][local_src][local_dst]

        elapsed = time.time() - start_time
        if failed_chunks == total_requests:
            raise ConnectionError(
                f"All {total_requests} OSRM chunk requests failed. Please check OSRM connectivity and try again."
            )
        if failed_chunks:
            logger.warning(f"Partial failure: {failed_chunks}/{total_requests} chunk requests failed ({elapsed:.2f}s)")
        else:
            logger.info(f"Completed OSRM table request: {total_requests} chunk requests in {elapsed:.2f}s")

        return {"durations": durations, "distances": distances}


def check_health(base_url: str | None = None) -> bool:
    """Check OSRM service health by making a minimal two-point table request."""
    base = base_url or settings.osrm_base_url
    if not base:
        return False
    try:
        test_coords = "13.388860,52.517037;13.385983,52.496891"
        url = f"{base.rstrip('/')}/table/v1/{settings.osrm_profile}/{test_coords}"
        response = httpx.get(url, params={"annotations": "duration"}, timeout=5.0)
        response.raise_for_status()
        data = response.json()
        return "durations" in data and isinstance(data.get("durations"), list)
    except (httpx.HTTPError, ValueError):
        return False
