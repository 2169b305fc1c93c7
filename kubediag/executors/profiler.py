"""Profiler embedded in the stage engines.

Go profiles are fetched over HTTP from ``go.source`` (typically a pprof
endpoint) and written to::

    <data_root>/profilers/<namespace>.<abnormal>/<profiler>.prof

The stored path is reported as the status endpoint.  Java profiling needs
tooling inside the target container and is reported as unsupported.
"""

from __future__ import annotations

from pathlib import Path

import httpx
import structlog

from kubediag.models.abnormal import (
    Abnormal,
    GoProfilerStatus,
    JavaProfilerStatus,
    ProfilerSpec,
    ProfilerStatus,
)
from kubediag.models.processor import DEFAULT_TIMEOUT_SECONDS

_log = structlog.get_logger(component="executors.profiler")


class ProfilerRunner:
    """Runs profiler specs for an Abnormal.

    Args:
        data_root:       Directory under which profiles are stored.
        default_timeout: Seconds allowed when the spec declares no timeout.
        transport:       Optional transport override, e.g. ``httpx.MockTransport``.
    """

    def __init__(
        self,
        data_root: str | Path,
        default_timeout: int = DEFAULT_TIMEOUT_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._data_root = Path(data_root)
        self._default_timeout = default_timeout
        self._client = httpx.AsyncClient(transport=transport, trust_env=False)

    async def close(self) -> None:
        await self._client.aclose()

    def profile_path(self, abnormal: Abnormal, spec: ProfilerSpec) -> Path:
        """Return where the profile for *spec* is stored.

        Raises:
            ValueError: if the profiler or Abnormal name would place the
                file outside ``<data_root>/profilers``.
        """
        if not spec.name or spec.name in (".", "..") or "/" in spec.name or "\\" in spec.name:
            raise ValueError(f"invalid profiler name {spec.name!r}")
        root = self._data_root / "profilers"
        directory = f"{abnormal.metadata.namespace}.{abnormal.metadata.name}"
        path = root / directory / f"{spec.name}.prof"
        if not path.resolve().is_relative_to(root.resolve()):
            raise ValueError(f"profile path {path} escapes {root}")
        return path

    async def run(self, abnormal: Abnormal, spec: ProfilerSpec) -> ProfilerStatus:
        status = ProfilerStatus(name=spec.name, type=spec.type)
        if (spec.go is None) == (spec.java is None):
            status.error = "exactly one of go or java must be set"
            return status

        if spec.java is not None:
            status.java = JavaProfilerStatus(type=spec.java.type)
            status.error = "java profiler is not supported by this agent"
            return status

        assert spec.go is not None
        try:
            path = self.profile_path(abnormal, spec)
        except ValueError as exc:
            status.error = str(exc)
            return status

        timeout = spec.timeout_seconds if spec.timeout_seconds > 0 else self._default_timeout
        try:
            response = await self._client.get(spec.go.source, timeout=timeout)
        except httpx.TimeoutException:
            status.error = f"profile download from {spec.go.source} timed out after {timeout}s"
            return status
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            status.error = f"profile download from {spec.go.source} failed: {exc}"
            return status

        if not response.is_success:
            status.error = f"status code {response.status_code} from {spec.go.source}"
            return status

        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(response.content)
        except OSError as exc:
            status.error = f"unable to store profile: {exc}"
            return status

        status.go = GoProfilerStatus(endpoint=str(path))
        _log.info("profile_stored", abnormal=str(abnormal.key), profiler=spec.name, path=str(path))
        return status
