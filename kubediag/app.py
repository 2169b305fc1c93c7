"""Application bootstrap for the kubediag agent.

Wires all components in dependency order and manages the asyncio lifecycle.
Startup order: config → logging → K8s client → store → event sink
              → processor client → executors → stage engines → router → REST

Shutdown is graceful: components are stopped in reverse startup order.
Each component's stop error is caught and logged independently so that a
single component failure does not prevent the rest from shutting down.
"""

from __future__ import annotations

import asyncio
import signal
from typing import TYPE_CHECKING, Any

from kubediag.config import load_config
from kubediag.models.config import KubeDiagConfig
from kubediag.observability.logging import get_logger, setup_logging

if TYPE_CHECKING:
    import structlog

    from kubediag.chain.engine import StageEngine

_SHUTDOWN_GRACE_SECONDS = 60


class _ComponentError(Exception):
    """Raised when a mandatory component fails to start."""

    def __init__(self, component: str, cause: Exception) -> None:
        super().__init__(f"Component '{component}' failed to start: {cause}")
        self.component = component
        self.cause = cause


class KubeDiagApp:
    """Application root.  Owns every component and coordinates their lifecycle.

    Calling ``stop()`` on an app that was never started (or already stopped)
    is safe.
    """

    def __init__(self) -> None:
        self.config: KubeDiagConfig | None = None

        self._api_client: Any = None
        self._store: Any = None
        self._event_sink: Any = None
        self._processor_client: Any = None
        self._command_executor: Any = None
        self._profiler: Any = None
        self._engines: list[StageEngine] = []
        self._router: Any = None
        self._rest_server: Any = None

        self._background_tasks: list[asyncio.Task[Any]] = []

        self._running = False
        self._log: structlog.stdlib.BoundLogger | None = None

    # ------------------------------------------------------------------
    # Startup
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Start all components in dependency order.

        Raises _ComponentError if a mandatory component cannot start.
        """
        # --- 1. Configuration -------------------------------------------
        self.config = load_config()

        # --- 2. Logging -------------------------------------------------
        setup_logging(self.config.log.level, node_name=self.config.agent.node_name)
        self._log = get_logger("app")
        self._log.info(
            "kubediag starting",
            version=_kubediag_version(),
            node_name=self.config.agent.node_name,
            store=self.config.store.backend,
        )

        # --- 3. Kubernetes client ----------------------------------------
        await self._start_k8s_client()

        # --- 4. Resource store -------------------------------------------
        await self._start_store()

        # --- 5. Event sink -----------------------------------------------
        await self._start_event_sink()

        # --- 6. Processor client and embedded executors ------------------
        await self._start_processors()

        # --- 7. Stage engines --------------------------------------------
        await self._start_engines()

        # --- 8. Router ---------------------------------------------------
        await self._start_router()

        # --- 9. REST API -------------------------------------------------
        await self._start_rest()

        self._running = True
        self._log.info("kubediag started", port=self.config.api.port)

    # ------------------------------------------------------------------
    # Component startup helpers
    # ------------------------------------------------------------------

    async def _start_k8s_client(self) -> None:
        """Load cluster configuration and build the shared ApiClient."""
        assert self._log is not None
        assert self.config is not None
        if self.config.store.backend != "kubernetes":
            self._log.info("k8s client disabled", store=self.config.store.backend)
            return

        self._log.debug("starting k8s client")
        try:
            import kubernetes_asyncio.config as k8s_config  # type: ignore[import-untyped]
            from kubernetes_asyncio import client as k8s_client  # type: ignore[import-untyped]

            try:
                k8s_config.load_incluster_config()
                self._log.info("k8s client configured from in-cluster service account")
            except k8s_config.ConfigException:
                await k8s_config.load_kube_config()
                self._log.info("k8s client configured from kubeconfig")

            self._api_client = k8s_client.ApiClient()
        except Exception as exc:
            raise _ComponentError("k8s_client", exc) from exc

    async def _start_store(self) -> None:
        assert self._log is not None
        assert self.config is not None
        self._log.debug("starting resource store")
        try:
            if self.config.store.backend == "memory":
                from kubediag.store.memory import InMemoryResourceStore

                self._store = InMemoryResourceStore()
            else:
                from kubediag.store.kubernetes import KubernetesResourceStore

                self._store = KubernetesResourceStore(self._api_client)
            self._log.info("resource store started", backend=self.config.store.backend)
        except Exception as exc:
            raise _ComponentError("store", exc) from exc

    async def _start_event_sink(self) -> None:
        """Record events to the cluster when possible, otherwise to the log."""
        assert self._log is not None
        assert self.config is not None
        from kubediag.events import LoggingEventSink

        if not self.config.events.enabled or self._api_client is None:
            self._event_sink = LoggingEventSink()
            self._log.info("event sink started", sink="logging")
            return

        try:
            from kubernetes_asyncio import client as k8s_client  # type: ignore[import-untyped]

            from kubediag.events import KubernetesEventSink

            core_api = k8s_client.CoreV1Api(self._api_client)
            self._event_sink = KubernetesEventSink(core_api, self.config.agent.node_name)
            self._log.info("event sink started", sink="kubernetes")
        except Exception as exc:
            # Events are an audit trail only; the pipeline works without them
            self._log.warning("kubernetes event sink failed to start; logging events only", error=str(exc))
            self._event_sink = LoggingEventSink()

    async def _start_processors(self) -> None:
        assert self._log is not None
        assert self.config is not None
        try:
            from kubediag.chain.client import ProcessorClient
            from kubediag.executors import CommandExecutor, ProfilerRunner

            timeout = self.config.processor.default_timeout_seconds
            self._processor_client = ProcessorClient()
            self._command_executor = CommandExecutor(default_timeout=timeout)
            self._profiler = ProfilerRunner(self.config.agent.data_root, default_timeout=timeout)
            self._log.info("processor clients started", default_timeout=timeout)
        except Exception as exc:
            raise _ComponentError("processors", exc) from exc

    async def _start_engines(self) -> None:
        """Create one engine per stage and start their consumer tasks."""
        assert self._log is not None
        assert self.config is not None
        try:
            from kubediag.chain.engine import StageEngine
            from kubediag.chain.queue import AbnormalQueue
            from kubediag.chain.stages import STAGES

            for stage in STAGES:
                engine = StageEngine(
                    stage=stage,
                    store=self._store,
                    processor_client=self._processor_client,
                    event_sink=self._event_sink,
                    node_name=self.config.agent.node_name,
                    command_executor=self._command_executor,
                    profiler=self._profiler,
                    queue=AbnormalQueue(stage.name, maxsize=self.config.queue.size),
                    retry_delay=self.config.queue.retry_delay_seconds,
                )
                await engine.start()
                self._engines.append(engine)
            self._log.info("stage engines started", stages=[s.name for s in STAGES])
        except Exception as exc:
            raise _ComponentError("engines", exc) from exc

    async def _start_router(self) -> None:
        assert self._log is not None
        assert self.config is not None
        try:
            from kubediag.chain.router import AbnormalRouter

            router = AbnormalRouter(self._store, self._engines, self.config.agent.node_name)
            await router.start()
            self._router = router
            self._log.info("abnormal router started")
        except Exception as exc:
            raise _ComponentError("router", exc) from exc

    async def _start_rest(self) -> None:
        """Start the uvicorn REST server."""
        assert self._log is not None
        assert self.config is not None
        self._log.debug("starting rest api")
        try:
            import uvicorn  # type: ignore[import-untyped]

            from kubediag.api import create_app

            fastapi_app = create_app(engines=self._engines, node_name=self.config.agent.node_name)
            uv_config = uvicorn.Config(
                app=fastapi_app,
                host="0.0.0.0",
                port=self.config.api.port,
                log_config=None,  # structlog handles all logging
                access_log=False,
            )
            server = uvicorn.Server(uv_config)
            task = asyncio.create_task(server.serve(), name="rest-server")
            self._background_tasks.append(task)
            self._rest_server = server
            self._log.info("rest api started", port=self.config.api.port)
        except Exception as exc:
            raise _ComponentError("rest", exc) from exc

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    async def stop(self) -> None:
        """Gracefully stop all components in reverse startup order."""
        if not self._running and self._log is None:
            return

        log = self._log or get_logger("app")
        log.info("kubediag shutting down")

        self._running = False

        if self._rest_server is not None:
            self._rest_server.should_exit = True
        if self._background_tasks:
            await asyncio.gather(*self._background_tasks, return_exceptions=True)
        self._background_tasks.clear()
        self._rest_server = None

        # The router goes first so no new keys reach the engines
        await self._stop_component("router", self._router)
        self._router = None
        for engine in reversed(self._engines):
            await self._stop_component(f"engine.{engine.stage.name}", engine)
        self._engines.clear()

        await self._close_component("profiler", self._profiler)
        await self._close_component("processor_client", self._processor_client)
        self._profiler = None
        self._processor_client = None
        await self._close_component("k8s_client", self._api_client)
        self._api_client = None

        log.info("kubediag stopped")

    async def _stop_component(self, name: str, component: Any) -> None:
        """Call stop() on a component, catching all errors."""
        if component is None:
            return
        log = self._log or get_logger("app")
        try:
            await asyncio.wait_for(component.stop(), timeout=_SHUTDOWN_GRACE_SECONDS)
        except TimeoutError:
            log.warning("component stop timed out", component=name, timeout=_SHUTDOWN_GRACE_SECONDS)
        except Exception as exc:
            log.error("component stop raised an error", component=name, error=str(exc))

    async def _close_component(self, name: str, component: Any) -> None:
        """Release a client's connection pool."""
        if component is None:
            return
        log = self._log or get_logger("app")
        try:
            await component.close()
        except Exception as exc:
            log.debug("component close raised (non-fatal)", component=name, error=str(exc))


def _kubediag_version() -> str:
    from kubediag import __version__

    return __version__


# ---------------------------------------------------------------------------
# Async entrypoint
# ---------------------------------------------------------------------------


async def main() -> None:
    """Create the app, register OS signals, run until shutdown is requested."""
    app = KubeDiagApp()
    loop = asyncio.get_running_loop()
    shutdown = asyncio.Event()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, shutdown.set)

    try:
        await app.start()
        await shutdown.wait()
    except _ComponentError as exc:
        log = get_logger("app")
        log.critical(
            "fatal startup error",
            component=exc.component,
            error=str(exc.cause),
        )
        await app.stop()
        raise SystemExit(1) from exc
    finally:
        if app._running:
            await app.stop()
