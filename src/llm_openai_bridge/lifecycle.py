"""Bind, unbind and recover the HTTP listener."""

import asyncio
import errno
import socket
from collections.abc import Awaitable, Callable

import uvicorn

from llm_openai_bridge.config import Settings
from llm_openai_bridge.errors import PortInUse
from llm_openai_bridge.status import StatusReflector
from llm_openai_bridge.utils import get_logger

logger = get_logger(__name__)

StopSignal = Callable[[int], Awaitable[None]]

STARTUP_POLL_INTERVAL = 0.02
STOP_COMMAND_TIMEOUT = 10.0


def bind_socket(host: str, port: int) -> socket.socket:
    """Bind (without listening) a TCP socket.

    Raises:
        PortInUse: another listener holds the address
    """
    family = socket.AF_INET6 if ":" in host else socket.AF_INET
    sock = socket.socket(family, socket.SOCK_STREAM)
    sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
    try:
        sock.bind((host, port))
    except OSError as e:
        sock.close()
        if e.errno == errno.EADDRINUSE:
            raise PortInUse(port) from e
        raise
    return sock


def port_is_free(host: str, port: int) -> bool:
    """Probe ``port`` with a throwaway listener."""
    try:
        sock = bind_socket(host, port)
    except (PortInUse, OSError):
        return False
    with sock:
        try:
            sock.listen(1)
        except OSError:
            return False
    return True


async def no_stop_signal(port: int) -> None:
    logger.debug("lifecycle.no_stop_signal", port=port)


def command_stop_signal(command: str) -> StopSignal:
    """Stop signal that runs a shell command (``{port}`` is substituted)."""

    async def run(port: int) -> None:
        process = await asyncio.create_subprocess_shell(
            command.format(port=port),
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.DEVNULL,
        )
        try:
            await asyncio.wait_for(process.wait(), timeout=STOP_COMMAND_TIMEOUT)
        except asyncio.TimeoutError:
            process.kill()
            raise
        logger.info("lifecycle.stop_command", command=command, returncode=process.returncode)

    return run


class ServerLifecycleManager:
    """Start/stop boundary around the ASGI app.

    ``start`` is serialized: a call while already running stops the current
    listener and starts a fresh one. When the port is taken the manager makes
    exactly one recovery attempt (release own handle, send the external stop
    signal, wait, probe, retry) and reports a second failure through the
    status reflector.
    """

    def __init__(
        self,
        app,
        settings: Settings,
        status: StatusReflector | None = None,
        stop_signal: StopSignal | None = None,
    ) -> None:
        self.app = app
        self.settings = settings
        self.status = status or StatusReflector()
        if stop_signal is not None:
            self.stop_signal = stop_signal
        elif settings.recovery_stop_command:
            self.stop_signal = command_stop_signal(settings.recovery_stop_command)
        else:
            self.stop_signal = no_stop_signal
        self._lock = asyncio.Lock()
        self._server: uvicorn.Server | None = None
        self._task: asyncio.Task | None = None
        self._socket: socket.socket | None = None

    @property
    def host(self) -> str:
        return self.settings.host

    @property
    def port(self) -> int:
        return self.settings.port

    @property
    def running(self) -> bool:
        return self._server is not None

    async def activate(self) -> bool:
        """Start only when ``auto_start`` is configured."""
        if not self.settings.auto_start:
            logger.info("lifecycle.auto_start_disabled")
            return False
        return await self.start()

    async def start(self) -> bool:
        """Bind the configured port and serve.

        Returns:
            True once the server accepts connections, False when startup
            failed (the failure is reported through the status reflector)
        """
        async with self._lock:
            if self._server is not None:
                logger.info("lifecycle.restart", port=self.port)
                await self._shutdown()

            try:
                await self._launch()
            except PortInUse:
                return await self._recover()
            except Exception as e:
                logger.exception("lifecycle.start_failed", port=self.port, error=str(e))
                self.status.report_error(f"Failed to start server: {e}")
                self.status.update(False)
                return False
            return True

    async def stop(self) -> bool:
        """Stop serving and wait until the listener is closed."""
        async with self._lock:
            if self._server is None:
                self.status.report_info("Server is not running")
                return False
            await self._shutdown()
            logger.info("lifecycle.stopped", port=self.port)
            self.status.update(False)
            return True

    async def wait_closed(self) -> None:
        """Block until the serve task ends (e.g. after a signal)."""
        task = self._task
        if task is not None:
            await asyncio.shield(task)

    async def _recover(self) -> bool:
        logger.warning("lifecycle.port_in_use", port=self.port)
        await self._shutdown()

        try:
            await self.stop_signal(self.port)
        except Exception as e:
            logger.warning("lifecycle.stop_signal_failed", port=self.port, error=str(e))

        await asyncio.sleep(self.settings.recovery_delay)
        logger.info("lifecycle.port_probe", port=self.port, free=port_is_free(self.host, self.port))

        try:
            await self._launch()
        except Exception as e:
            message = f"Failed to start server on port {self.port}: {e}"
            logger.error("lifecycle.recovery_failed", port=self.port, error=str(e))
            self.status.report_error(message)
            self.status.update(False)
            return False

        logger.info("lifecycle.recovered", port=self.port)
        return True

    async def _launch(self) -> None:
        sock = bind_socket(self.host, self.port)
        config = uvicorn.Config(
            self.app,
            host=self.host,
            port=self.port,
            lifespan="off",
            log_config=None,
            access_log=False,
        )
        server = uvicorn.Server(config)
        task = asyncio.create_task(server.serve(sockets=[sock]))

        while not server.started:
            if task.done():
                sock.close()
                error = task.exception()
                if error is not None:
                    raise error
                raise RuntimeError("Server exited during startup")
            await asyncio.sleep(STARTUP_POLL_INTERVAL)

        self._server = server
        self._task = task
        self._socket = sock
        logger.info("lifecycle.started", url=self.settings.base_url)
        self.status.update(True, self.settings.base_url)

    async def _shutdown(self) -> None:
        server, task, sock = self._server, self._task, self._socket
        self._server = self._task = self._socket = None
        if server is None:
            return
        server.should_exit = True
        try:
            if task is not None:
                await task
        finally:
            if sock is not None:
                sock.close()
