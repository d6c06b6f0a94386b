"""PTY session management for individual shell processes.

This module manages a single PTY (pseudo-terminal) process, handling:
- Process lifecycle (fork, exec, kill, reap)
- Bidirectional I/O (read output, write input)
- Terminal sizing (TIOCSWINSZ ioctl)
- Output and exit delivery through callbacks owned by the session directory
"""

import asyncio
import logging
import os
from typing import Callable, List, Optional

logger = logging.getLogger(__name__)

OutputCallback = Callable[[str], None]
ExitCallback = Callable[[Optional[int]], None]


class PTYSession:
    """
    Manages a single PTY process for one terminal session.

    Architecture:
    - Runs in the server's event loop
    - Uses asyncio.run_in_executor() for blocking PTY operations
    - Hands output and the exit code to callbacks; it knows nothing about windows

    Lifecycle:
    1. start() - Fork process, start shell, begin output reading
    2. write() - Send user input to PTY
    3. resize() - Update terminal dimensions
    4. stop() - Kill process, cleanup resources

    The read loop ends on its own when the child exits (EOF/EIO on the master
    side); the exit code is reaped with waitpid() and reported once through
    on_exit.

    Attributes:
        session_id: Unique session identifier
        cwd: Working directory for the shell process
        shell: Shell executable
        shell_args: Arguments for an interactive shell
        command: Command run with ``shell -c`` instead of an interactive shell
        master_fd: PTY master file descriptor (or None if not started)
        pid: Child process ID (or None if not started)
        running: Whether the PTY is currently active
        exit_code: Exit code once the child was reaped
    """

    def __init__(
        self,
        session_id: str,
        cwd: str,
        on_output: OutputCallback,
        on_exit: ExitCallback,
        shell: str = "bash",
        shell_args: Optional[List[str]] = None,
        command: Optional[str] = None,
    ):
        """
        Initialize PTY session.

        Args:
            session_id: Unique session identifier
            cwd: Working directory for the shell process
            on_output: Called in the event loop with each decoded output chunk
            on_exit: Called once with the exit code (None if unknown)
            shell: Shell executable
            shell_args: Arguments for an interactive shell
            command: Optional command to run instead of an interactive shell
        """
        self.session_id = session_id
        self.cwd = cwd
        self.on_output = on_output
        self.on_exit = on_exit
        self.shell = shell
        self.shell_args = list(shell_args) if shell_args is not None else ["--norc", "--noprofile"]
        self.command = command

        # PTY state
        self.master_fd: Optional[int] = None
        self.pid: Optional[int] = None
        self.running = False
        self.exit_code: Optional[int] = None

        # Background task for output reading
        self._read_task: Optional[asyncio.Task] = None
        self._exit_reported = False

        logger.debug(f"PTYSession initialized: session_id={session_id}, cwd={cwd}")

    @property
    def argv(self) -> List[str]:
        if self.command:
            return [self.shell, "-c", self.command]
        return [self.shell, *self.shell_args]

    async def start(self) -> None:
        """
        Start the PTY process.

        Raises:
            RuntimeError: If already started
            OSError: If fork fails

        Note:
            A child that cannot chdir or exec exits with status 1, which is
            reported through on_exit like any other exit.
        """
        if self.running:
            raise RuntimeError(f"PTY already running: session_id={self.session_id}")

        logger.info(f"[PTYSession] Starting: session_id={self.session_id}, argv={self.argv}")

        loop = asyncio.get_running_loop()
        self.pid, self.master_fd = await loop.run_in_executor(None, self._fork_pty)

        self.running = True
        self._read_task = asyncio.create_task(self._read_output())

        logger.info(f"[PTYSession] Started: session_id={self.session_id}, pid={self.pid}")

    def _fork_pty(self) -> tuple[int, int]:
        """
        Fork PTY process (blocking operation, runs in executor).

        Returns:
            Tuple of (pid, master_fd)

        Note:
            This method is SYNCHRONOUS and should only be called via run_in_executor.
        """
        import pty

        argv = self.argv
        pid, master_fd = pty.fork()

        if pid == 0:  # Child process
            try:
                os.chdir(self.cwd)
                os.execvp(argv[0], argv)
            except Exception:
                os._exit(1)

        return pid, master_fd

    async def _read_output(self) -> None:
        """
        Continuously read PTY output until the child exits or stop() is called.

        Error Handling:
        - EOF/EIO on read: child exited, reap it and report the exit code
        - Cancellation: clean exit (stop() was called)
        """
        logger.debug(f"[PTYSession] Read task started: session_id={self.session_id}")
        loop = asyncio.get_running_loop()

        while self.running:
            try:
                output = await loop.run_in_executor(None, self._read_pty_nonblocking)
            except asyncio.CancelledError:
                logger.debug(f"[PTYSession] Read task cancelled: session_id={self.session_id}")
                raise
            except EOFError:
                break
            except Exception as e:
                logger.error(f"[PTYSession] Read error: session_id={self.session_id}: {e}")
                break

            if output:
                try:
                    self.on_output(output)
                except Exception as e:
                    logger.error(f"[PTYSession] Output callback failed: {e}", exc_info=True)

        if self.running:
            await self._handle_child_exit()

        logger.debug(f"[PTYSession] Read task ended: session_id={self.session_id}")

    def _read_pty_nonblocking(self) -> Optional[str]:
        """
        Non-blocking read from PTY (runs in executor).

        Returns:
            String data if available, None if no data yet

        Raises:
            EOFError: When the child side of the PTY is gone

        Note:
            This method is SYNCHRONOUS and should only be called via run_in_executor.
        """
        import select

        if self.master_fd is None:
            raise EOFError()

        r, _, _ = select.select([self.master_fd], [], [], 0.1)
        if not r:
            return None

        try:
            data = os.read(self.master_fd, 4096)
        except OSError:
            raise EOFError()

        if not data:
            raise EOFError()
        return data.decode('utf-8', errors='replace')

    async def _handle_child_exit(self) -> None:
        self.running = False
        loop = asyncio.get_running_loop()
        self.exit_code = await loop.run_in_executor(None, self._reap)
        self._close_fd()
        logger.info(f"[PTYSession] Child exited: session_id={self.session_id}, code={self.exit_code}")
        self._report_exit()

    def _reap(self) -> Optional[int]:
        """Wait for the child and decode its status (runs in executor)."""
        if not self.pid:
            return None
        try:
            _, status = os.waitpid(self.pid, 0)
        except ChildProcessError:
            return None
        return os.waitstatus_to_exitcode(status)

    def _report_exit(self) -> None:
        if self._exit_reported:
            return
        self._exit_reported = True
        try:
            self.on_exit(self.exit_code)
        except Exception as e:
            logger.error(f"[PTYSession] Exit callback failed: {e}", exc_info=True)

    async def write(self, data: str) -> None:
        """
        Write user input to PTY.

        Raises:
            RuntimeError: If PTY not running
            OSError: If write fails
        """
        if not self.running or self.master_fd is None:
            raise RuntimeError(f"PTY not running: session_id={self.session_id}")

        logger.debug(
            f"[PTYSession] Writing input: session_id={self.session_id}, "
            f"data_length={len(data)}"
        )

        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, os.write, self.master_fd, data.encode('utf-8'))

    async def resize(self, cols: int, rows: int) -> None:
        """
        Resize terminal window.

        Raises:
            RuntimeError: If PTY not running
            OSError: If ioctl fails
        """
        if not self.running or self.master_fd is None:
            raise RuntimeError(f"PTY not running: session_id={self.session_id}")

        logger.debug(
            f"[PTYSession] Resizing: session_id={self.session_id}, "
            f"cols={cols}, rows={rows}"
        )

        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self._resize_pty, cols, rows)

    def _resize_pty(self, cols: int, rows: int) -> None:
        """Resize PTY using ioctl (runs in executor)."""
        import fcntl
        import termios
        import struct

        # Pack window size: (rows, cols, xpixel, ypixel)
        winsize = struct.pack("HHHH", rows, cols, 0, 0)
        fcntl.ioctl(self.master_fd, termios.TIOCSWINSZ, winsize)

    async def stop(self) -> None:
        """
        Stop the PTY process and cleanup resources.

        The exit is not reported through on_exit: stopping is the caller's
        own decision.

        Note:
            Safe to call multiple times (idempotent)
        """
        if not self.running:
            logger.debug(f"[PTYSession] Already stopped: session_id={self.session_id}")
            return

        logger.info(f"[PTYSession] Stopping: session_id={self.session_id}")

        self.running = False
        self._exit_reported = True

        if self._read_task:
            self._read_task.cancel()
            try:
                await self._read_task
            except asyncio.CancelledError:
                pass

        if self.pid:
            try:
                os.kill(self.pid, 15)  # SIGTERM (graceful)
                await asyncio.sleep(0.5)
                os.kill(self.pid, 9)   # SIGKILL (force)
            except ProcessLookupError:
                pass
            try:
                os.waitpid(self.pid, os.WNOHANG)
            except ChildProcessError:
                pass

        self._close_fd()

        logger.info(f"[PTYSession] Stopped: session_id={self.session_id}")

    def _close_fd(self) -> None:
        if self.master_fd is None:
            return
        try:
            os.close(self.master_fd)
        except OSError:
            pass
        self.master_fd = None
