"""Log viewer - open 'adb logcat' for the app in a new terminal window."""

from __future__ import annotations

import asyncio
import shlex
import shutil
import subprocess
import sys

import structlog

from android_devloop.errors import DevloopError
from android_devloop.utils.template import render_command

logger = structlog.get_logger()

SUPPORTED_TERMINALS: dict[str, tuple[str, ...]] = {
    "darwin": ("iterm2", "terminal"),
    "linux": ("gnome-terminal", "konsole", "xterm"),
    "win32": ("wt",),
}


def _applescript_string(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"')


def logcat_command(serial: str, package: str | None, colorize: bool = True) -> str:
    """Shell command streaming logcat, filtered to the app's pid when known."""
    adb = f"adb -s {shlex.quote(serial)}"
    command = f"{adb} logcat"
    if colorize:
        command += " -v color"
    if package and package != "unknown":
        command += f" --pid=$({adb} shell pidof -s {shlex.quote(package)})"
    return command


def terminal_args(terminal: str, command: str, title: str, cwd: str) -> list[str] | None:
    """argv that opens terminal running command; None for unknown terminals."""
    if terminal == "iterm2":
        script = (
            'tell application "iTerm"\n'
            "  create window with default profile\n"
            "  tell current session of current window\n"
            f'    set name to "{_applescript_string(title)}"\n'
            f'    write text "cd {_applescript_string(shlex.quote(cwd))}"\n'
            f'    write text "{_applescript_string(command)}"\n'
            "  end tell\n"
            "  activate\n"
            "end tell"
        )
        return ["osascript", "-e", script]
    if terminal == "terminal":
        inner = f"cd {shlex.quote(cwd)} && {command}"
        script = (
            'tell application "Terminal"\n'
            f'  do script "{_applescript_string(inner)}"\n'
            f'  set custom title of front window to "{_applescript_string(title)}"\n'
            "  activate\n"
            "end tell"
        )
        return ["osascript", "-e", script]
    if terminal == "gnome-terminal":
        return [
            "gnome-terminal",
            "--title",
            title,
            "--working-directory",
            cwd,
            "--",
            "bash",
            "-c",
            f"{command}; exec bash",
        ]
    if terminal == "konsole":
        return ["konsole", "--title", title, "--workdir", cwd, "-e", "bash", "-c", f"{command}; exec bash"]
    if terminal == "xterm":
        return ["xterm", "-title", title, "-e", "bash", "-c", f"cd {shlex.quote(cwd)} && {command}; exec bash"]
    if terminal == "wt":
        return ["wt", "--title", title, "--startingDirectory", cwd, "cmd", "/c", command]
    return None


class LogViewer:
    """Spawns a terminal window tailing the app's logcat."""

    def __init__(
        self,
        terminal: str = "auto",
        clear_on_start: bool = True,
        colorize: bool = True,
        cwd: str = ".",
        platform: str | None = None,
        template: str | None = None,
    ) -> None:
        self.terminal = terminal
        self.clear_on_start = clear_on_start
        self.colorize = colorize
        self.cwd = cwd
        self.platform = platform or sys.platform
        self.template = template

    def available_terminals(self) -> list[str]:
        return [name for name in SUPPORTED_TERMINALS.get(self.platform, ()) if self._available(name)]

    def detect_terminal(self) -> str | None:
        if self.terminal != "auto":
            return self.terminal
        available = self.available_terminals()
        if not available:
            logger.debug("terminal_not_detected", platform=self.platform)
            return None
        logger.debug("terminal_detected", terminal=available[0])
        return available[0]

    async def open_logs(self, serial: str, package: str | None) -> bool:
        """Open logcat in a new window; False if no terminal could be spawned."""
        terminal = self.detect_terminal()
        if terminal is None:
            logger.error("terminal_not_found", platform=self.platform)
            return False

        if self.clear_on_start:
            await self._clear_logcat(serial)

        command = self.build_command(serial, package)
        title = f"Logcat - {package or 'device'} ({serial})"
        args = terminal_args(terminal, command, title, self.cwd)
        if args is None:
            logger.error("terminal_unsupported", terminal=terminal)
            return False

        def _spawn() -> None:
            subprocess.Popen(
                args,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                start_new_session=True,
            )

        try:
            await asyncio.to_thread(_spawn)
        except OSError:
            logger.exception("terminal_spawn_failed", terminal=terminal)
            return False
        logger.info("logcat_opened", terminal=terminal, serial=serial, package=package)
        return True

    def build_command(self, serial: str, package: str | None) -> str:
        """Command run in the window: the configured template, else the built-in one."""
        if self.template:
            variables = {
                "device_id": serial,
                "package_name": package if package and package != "unknown" else "",
            }
            try:
                return render_command(self.template, variables)
            except DevloopError as exc:
                logger.warning("logcat_template_invalid", template=self.template, error=exc.message)
        return logcat_command(serial, package, colorize=self.colorize)

    def _available(self, terminal: str) -> bool:
        if terminal in ("iterm2", "terminal"):
            return self.platform == "darwin" and shutil.which("osascript") is not None
        return shutil.which(terminal) is not None

    async def _clear_logcat(self, serial: str) -> None:
        adb_path = shutil.which("adb")
        if not adb_path:
            logger.warning("logcat_clear_skipped", reason="adb_not_found")
            return

        def _run() -> subprocess.CompletedProcess[str]:
            return subprocess.run(
                [adb_path, "-s", serial, "logcat", "-c"],
                check=False,
                capture_output=True,
                text=True,
            )

        result = await asyncio.to_thread(_run)
        if result.returncode != 0:
            logger.warning("logcat_clear_failed", serial=serial, stderr=result.stderr.strip())
