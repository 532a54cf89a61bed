"""Best-effort notification dispatch for new public URLs."""

import shlex
import shutil
import subprocess  # nosec B404
from dataclasses import dataclass

from ..utils.logging import LogContext, get_logger

logger = get_logger(__name__, LogContext.NOTIFY)

NOTIFY_TIMEOUT = 10.0


@dataclass
class Notification:
    """Payload handed to the external notification command."""

    session_name: str
    public_url: str
    attach_command: str
    stop_command: str

    def as_args(self) -> list[str]:
        return [
            self.session_name,
            self.public_url,
            self.attach_command,
            self.stop_command,
        ]


class Notifier:
    """Invokes an external notification command.

    Every failure is logged and swallowed: notifying is never allowed to
    fail a lifecycle operation.
    """

    def __init__(self, command: str | None, program_name: str = "cc-remote"):
        """Initialize notifier.

        Args:
            command: Notification command line, or None to disable
            program_name: Program name used to render convenience commands
        """
        self.command = shlex.split(command) if command else []
        self.program_name = program_name

    def build(self, session_name: str, public_url: str) -> Notification:
        quoted = shlex.quote(session_name)
        return Notification(
            session_name=session_name,
            public_url=public_url,
            attach_command=f"{self.program_name} attach {quoted}",
            stop_command=f"{self.program_name} stop {quoted}",
        )

    def notify(self, session_name: str, public_url: str) -> bool:
        """Send a notification for a session's public URL.

        Returns:
            True if the command ran and exited successfully
        """
        if not self.command:
            logger.debug("Notifications disabled", session_name=session_name)
            return False

        executable = shutil.which(self.command[0])
        if executable is None:
            logger.debug(
                "Notification command not installed",
                command=self.command[0],
                session_name=session_name,
            )
            return False

        notification = self.build(session_name, public_url)
        try:
            result = subprocess.run(  # nosec B603
                [executable, *self.command[1:], *notification.as_args()],
                capture_output=True,
                text=True,
                timeout=NOTIFY_TIMEOUT,
                check=False,
            )
        except (OSError, subprocess.SubprocessError) as e:
            logger.warning(
                "Failed to run notification command",
                command=self.command[0],
                session_name=session_name,
                error=str(e),
            )
            return False

        if result.returncode != 0:
            logger.warning(
                "Notification command returned error status",
                command=self.command[0],
                session_name=session_name,
                returncode=result.returncode,
                stderr=result.stderr.strip(),
            )
            return False

        logger.info("Notification sent", session_name=session_name)
        return True
