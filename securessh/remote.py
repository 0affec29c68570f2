"""
SecureSSH - Remote Session Launcher

Hands a decrypted credential to the external login client:

    sshpass -e ssh -o StrictHostKeyChecking=no -o ConnectTimeout=5 \\
        -p <port> <user>@<host> [command]

The password travels in the SSHPASS environment variable of the child,
never on its command line. This module opens no sockets itself.
"""

import logging
import os
import shutil
import subprocess
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

from .errors import ConnectionFailure, ConnectivityTimeout, MissingDependency
from .models import DEFAULT_PORT

logger = logging.getLogger(__name__)

DEFAULT_PROBE_TIMEOUT = 5.0


@dataclass(frozen=True)
class ConnectionProfile:
    """Everything the launcher needs for one host, password in plaintext."""
    address: str
    username: str
    port: int
    password: str

    def __repr__(self):
        return (f"ConnectionProfile(address={self.address!r}, "
                f"username={self.username!r}, port={self.port}, password=<redacted>)")


class SSHClient:
    """Runs ssh through sshpass."""

    def __init__(self, sshpass_path: str = "sshpass", ssh_path: str = "ssh"):
        self.sshpass_path = sshpass_path
        self.ssh_path = ssh_path

    def build_command(
        self,
        host: str,
        user: str,
        port: int,
        command: Optional[Sequence[str]] = None,
    ) -> List[str]:
        args = [
            self.sshpass_path, "-e", self.ssh_path,
            "-o", "StrictHostKeyChecking=no",
            "-o", "ConnectTimeout=5",
            "-p", str(port),
            f"{user}@{host}",
        ]
        if command:
            args.extend(command)
        return args

    @staticmethod
    def _env(password: str) -> Dict[str, str]:
        env = dict(os.environ)
        env["SSHPASS"] = password
        return env

    def connect(self, profile: ConnectionProfile, command: Optional[Sequence[str]] = None) -> None:
        """
        Interactive session; stdin/stdout/stderr are inherited.

        Raises:
            ConnectionFailure: ssh exited non-zero
        """
        argv = self.build_command(profile.address, profile.username, profile.port, command)
        logger.info("Connecting to %s@%s:%d", profile.username, profile.address, profile.port)
        result = subprocess.run(argv, env=self._env(profile.password))
        if result.returncode != 0:
            raise ConnectionFailure(result.returncode)

    def probe(self, profile: ConnectionProfile, timeout: float = DEFAULT_PROBE_TIMEOUT) -> None:
        """
        Check that a login succeeds by running `exit` on the host.

        Raises:
            ConnectivityTimeout: no answer within timeout seconds
            ConnectionFailure: login failed
        """
        argv = self.build_command(profile.address, profile.username, profile.port, ["exit"])
        self.run_bounded(argv, timeout, env=self._env(profile.password))

    def run_bounded(
        self,
        argv: Sequence[str],
        timeout: float,
        env: Optional[Dict[str, str]] = None,
    ) -> None:
        """
        Run argv, waiting at most timeout seconds.

        On timeout the child is killed and reaped before raising, so no
        process is left behind on any path.
        """
        logger.debug("Probe started: %s (timeout %.1fs)", argv[0], timeout)
        proc = subprocess.Popen(
            list(argv),
            env=env,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
        )
        try:
            returncode = proc.wait(timeout=timeout)
        except subprocess.TimeoutExpired:
            logger.warning("Probe timed out after %.1fs, killing pid %d", timeout, proc.pid)
            proc.kill()
            proc.wait()
            raise ConnectivityTimeout(timeout)
        except BaseException:
            proc.kill()
            proc.wait()
            raise

        if returncode != 0:
            raise ConnectionFailure(returncode)

    def check_dependencies(self) -> None:
        """
        Raises:
            MissingDependency: sshpass or ssh is not on PATH
        """
        for binary in (self.sshpass_path, self.ssh_path):
            if shutil.which(binary) is None:
                raise MissingDependency(binary)


def parse_host_string(host_str: str) -> Tuple[str, str, int]:
    """
    Parse "user@host:port" (user and port optional).

    Returns:
        (host, user, port) with port defaulting to 22 and user to ""

    Raises:
        ValueError: empty host or non-numeric port
    """
    user = ""
    port = DEFAULT_PORT

    if "@" in host_str:
        user, host_str = host_str.rsplit("@", 1)

    host, sep, port_str = host_str.partition(":")
    if sep:
        try:
            port = int(port_str)
        except ValueError:
            raise ValueError(f"invalid port: {port_str!r}")
        if not 0 < port < 65536:
            raise ValueError(f"invalid port: {port}")

    if not host:
        raise ValueError("invalid host string")

    return host, user, port
