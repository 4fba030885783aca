"""First-boot configuration of new cloud servers.

Runs once, over the password-authenticated root session opened while
waiting for the server to come up. Afterwards the server only accepts the
deployment's key pair.
"""

from __future__ import annotations

import shlex

import asyncssh
from loguru import logger

from clouddk_csi.config import DEFAULT_MIRROR
from clouddk_csi.core.exceptions import BootstrapFailureError
from clouddk_csi.ssh import Shell

UPSTREAM_MIRROR = "us.archive.ubuntu.com"


def bootstrap_script(public_key: str, *, mirror: str = DEFAULT_MIRROR) -> str:
    """Build the bootstrap command. Every step is safe to run twice."""
    steps = [
        "swapoff -a",
        "sed -i '/ swap / s/^/#/' /etc/fstab",
        "mkdir -p ~/.ssh",
        f"echo {shlex.quote(public_key.strip())} >> ~/.ssh/authorized_keys",
        f"sed -i 's/{UPSTREAM_MIRROR}/{mirror}/' /etc/apt/sources.list",
        "sed -i 's/#\\?PasswordAuthentication.*/PasswordAuthentication no/' /etc/ssh/sshd_config",
        "systemctl restart ssh",
    ]
    return " && ".join(steps)


async def bootstrap(shell: Shell, public_key: str, *, mirror: str = DEFAULT_MIRROR) -> None:
    """Configure a new server and close ``shell``, whatever the outcome.

    Raises:
        BootstrapFailureError: On a non-zero exit status or a broken session.
    """
    log = logger.bind(component="bootstrap")
    try:
        try:
            result = await shell.run(bootstrap_script(public_key, mirror=mirror))
        except (asyncssh.Error, OSError) as e:
            raise BootstrapFailureError(None, str(e)) from e

        if not result.ok:
            log.warning(
                "Bootstrap exited with {code}: {stderr}",
                code=result.exit_status, stderr=result.stderr[:500],
            )
            raise BootstrapFailureError(result.exit_status, result.stderr)
        log.debug("Bootstrap completed")
    finally:
        await shell.close()
