"""Ansible-backed remote configurator.

Renders a one-host inventory and a Shadowsocks playbook into a scratch
directory, runs ``ansible-playbook`` and streams both of its output pipes
line by line while it runs. :meth:`AnsibleConfigurator.deploy` returns only
after the process has exited and both pipes are drained.
"""

from __future__ import annotations

import logging
import os
import subprocess
import tempfile
import threading
from collections.abc import Callable
from pathlib import Path
from typing import IO, Any

import yaml

from auto_proxy.deploy.base import ShadowsocksConfig
from auto_proxy.domain.errors import ConfigurationError
from auto_proxy.utils.masking import redact_sensitive_fields

logger = logging.getLogger(__name__)

SSH_COMMON_ARGS = "-o StrictHostKeyChecking=no -o UserKnownHostsFile=/dev/null"
CONFIG_DIR = "/etc/shadowsocks-libev"
SERVICE_NAME = "shadowsocks-libev"

LineSink = Callable[[str, str], None]


def _log_line(stream: str, line: str) -> None:
    if stream == "stderr":
        logger.warning("ERROR: %s", line)
    else:
        logger.info("%s", line)


def render_inventory(address: str, user: str, key_path: str | None) -> str:
    host_vars = [address, f"ansible_user={user}"]
    if key_path:
        host_vars.append(f"ansible_ssh_private_key_file={key_path}")
    return f"[proxy_server]\n{' '.join(host_vars)}\n"


def build_playbook(service: ShadowsocksConfig) -> list[dict[str, Any]]:
    return [
        {
            "name": "Deploy Shadowsocks Proxy Server on Ubuntu",
            "hosts": "proxy_server",
            "become": True,
            "vars": {"ansible_ssh_common_args": SSH_COMMON_ARGS},
            "tasks": [
                {"name": "Update apt cache", "apt": {"update_cache": True}},
                {
                    "name": "Install Shadowsocks-libev",
                    "apt": {"name": SERVICE_NAME, "state": "present"},
                },
                {
                    "name": "Create Shadowsocks config directory",
                    "file": {"path": CONFIG_DIR, "state": "directory", "mode": "0755"},
                },
                {
                    "name": "Configure Shadowsocks",
                    "copy": {
                        "content": service.to_json() + "\n",
                        "dest": f"{CONFIG_DIR}/config.json",
                        "mode": "0600",
                    },
                    "notify": "Restart Shadowsocks",
                },
                {
                    "name": "Ensure Shadowsocks service is enabled and started",
                    "systemd": {"name": SERVICE_NAME, "enabled": True, "state": "started"},
                },
                {
                    "name": "Install and configure UFW",
                    "block": [
                        {"name": "Install UFW", "apt": {"name": "ufw", "state": "present"}},
                        {"name": "Allow SSH", "ufw": {"rule": "allow", "port": "22"}},
                        {
                            "name": "Allow Shadowsocks port",
                            "ufw": {"rule": "allow", "port": str(service.port)},
                        },
                        {"name": "Enable UFW", "ufw": {"state": "enabled"}},
                    ],
                },
            ],
            "handlers": [
                {
                    "name": "Restart Shadowsocks",
                    "systemd": {"name": SERVICE_NAME, "state": "restarted"},
                }
            ],
        }
    ]


def render_playbook(service: ShadowsocksConfig) -> str:
    return yaml.safe_dump(build_playbook(service), sort_keys=False, default_flow_style=False)


class AnsibleConfigurator:
    def __init__(
        self,
        service: ShadowsocksConfig,
        ssh_user: str = "ubuntu",
        ssh_key_path: str | None = None,
        playbook_bin: str = "ansible-playbook",
        line_sink: LineSink | None = None,
        popen: Callable[..., subprocess.Popen] = subprocess.Popen,
    ) -> None:
        self.service = service
        self._ssh_user = ssh_user
        self._ssh_key_path = ssh_key_path
        self._playbook_bin = playbook_bin
        self._line_sink = line_sink or _log_line
        self._popen = popen

    def build_command(self, inventory: Path, playbook: Path) -> list[str]:
        return [self._playbook_bin, "-i", str(inventory), str(playbook), "-v"]

    def deploy(self, address: str) -> None:
        logger.info(
            "Applying proxy configuration to %s: %s",
            address,
            redact_sensitive_fields(self.service.as_dict()),
        )
        with tempfile.TemporaryDirectory(prefix="auto-proxy-") as workdir:
            inventory = Path(workdir) / "inventory.ini"
            inventory.write_text(
                render_inventory(address, self._ssh_user, self._ssh_key_path), encoding="utf-8"
            )
            playbook = Path(workdir) / "playbook.yml"
            playbook.write_text(render_playbook(self.service), encoding="utf-8")
            # Playbook embeds the pre-shared credential.
            playbook.chmod(0o600)

            returncode = self._run(self.build_command(inventory, playbook))

        if returncode != 0:
            raise ConfigurationError(f"ansible-playbook failed with exit code {returncode}")
        logger.info("Ansible playbook execution completed successfully for %s", address)

    def _run(self, command: list[str]) -> int:
        env = dict(os.environ)
        env["ANSIBLE_HOST_KEY_CHECKING"] = "False"
        logger.info("Starting Ansible playbook execution: %s", " ".join(command))
        try:
            process = self._popen(
                command,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                bufsize=1,
                env=env,
            )
        except OSError as exc:
            raise ConfigurationError(f"failed to start {command[0]}: {exc}") from exc

        drains = [
            threading.Thread(
                target=self._drain, args=(process.stdout, "stdout"), name="ansible-stdout"
            ),
            threading.Thread(
                target=self._drain, args=(process.stderr, "stderr"), name="ansible-stderr"
            ),
        ]
        for thread in drains:
            thread.daemon = True
            thread.start()

        returncode = process.wait()
        for thread in drains:
            thread.join()
        return returncode

    def _drain(self, stream: IO[str] | None, name: str) -> None:
        if stream is None:
            return
        with stream:
            for line in stream:
                self._line_sink(name, line.rstrip("\n"))
