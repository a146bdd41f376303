"""
Tests for CredentialGate with a scripted sudo runner.
"""
import subprocess
from dataclasses import replace

import pytest

from src.hostsctl.supervisor import credentials
from src.hostsctl.supervisor.credentials import CredentialGate
from src.hostsctl.supervisor.errors import DeniedError


class ScriptedSudo:
    """Records sudo invocations. `ticket` decides `sudo -n true`, `grant` decides `sudo -v`."""

    def __init__(self, ticket=False, grant=True):
        self.ticket = ticket
        self.grant = grant
        self.calls = []

    def __call__(self, cmd, check=False, **kwargs):
        self.calls.append(list(cmd))
        if cmd[1:] == ["-n", "true"]:
            ok = self.ticket
        elif cmd[1:] == ["-v"]:
            ok = self.grant
            if ok:
                self.ticket = True
        else:
            ok = False
        return subprocess.CompletedProcess(cmd, 0 if ok else 1)

    def prompts(self):
        return [cmd for cmd in self.calls if cmd[1:] == ["-v"]]


@pytest.fixture(autouse=True)
def unprivileged(monkeypatch):
    """Pretend the test runs as a regular user, even inside a root container."""
    monkeypatch.setattr(credentials, "needs_elevation", lambda config: config.use_sudo)


class TestCredentialGate:
    """Test CredentialGate.ensure()."""

    def test_cached_ticket_never_prompts(self, config):
        sudo = ScriptedSudo(ticket=True)
        gate = CredentialGate(config, runner=sudo, interactive=lambda: True)

        gate.ensure()
        gate.ensure()

        assert sudo.prompts() == []
        assert sudo.calls == [["sudo", "-n", "true"], ["sudo", "-n", "true"]]

    def test_revalidates_before_every_action(self, config):
        """The ticket is probed on every call, not remembered."""
        sudo = ScriptedSudo(ticket=False, grant=True)
        gate = CredentialGate(config, runner=sudo, interactive=lambda: True)

        gate.ensure()
        gate.ensure()

        assert len(sudo.prompts()) == 1
        assert sudo.calls.count(["sudo", "-n", "true"]) == 2

    def test_never_prompts_twice(self, config):
        """An expired ticket after the one prompt is a DeniedError."""
        sudo = ScriptedSudo(ticket=False, grant=True)
        gate = CredentialGate(config, runner=sudo, interactive=lambda: True)
        gate.ensure()

        sudo.ticket = False
        with pytest.raises(DeniedError):
            gate.ensure()

        assert len(sudo.prompts()) == 1

    def test_refused_prompt_is_denied(self, config):
        sudo = ScriptedSudo(ticket=False, grant=False)
        gate = CredentialGate(config, runner=sudo, interactive=lambda: True)

        with pytest.raises(DeniedError):
            gate.ensure()
        assert gate.prompted

    def test_non_interactive_without_ticket_is_denied(self, config):
        """Without a terminal the gate fails instead of blocking on a prompt."""
        sudo = ScriptedSudo(ticket=False)
        gate = CredentialGate(config, runner=sudo, interactive=lambda: False)

        with pytest.raises(DeniedError):
            gate.ensure()
        assert sudo.prompts() == []

    def test_missing_sudo_binary_is_denied(self, config):
        def no_sudo(cmd, check=False, **kwargs):
            raise FileNotFoundError(cmd[0])

        gate = CredentialGate(config, runner=no_sudo, interactive=lambda: False)
        with pytest.raises(DeniedError):
            gate.ensure()

    def test_elevation_disabled_is_noop(self, config):
        sudo = ScriptedSudo(ticket=False)
        gate = CredentialGate(replace(config, use_sudo=False), runner=sudo, interactive=lambda: False)

        gate.ensure()
        assert sudo.calls == []

    def test_custom_sudo_command(self, config):
        sudo = ScriptedSudo(ticket=True)
        gate = CredentialGate(replace(config, sudo_command="doas"), runner=sudo)

        gate.ensure()
        assert sudo.calls == [["doas", "-n", "true"]]
