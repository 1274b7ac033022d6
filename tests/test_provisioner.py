"""Tests for sandbox provisioning and dev-server health checks."""

import httpx
import pytest

from appforge.errors import ProvisioningError
from appforge.models.files import FileChange, FileOperation
from appforge.models.sandbox import HealthVerdict
from appforge.pipeline.provisioner import classify_server_log

from conftest import FakeSandboxProvider, make_provisioner

FILES = [
    FileChange("package.json", '{"scripts": {"dev": "next dev"}}'),
    FileChange("src/app/page.tsx", "export default function Page() {}"),
    FileChange("stale.ts", "", FileOperation.DELETE),
]


def started_server(provider):
    return any(command[0] == "sh" for command in provider.commands)


class TestClassifyServerLog:
    def test_ready_marker(self):
        result = classify_server_log("> next dev\n  - ready started server on 0.0.0.0:3000\n")

        assert result.verdict == HealthVerdict.READY
        assert "started server" in result.detail

    def test_fatal_marker(self):
        result = classify_server_log("Error: Cannot find module 'next'\n")

        assert result.verdict == HealthVerdict.FATAL
        assert result.detail == "Error: Cannot find module 'next'"

    def test_last_marker_wins(self):
        recovered = classify_server_log("Failed to compile\n...\ncompiled successfully\n")
        broke = classify_server_log("ready in 2s\nError: listen EADDRINUSE :::3000\n")

        assert recovered.verdict == HealthVerdict.READY
        assert broke.verdict == HealthVerdict.FATAL

    def test_no_markers_is_ambiguous(self):
        assert classify_server_log("").verdict == HealthVerdict.AMBIGUOUS
        assert classify_server_log("> next dev\n").verdict == HealthVerdict.AMBIGUOUS


class TestProvision:
    @pytest.mark.asyncio
    async def test_happy_path_reports_stages_in_order(self, sandbox):
        messages = []
        handle = await make_provisioner(sandbox).provision(FILES, messages.append)

        assert handle.sandbox_id == "appforge-1"
        assert handle.preview_url == "https://3000-appforge-1.preview.test"
        assert handle.reachable
        assert set(sandbox.sandboxes["appforge-1"]) == {"package.json", "src/app/page.tsx"}
        assert sandbox.deleted == []
        expected = [
            "Creating sandbox...",
            "Uploading 2 file(s) to sandbox...",
            "Installing dependencies...",
            "Starting dev server...",
            "Server is running!",
        ]
        positions = [messages.index(message) for message in expected]
        assert positions == sorted(positions)

    @pytest.mark.asyncio
    async def test_install_failure_never_starts_server_and_tears_down(self):
        provider = FakeSandboxProvider(install_exit=1, install_output="npm ERR! 404 nope")
        messages = []

        with pytest.raises(ProvisioningError) as excinfo:
            await make_provisioner(provider).provision(FILES, messages.append)

        assert excinfo.value.stage == "installing"
        assert "npm ERR! 404 nope" in excinfo.value.output
        assert "Starting dev server..." not in messages
        assert not started_server(provider)
        assert provider.deleted == ["appforge-1"]

    @pytest.mark.asyncio
    async def test_fatal_log_fails_and_tears_down(self):
        provider = FakeSandboxProvider(
            curl_codes=("000",), server_log="Error: Cannot find module 'react'\n"
        )

        with pytest.raises(ProvisioningError) as excinfo:
            await make_provisioner(provider).provision(FILES)

        assert excinfo.value.stage == "health-checking"
        assert "Cannot find module" in str(excinfo.value)
        assert provider.deleted == ["appforge-1"]

    @pytest.mark.asyncio
    async def test_ambiguous_health_proceeds_to_preview(self):
        provider = FakeSandboxProvider(curl_codes=("000",))
        messages = []

        handle = await make_provisioner(provider).provision(FILES, messages.append)

        assert "Server status unclear, trying preview..." in messages
        assert handle.preview_url is not None
        assert provider.deleted == []

    @pytest.mark.asyncio
    async def test_create_failure_has_nothing_to_tear_down(self):
        provider = FakeSandboxProvider(fail_create=True)

        with pytest.raises(ProvisioningError) as excinfo:
            await make_provisioner(provider).provision(FILES)

        assert excinfo.value.stage == "creating"
        assert "quota exceeded" in str(excinfo.value)
        assert provider.deleted == []

    @pytest.mark.asyncio
    async def test_upload_failure_tears_down(self):
        provider = FakeSandboxProvider(fail_write_path="src/app/page.tsx")

        with pytest.raises(ProvisioningError) as excinfo:
            await make_provisioner(provider).provision(FILES)

        assert excinfo.value.stage == "uploading"
        assert provider.deleted == ["appforge-1"]

    @pytest.mark.asyncio
    async def test_teardown_failure_does_not_mask_original_error(self):
        provider = FakeSandboxProvider(install_exit=2, fail_delete=True)

        with pytest.raises(ProvisioningError) as excinfo:
            await make_provisioner(provider).provision(FILES)

        assert excinfo.value.stage == "installing"

    @pytest.mark.asyncio
    async def test_unreachable_preview_is_not_fatal(self, sandbox):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = httpx.AsyncClient(transport=httpx.MockTransport(refuse))
        messages = []

        handle = await make_provisioner(sandbox, http_client=client).provision(
            FILES, messages.append
        )

        assert not handle.reachable
        assert "Server taking longer than expected..." in messages
        assert sandbox.deleted == []


class TestHealthCheck:
    @pytest.mark.asyncio
    async def test_404_counts_as_alive(self):
        provider = FakeSandboxProvider(curl_codes=("404",))
        provider.seed("box", {})

        result = await make_provisioner(provider).health_check("box")

        assert result.verdict == HealthVerdict.READY
        assert result.detail == "HTTP 404"

    @pytest.mark.asyncio
    async def test_server_error_falls_back_to_log(self):
        provider = FakeSandboxProvider(curl_codes=("500",), server_log="compiled successfully")
        provider.seed("box", {})

        result = await make_provisioner(provider).health_check("box")

        assert result.verdict == HealthVerdict.READY
        assert result.detail == "compiled successfully"

    @pytest.mark.asyncio
    async def test_becomes_ready_after_retries(self):
        provider = FakeSandboxProvider(curl_codes=("000", "000", "200"))
        provider.seed("box", {})

        result = await make_provisioner(provider).health_check("box")

        assert result.verdict == HealthVerdict.READY
        assert sum(command[0] == "curl" for command in provider.commands) == 3


@pytest.mark.asyncio
async def test_cleanup_all_skips_failures():
    provider = FakeSandboxProvider()
    provider.seed("a", {})
    provider.seed("b", {})

    deleted = await make_provisioner(provider).cleanup_all()

    assert deleted == ["a", "b"]
    assert provider.sandboxes == {}
