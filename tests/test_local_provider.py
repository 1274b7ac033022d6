import os
import sys

import pytest

from appforge.models.sandbox import SandboxResources
from appforge.providers.sandbox.local import COMMAND_NOT_FOUND_EXIT_CODE, LocalProvider


@pytest.fixture
def provider(tmp_path):
    return LocalProvider(str(tmp_path))


def test_write_read_and_list(provider):
    sandbox_id = provider.create_sandbox("demo", SandboxResources())
    provider.write_file(sandbox_id, "src/app/page.tsx", b"export {}")

    assert provider.read_file(sandbox_id, "src/app/page.tsx") == b"export {}"
    assert [entry.name for entry in provider.list_files(sandbox_id, ".")] == ["src"]
    assert provider.list_sandboxes() == [sandbox_id]


def test_exec_runs_in_sandbox_root(provider):
    sandbox_id = provider.create_sandbox("demo", SandboxResources())

    result = provider.exec(
        sandbox_id,
        [sys.executable, "-c", "import os; print(os.environ['PORT'])"],
        env={"PORT": "3000"},
    )

    assert result.exit_code == 0
    assert result.stdout.strip() == "3000"


def test_missing_command_is_an_exit_code(provider):
    sandbox_id = provider.create_sandbox("demo", SandboxResources())

    result = provider.exec(sandbox_id, ["definitely-not-a-real-binary-xyz"])

    assert result.exit_code == COMMAND_NOT_FOUND_EXIT_CODE


def test_path_escape_rejected(provider):
    sandbox_id = provider.create_sandbox("demo", SandboxResources())

    with pytest.raises(ValueError):
        provider.write_file(sandbox_id, "../outside.txt", b"x")


def test_delete_removes_sandbox(provider):
    sandbox_id = provider.create_sandbox("demo", SandboxResources())
    root = provider.get_root_dir(sandbox_id)

    provider.delete_sandbox(sandbox_id)

    assert provider.list_sandboxes() == []
    assert not os.path.exists(root)
    with pytest.raises(KeyError):
        provider.get_preview_link(sandbox_id, 3000)
