"""Tests for mount allowlist validation and the default mount factory."""

import json

import pytest

from courier.execution.mount_builder import DefaultMountFactory
from courier.execution.mount_security import MountValidationError, load_mount_allowlist, validate_mount
from courier.groups.types import AdditionalMount, AllowedRoot, ContainerConfig, MountAllowlist, RegisteredGroup


@pytest.fixture
def projects(tmp_path):
    root = tmp_path / "projects"
    (root / "app" / ".ssh").mkdir(parents=True)
    return root.resolve()


@pytest.fixture
def allowlist(projects):
    return MountAllowlist(
        allowed_roots=[AllowedRoot(path=str(projects), allow_read_write=True)],
        blocked_patterns=[".ssh"],
        non_main_read_only=True,
    )


def make_group(*mounts):
    return RegisteredGroup(
        name="Dev",
        folder="dev",
        trigger="@Courier",
        added_at="2026-01-01T00:00:00.000Z",
        container_config=ContainerConfig(additional_mounts=list(mounts)),
    )


class TestValidateMount:
    def test_no_allowlist_allows_read_only(self, projects):
        assert validate_mount(str(projects / "app"), None, is_main=True) == (True, True)

    def test_allowed_root_read_write_for_main(self, projects, allowlist):
        assert validate_mount(str(projects / "app"), allowlist, is_main=True) == (True, False)

    def test_non_main_forced_read_only(self, projects, allowlist):
        assert validate_mount(str(projects / "app"), allowlist, is_main=False) == (True, True)

    def test_outside_roots_rejected(self, tmp_path, allowlist):
        allowed, _ = validate_mount(str(tmp_path / "elsewhere"), allowlist, is_main=True)
        assert not allowed

    def test_blocked_pattern_rejected(self, projects, allowlist):
        allowed, _ = validate_mount(str(projects / "app" / ".ssh"), allowlist, is_main=True)
        assert not allowed

    def test_sibling_prefix_is_not_inside_root(self, tmp_path, allowlist):
        allowed, _ = validate_mount(str(tmp_path / "projects-evil"), allowlist, is_main=True)
        assert not allowed


class TestLoadMountAllowlist:
    def test_missing_file(self, tmp_path):
        assert load_mount_allowlist(tmp_path / "missing.json") is None

    def test_invalid_file(self, tmp_path):
        path = tmp_path / "allowlist.json"
        path.write_text("{oops")
        assert load_mount_allowlist(path) is None

    def test_valid_file(self, tmp_path):
        path = tmp_path / "allowlist.json"
        path.write_text(json.dumps({"allowed_roots": [{"path": "~/code"}], "blocked_patterns": [".env"]}))
        allowlist = load_mount_allowlist(path)
        assert allowlist.allowed_roots[0].path == "~/code"
        assert allowlist.blocked_patterns == [".env"]


class TestDefaultMountFactory:
    def test_base_mounts(self, tmp_path, allowlist):
        args = DefaultMountFactory(allowlist).build_mounts(make_group(), is_main=False)
        assert args[0] == "-v"
        assert args[1] == f"{tmp_path / 'groups' / 'dev'}:/workspace/group"
        assert f"{tmp_path / 'data' / 'ipc' / 'dev'}:/workspace/ipc" in args
        assert (tmp_path / "data" / "ipc" / "dev" / "tasks").is_dir()

    def test_additional_mount_defaults(self, projects, allowlist):
        group = make_group(AdditionalMount(host_path=str(projects / "app"), readonly=False))
        args = DefaultMountFactory(allowlist).build_mounts(group, is_main=True)
        assert args[-1] == f"{projects / 'app'}:/workspace/extra/app"

    def test_additional_mount_read_only_for_non_main(self, projects, allowlist):
        group = make_group(AdditionalMount(host_path=str(projects / "app"), readonly=False))
        args = DefaultMountFactory(allowlist).build_mounts(group, is_main=False)
        assert args[-1].endswith(":ro")

    def test_blocked_mount_raises(self, projects, allowlist):
        group = make_group(AdditionalMount(host_path=str(projects / "app" / ".ssh")))
        with pytest.raises(MountValidationError, match="Mount not allowed"):
            DefaultMountFactory(allowlist).build_mounts(group, is_main=True)

    def test_relative_container_path_raises(self, projects, allowlist):
        group = make_group(AdditionalMount(host_path=str(projects / "app"), container_path="../escape"))
        with pytest.raises(MountValidationError, match="Invalid container path"):
            DefaultMountFactory(allowlist).build_mounts(group, is_main=True)
