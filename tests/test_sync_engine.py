"""Tests for the sync engine."""

import asyncio
from datetime import datetime
from unittest.mock import Mock

import pytest

from ghassets.config import Settings
from ghassets.exceptions import (
    AuthenticationError,
    NotFoundError,
    PermissionDeniedError,
    RateLimitError,
)
from ghassets.models import RateLimitInfo, RepositoryConfig
from ghassets.sync import (
    AssetStatus,
    SyncEngine,
    SyncErrorType,
    TreeNodeType,
    UpdateOutcome,
    classify_error,
)


def make_engine(github, workspace, repos, **settings):
    return SyncEngine(
        github.client,
        Settings(repositories=list(repos), **settings),
        workspace,
    )


class TestClassifyError:
    """Tests for error classification."""

    @pytest.mark.parametrize(
        "error,expected",
        [
            (AuthenticationError("no token"), SyncErrorType.AUTH),
            (NotFoundError("gone", 404), SyncErrorType.NOT_FOUND),
            (RateLimitError("slow down", 403), SyncErrorType.RATE_LIMIT),
            (PermissionDeniedError("forbidden", 403), SyncErrorType.NETWORK),
            (RuntimeError("boom"), SyncErrorType.UNKNOWN),
        ],
    )
    def test_classification(self, error, expected):
        """Test each error kind maps to its error type."""
        assert classify_error(error) == expected


class TestSync:
    """Tests for SyncEngine.sync."""

    async def test_zero_repositories(self, github, workspace):
        """Test syncing without repositories yields a message node."""
        engine = make_engine(github, workspace, [])

        results = await engine.sync()

        assert results == []
        (node,) = engine.build_tree()
        assert node.type == TreeNodeType.MESSAGE
        github.client.get_tree.assert_not_awaited()

    async def test_single_new_file(self, github, workspace):
        """Test a new remote file is reported as not installed."""
        repo = github.add_repo("org/assets", {"readme.md": b"hello"})
        engine = make_engine(github, workspace, [repo])

        (result,) = await engine.sync()

        assert result.ok
        (asset,) = result.assets
        assert asset.status == AssetStatus.NOT_INSTALLED
        assert asset.local_path == ".github/readme.md"

    async def test_failing_repository_is_isolated(self, github, workspace):
        """Test one failing repository does not affect the others."""
        first = github.add_repo("org/one", {"a.md": b"a"})
        broken = github.add_repo("org/broken")
        github.repos["org/broken"] = NotFoundError("Repository not found", 404)
        last = github.add_repo("org/three", {"c.md": b"c"})
        engine = make_engine(github, workspace, [first, broken, last])

        results = await engine.sync()

        assert [r.repo_config.repo_id for r in results] == [
            "org/one",
            "org/broken",
            "org/three",
        ]
        assert results[0].ok and len(results[0].assets) == 1
        assert results[1].error
        assert results[1].error_type == SyncErrorType.NOT_FOUND
        assert results[1].assets == []
        assert results[2].ok and len(results[2].assets) == 1

    async def test_rate_limit_reports_reset_time(self, github, workspace):
        """Test rate limited repositories carry the reset time."""
        repo = github.add_repo("org/assets")
        rate_limit = RateLimitInfo(limit=60, remaining=0, reset=1900000000)
        github.repos["org/assets"] = RateLimitError("limited", 403, rate_limit)
        engine = make_engine(github, workspace, [repo])

        (result,) = await engine.sync()

        assert result.error_type == SyncErrorType.RATE_LIMIT
        assert result.reset_at == datetime.fromtimestamp(1900000000)

    async def test_unexpected_error_is_captured(self, github, workspace):
        """Test arbitrary exceptions become unknown errors."""
        repo = github.add_repo("org/assets")
        github.repos["org/assets"] = RuntimeError("boom")
        engine = make_engine(github, workspace, [repo])

        (result,) = await engine.sync()

        assert result.error == "boom"
        assert result.error_type == SyncErrorType.UNKNOWN
        (node,) = engine.build_tree()
        assert node.type == TreeNodeType.ERROR

    async def test_concurrent_sync_fetches_once(self, github, workspace):
        """Test a sync issued while another runs is a no-op."""
        repo = github.add_repo("org/assets", {"a.md": b"a"})
        engine = make_engine(github, workspace, [repo])

        first, second = await asyncio.gather(engine.sync(), engine.sync())

        assert github.client.get_tree.await_count == 1
        assert len(first) == 1
        assert second == []
        assert not engine.is_syncing

    async def test_silent_flag_passed_to_client(self, github, workspace):
        """Test background syncs request silent authentication."""
        repo = github.add_repo("org/assets", {"a.md": b"a"})
        engine = make_engine(github, workspace, [repo])

        await engine.sync(silent=True)

        github.client.get_tree.assert_awaited_once_with(
            "org", "assets", "main", silent=True
        )

    async def test_listeners_notified(self, github, workspace):
        """Test listeners receive the results of every sync."""
        repo = github.add_repo("org/assets", {"a.md": b"a"})
        engine = make_engine(github, workspace, [repo])
        listener = Mock()
        engine.on_sync(listener)

        results = await engine.sync()

        listener.assert_called_once_with(results)

    async def test_filters_applied(self, github, workspace):
        """Test root path, depth and exclude filters limit the assets."""
        repo = RepositoryConfig.from_dict(
            {"owner": "org", "repo": "assets", "path": "/shared/"}
        )
        github.repos["org/assets"] = {
            "shared/a.md": b"a",
            "shared/drafts/b.md": b"b",
            "shared/x/y/z/deep.md": b"deep",
            "other/c.md": b"c",
        }
        engine = make_engine(
            github, workspace, [repo], exclude_patterns=["drafts"], max_depth=2
        )

        await engine.sync()

        assert [a.remote_path for a in engine.get_all_assets()] == ["shared/a.md"]


class TestScenarios:
    """End-to-end reconciliation scenarios."""

    SKILL = {
        "skills/my-skill/SKILL.md": b"# My skill\n",
        "skills/my-skill/config.json": b"{}\n",
    }

    async def test_downloaded_bundle_is_up_to_date(self, github, workspace):
        """Test a freshly downloaded bundle is one up-to-date asset."""
        repo = github.add_repo("org/assets", self.SKILL)
        engine = make_engine(github, workspace, [repo])
        await engine.sync()

        (bundle,) = engine.get_all_assets()
        assert bundle.is_bundle
        await engine.download(bundle)

        (bundle,) = engine.get_all_assets()
        assert bundle.status == AssetStatus.UP_TO_DATE
        assert engine.get_update_count() == 0

    async def test_local_edit_without_remote_change(self, github, workspace):
        """Test local edits alone never produce a conflict."""
        repo = github.add_repo("org/assets", self.SKILL)
        engine = make_engine(github, workspace, [repo])
        await engine.sync()
        await engine.download(engine.get_all_assets()[0])

        (workspace / ".github/skills/my-skill/config.json").write_text('{"x": 1}\n')
        await engine.sync()

        (bundle,) = engine.get_all_assets()
        assert bundle.status == AssetStatus.UP_TO_DATE

    async def test_update_flow(self, github, workspace):
        """Test remote change, conflict, skip and force update."""
        repo = github.add_repo("org/assets", {"agents/a.md": b"v1\n"})
        engine = make_engine(github, workspace, [repo])
        await engine.sync()
        await engine.download(engine.get_all_assets()[0])

        github.files("org/assets")["agents/a.md"] = b"v2\n"
        await engine.sync()
        assert engine.count_by_status(AssetStatus.UPDATE_AVAILABLE) == 1
        assert engine.get_update_count() == 1

        local = workspace / ".github/agents/a.md"
        local.write_bytes(b"mine\n")
        await engine.sync()
        (asset,) = engine.collect_by_status(AssetStatus.LOCALLY_MODIFIED)

        assert await engine.update(asset) == UpdateOutcome.CONFLICT
        assert local.read_bytes() == b"mine\n"

        assert await engine.skip(asset) is True
        (asset,) = engine.get_all_assets()
        assert asset.status == AssetStatus.UP_TO_DATE
        assert local.read_bytes() == b"mine\n"

        github.files("org/assets")["agents/a.md"] = b"v3\n"
        await engine.sync()
        (asset,) = engine.get_all_assets()
        assert asset.status == AssetStatus.LOCALLY_MODIFIED

        await engine.force_update(asset)
        (asset,) = engine.get_all_assets()
        assert asset.status == AssetStatus.UP_TO_DATE
        assert local.read_bytes() == b"v3\n"

    async def test_deleted_local_file_is_not_installed(self, github, workspace):
        """Test deleting a downloaded file resets it to not installed."""
        repo = github.add_repo("org/assets", {"a.md": b"a"})
        engine = make_engine(github, workspace, [repo])
        await engine.sync()
        await engine.download(engine.get_all_assets()[0])

        (workspace / ".github/a.md").unlink()
        await engine.sync()

        assert engine.get_all_assets()[0].status == AssetStatus.NOT_INSTALLED

    async def test_remove(self, github, workspace):
        """Test remove deletes the file and resyncs."""
        repo = github.add_repo("org/assets", {"a.md": b"a"})
        engine = make_engine(github, workspace, [repo])
        await engine.sync()
        await engine.download(engine.get_all_assets()[0])

        await engine.remove(engine.get_all_assets()[0])

        assert not (workspace / ".github/a.md").exists()
        assert engine.get_all_assets()[0].status == AssetStatus.NOT_INSTALLED


class TestBulkOperations:
    """Tests for download_all and update_all."""

    async def test_download_all(self, github, workspace):
        """Test every not-installed asset is downloaded."""
        one = github.add_repo("org/one", {"a.md": b"a", "b.md": b"b"})
        two = github.add_repo("org/two", {"c.md": b"c"})
        engine = make_engine(github, workspace, [one, two])
        await engine.sync()

        downloaded = await engine.download_all()

        assert len(downloaded) == 3
        assert engine.count_by_status(AssetStatus.UP_TO_DATE) == 3

    async def test_download_all_single_repository(self, github, workspace):
        """Test download_all can be limited to one repository."""
        one = github.add_repo("org/one", {"a.md": b"a"})
        two = github.add_repo("org/two", {"c.md": b"c"})
        engine = make_engine(github, workspace, [one, two])
        await engine.sync()

        downloaded = await engine.download_all(two)

        assert [a.remote_path for a in downloaded] == ["c.md"]
        assert not (workspace / ".github/a.md").exists()

    async def test_update_all_collects_conflicts(self, github, workspace):
        """Test update_all updates clean assets and reports conflicts."""
        repo = github.add_repo("org/assets", {"a.md": b"a1", "b.md": b"b1"})
        engine = make_engine(github, workspace, [repo])
        await engine.sync()
        await engine.download_all()

        github.files("org/assets").update({"a.md": b"a2", "b.md": b"b2"})
        (workspace / ".github/b.md").write_bytes(b"mine")
        await engine.sync()

        report = await engine.update_all()

        assert [a.remote_path for a in report.updated] == ["a.md"]
        assert [a.remote_path for a in report.conflicts] == ["b.md"]
        assert (workspace / ".github/a.md").read_bytes() == b"a2"
        assert (workspace / ".github/b.md").read_bytes() == b"mine"

    async def test_update_all_force(self, github, workspace):
        """Test forced update_all overwrites local edits."""
        repo = github.add_repo("org/assets", {"b.md": b"b1"})
        engine = make_engine(github, workspace, [repo])
        await engine.sync()
        await engine.download_all()

        github.files("org/assets")["b.md"] = b"b2"
        (workspace / ".github/b.md").write_bytes(b"mine")
        await engine.sync()

        report = await engine.update_all(force=True)

        assert len(report.updated) == 1
        assert report.conflicts == []
        assert (workspace / ".github/b.md").read_bytes() == b"b2"


class TestFindAsset:
    """Tests for SyncEngine.find_asset."""

    async def test_by_remote_and_local_path(self, github, workspace):
        """Test assets can be found by either path."""
        repo = github.add_repo("org/assets", {"agents/a.md": b"a"})
        engine = make_engine(github, workspace, [repo])
        await engine.sync()

        assert engine.find_asset("agents/a.md") is not None
        assert engine.find_asset(".github/agents/a.md") is not None
        assert engine.find_asset("./.github/agents/a.md") is not None
        assert engine.find_asset("missing.md") is None
