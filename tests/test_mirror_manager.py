"""
Tests for the mirror manager and the persisted run state.

The sync procedure is replaced by a stub so these tests exercise the
orchestration only: fan-out, summary, failure isolation and state file.
"""

from __future__ import annotations

import json
import threading
from collections import Counter
from unittest import mock

from gitmirror.config.models import RepoMapping
from gitmirror.mirror.config import MirrorSettings, SyncOptions
from gitmirror.mirror.manager import MirrorManager
from gitmirror.mirror.models import RepoOutcome, RunSummary, StageResult
from gitmirror.mirror.runner import CommandResult
from gitmirror.mirror.state import STATUS_FILE, MirrorState


def _mappings(*names):
    return [RepoMapping(name=n, source=f"ssh://src/{n}", destination=f"git@bb:org/{n}") for n in names]


def _settings(workers: int = 5, mirror: bool = False) -> MirrorSettings:
    return MirrorSettings(workers=workers, options=SyncOptions(mirror_enabled=mirror))


class _StubSync:
    def __init__(self, failing=()):
        self.failing = set(failing)
        self.seen = []
        self._lock = threading.Lock()

    def __call__(self, repo, options):
        with self._lock:
            self.seen.append((repo, options))
        outcome = RepoOutcome(name=repo.name)
        if repo.name in self.failing:
            outcome.record(StageResult(stage="clone", ok=False, error="repository not found"))
        else:
            outcome.record(StageResult(stage="fetch", ok=True))
        return outcome


class TestMirrorManager:

    def test_every_repo_synced_once(self, tmp_path):
        stub = _StubSync()
        names = [f"r{i}" for i in range(12)]

        summary = MirrorManager(_settings(workers=5), tmp_path, sync=stub).run(_mappings(*names))

        assert sorted(o.name for o in summary.outcomes) == sorted(names)
        assert sorted(r.name for r, _ in stub.seen) == sorted(names)
        assert summary.ok

    def test_options_passed_through(self, tmp_path):
        stub = _StubSync()
        settings = _settings(mirror=True)

        MirrorManager(settings, tmp_path, sync=stub).run(_mappings("a"))

        repo, options = stub.seen[0]
        assert repo.local_root == tmp_path / "a"
        assert options is settings.options

    def test_failures_do_not_block_others(self, tmp_path):
        stub = _StubSync(failing={"b"})

        summary = MirrorManager(_settings(workers=1), tmp_path, sync=stub).run(_mappings("a", "b", "c"))

        assert summary.total == 3
        assert summary.failed == 1
        assert summary.get("b").status == "clone-failed"
        assert summary.get("c").ok

    def test_crashing_procedure_becomes_failed_outcome(self, tmp_path):
        def sync(repo, options):
            if repo.name == "boom":
                raise RuntimeError("unexpected")
            return RepoOutcome(name=repo.name)

        summary = MirrorManager(_settings(), tmp_path, sync=sync).run(_mappings("ok", "boom"))

        assert summary.total == 2
        assert summary.get("boom").status == "sync-failed"
        assert "unexpected" in summary.get("boom").stages[0].error

    def test_state_file_written(self, tmp_path):
        MirrorManager(_settings(), tmp_path, sync=_StubSync(failing={"b"})).run(_mappings("a", "b"))

        data = json.loads((tmp_path / STATUS_FILE).read_text())
        by_name = {r["name"]: r for r in data["repos"]}
        assert by_name["a"]["status"] == "ok"
        assert by_name["b"]["status"] == "clone-failed"
        assert by_name["b"]["stages"]["clone"]["last_error"] == "repository not found"

    def test_state_not_written_when_disabled(self, tmp_path):
        MirrorManager(_settings(), tmp_path, sync=_StubSync()).run(_mappings("a"), save_state=False)
        assert not (tmp_path / STATUS_FILE).exists()

    @mock.patch("gitmirror.mirror.git_sync.run_git")
    def test_default_procedure_with_mocked_git(self, mock_run, tmp_path):
        mock_run.return_value = CommandResult(args=["git"], returncode=0)

        summary = MirrorManager(_settings(workers=2, mirror=True), tmp_path).run(_mappings("a", "b", "c"))

        assert summary.succeeded == 3
        verbs = Counter(c.args[0][0] for c in mock_run.call_args_list)
        assert verbs == {"clone": 3, "fetch": 3, "push": 3}


class TestMirrorState:

    def test_missing_file_is_empty(self, tmp_path):
        state = MirrorState.load(tmp_path)
        assert state.repos == []
        assert state.last_run_iso is None

    def test_corrupt_file_is_empty(self, tmp_path):
        (tmp_path / STATUS_FILE).write_text("{not json")
        assert MirrorState.load(tmp_path).repos == []

    def test_round_trip(self, tmp_path):
        outcome = RepoOutcome(name="a", reused=True)
        outcome.record(StageResult(stage="fetch", ok=True))
        outcome.record(StageResult(stage="push", ok=False, error="denied"))

        state = MirrorState()
        state.record_run(RunSummary(outcomes=[outcome]))
        state.save(tmp_path)

        loaded = MirrorState.load(tmp_path)
        repo = loaded.get_repo("a")
        assert loaded.last_run_iso == state.last_run_iso
        assert repo.status == "push-failed"
        assert repo.reused is True
        assert repo.stages["fetch"].status == "ok"
        assert repo.last_error == "denied"

    def test_new_run_replaces_stage_results(self, tmp_path):
        state = MirrorState()
        first = RepoOutcome(name="a", stages=[StageResult(stage="clone", ok=False, error="x")])
        second = RepoOutcome(name="a", reused=True, stages=[StageResult(stage="fetch", ok=True)])

        state.record_run(RunSummary(outcomes=[first]))
        state.record_run(RunSummary(outcomes=[second]))

        repo = state.get_repo("a")
        assert repo.status == "ok"
        assert set(repo.stages) == {"fetch"}
        assert repo.last_error is None
        assert len(state.repos) == 1
