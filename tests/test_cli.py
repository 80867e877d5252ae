from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import yaml
from typer.testing import CliRunner

from plangate.cli import app
from plangate.config import copy_config_template
from plangate.memory.store import SqliteMemoryRepository
from plangate.planning.schemas import RiskAssessment, Selection

runner = CliRunner()

TODOS = [{"text": "Fill totals", "status": "pending"}]


def _write_json(path: Path, payload: Any) -> Path:
    path.write_text(json.dumps(payload), encoding="utf-8")
    return path


def _write_config(tmp_path: Path) -> Path:
    config = copy_config_template()
    config["memory"]["db_path"] = str(tmp_path / "data" / "plangate.sqlite")
    config_path = tmp_path / "config.yaml"
    config_path.write_text(yaml.safe_dump(config), encoding="utf-8")
    return config_path


def test_init_writes_config_and_refuses_overwrite(tmp_path) -> None:
    config_path = tmp_path / "config.yaml"

    first = runner.invoke(app, ["init", "--config", str(config_path), "--name", "Budget"])
    second = runner.invoke(app, ["init", "--config", str(config_path)])

    assert first.exit_code == 0, first.output
    assert yaml.safe_load(config_path.read_text(encoding="utf-8"))["project"]["name"] == "Budget"
    assert second.exit_code == 1
    assert "--force" in second.output


def test_todos_and_update_todos(tmp_path, history) -> None:
    history.result("updateTodosTool", {"todos": [{"text": "a", "status": "new"}]})
    history_path = _write_json(tmp_path / "history.json", history.turns)

    listed = runner.invoke(app, ["todos", str(history_path)])
    updated = runner.invoke(app, ["update-todos", str(history_path), "--new", "b", "--done", "0"])

    assert listed.exit_code == 0, listed.output
    assert "[+] a (new)" in listed.output
    assert updated.exit_code == 0, updated.output
    assert json.loads(updated.stdout) == {
        "todos": [{"text": "a", "status": "done"}, {"text": "b", "status": "new"}]
    }


def test_todos_rejects_unreadable_history(tmp_path) -> None:
    bad = tmp_path / "history.json"
    bad.write_text("{oops", encoding="utf-8")

    result = runner.invoke(app, ["todos", str(bad)])

    assert result.exit_code == 1
    assert "not valid JSON" in result.output


def test_validate_exit_codes(tmp_path, make_snapshot, plan_payload) -> None:
    plan_path = _write_json(tmp_path / "plan.json", {"plan": plan_payload, "summary": "Two steps"})
    fresh = _write_json(tmp_path / "fresh.json", make_snapshot().to_wire())
    stale = _write_json(tmp_path / "stale.json", make_snapshot(snapshot_id="snap-2").to_wire())

    ok = runner.invoke(app, ["validate", str(plan_path), str(fresh)])
    rejected = runner.invoke(app, ["validate", str(plan_path), str(stale)])

    assert ok.exit_code == 0, ok.output
    assert json.loads(ok.stdout)["isValid"] is True
    assert rejected.exit_code == 2
    assert json.loads(rejected.stdout)["issues"] == ["Plan was created for a different snapshot."]


def test_execute_requires_approval(tmp_path, history, make_snapshot, plan_payload) -> None:
    history.call("askForPlanApprovalTool", args={"todos": TODOS})
    history_path = _write_json(tmp_path / "history.json", history.turns)
    plan_path = _write_json(tmp_path / "plan.json", plan_payload)
    snapshot_path = _write_json(tmp_path / "snapshot.json", make_snapshot().to_wire())

    result = runner.invoke(
        app,
        [
            "execute",
            str(plan_path),
            str(snapshot_path),
            "--history",
            str(history_path),
            "--config",
            str(_write_config(tmp_path)),
        ],
    )

    assert result.exit_code == 1
    assert "Refusing to execute" in result.output


def test_execute_dry_run_persists_memory(tmp_path, history, make_snapshot, plan_payload) -> None:
    history.call("askForPlanApprovalTool", result={"approved": True, "todos": TODOS})
    history_path = _write_json(tmp_path / "history.json", history.turns)
    plan_path = _write_json(tmp_path / "plan.json", plan_payload)
    snapshot_path = _write_json(tmp_path / "snapshot.json", make_snapshot().to_wire())
    config_path = _write_config(tmp_path)

    result = runner.invoke(
        app,
        ["execute", str(plan_path), str(snapshot_path), "--history", str(history_path), "--config", str(config_path)],
    )

    assert result.exit_code == 0, result.output
    payload = json.loads(result.stdout)
    assert len(payload["actions"]) == 2
    assert payload["errors"] == []

    with SqliteMemoryRepository(tmp_path / "data" / "plangate.sqlite") as repository:
        assert [action.id for action in repository.load("doc-1").recent_actions] == ["s1-dry-run"]

    shown = runner.invoke(app, ["memory", "doc-1", "--config", str(config_path)])
    assert shown.exit_code == 0, shown.output
    assert json.loads(shown.stdout)["recentActions"][0]["id"] == "s1-dry-run"


def test_execute_apply_without_executor_fails(tmp_path, history, make_snapshot, plan_payload) -> None:
    history.call("askForPlanApprovalTool", result={"approved": True, "todos": TODOS})
    history_path = _write_json(tmp_path / "history.json", history.turns)
    plan_path = _write_json(tmp_path / "plan.json", plan_payload)
    snapshot_path = _write_json(tmp_path / "snapshot.json", make_snapshot().to_wire())

    result = runner.invoke(
        app,
        [
            "execute",
            str(plan_path),
            str(snapshot_path),
            "--history",
            str(history_path),
            "--mode",
            "apply",
            "--config",
            str(_write_config(tmp_path)),
        ],
    )

    assert result.exit_code == 2
    assert "No action executor is configured" in result.output


def test_approval_and_latest_plan(tmp_path, history, plan_payload) -> None:
    history.result("excel_planning.propose_plan", {"plan": plan_payload, "summary": "Two steps"})
    history.call("askForPlanApprovalTool", result={"approved": True, "todos": TODOS})
    history_path = _write_json(tmp_path / "history.json", history.turns)

    approval = runner.invoke(app, ["approval", str(history_path)])
    latest = runner.invoke(app, ["latest-plan", str(history_path)])

    assert approval.exit_code == 0, approval.output
    assert approval.output.startswith("approved:")
    assert "Fill totals" in approval.output
    assert latest.exit_code == 0, latest.output
    assert json.loads(latest.stdout)["kind"] == "excel"


def test_resolve_handle(tmp_path, history) -> None:
    history.result(
        "propose-email",
        {"emailHandle": "h1", "to": "a@example.com", "subject": "Report", "body": "Numbers"},
    )
    history_path = _write_json(tmp_path / "history.json", history.turns)

    found = runner.invoke(app, ["resolve-handle", str(history_path), "h1"])
    missing = runner.invoke(app, ["resolve-handle", str(history_path), "h2"])

    assert found.exit_code == 0, found.output
    assert json.loads(found.stdout)["subject"] == "Report"
    assert missing.exit_code == 1


def _approved_history(tmp_path: Path, history) -> Path:
    history.call("askForPlanApprovalTool", result={"approved": True, "todos": TODOS})
    return _write_json(tmp_path / "history.json", history.turns)


def test_execute_reassesses_stored_risk(tmp_path, history, make_snapshot, plan_payload) -> None:
    history_path = _approved_history(tmp_path, history)
    plan_path = _write_json(tmp_path / "plan.json", plan_payload)
    snapshot = make_snapshot(
        selection=Selection(type="range", scope="Sheet1", range_address="A1:Z9999", row_count=9999, column_count=26),
        current_risk=RiskAssessment.low(),
    )
    snapshot_path = _write_json(tmp_path / "snapshot.json", snapshot.to_wire())
    base_args = ["execute", str(plan_path), str(snapshot_path), "--history", str(history_path)]
    config_args = ["--config", str(_write_config(tmp_path))]

    reassessed = runner.invoke(app, base_args + config_args)
    stored = runner.invoke(app, base_args + ["--no-reassess"] + config_args)

    assert reassessed.exit_code == 2
    assert json.loads(reassessed.stdout)["risk"]["level"] == "high"
    assert stored.exit_code == 0, stored.output


def test_unusable_memory_database_exits_cleanly(tmp_path, history, make_snapshot, plan_payload, monkeypatch) -> None:
    def refuse(cls, config):
        raise OSError("Unable to locate writable database path")

    monkeypatch.setattr(SqliteMemoryRepository, "from_config", classmethod(refuse))
    history_path = _approved_history(tmp_path, history)
    plan_path = _write_json(tmp_path / "plan.json", plan_payload)
    snapshot_path = _write_json(tmp_path / "snapshot.json", make_snapshot().to_wire())
    config_path = _write_config(tmp_path)

    executed = runner.invoke(
        app,
        ["execute", str(plan_path), str(snapshot_path), "--history", str(history_path), "--config", str(config_path)],
    )
    shown = runner.invoke(app, ["memory", "doc-1", "--config", str(config_path)])

    for result in (executed, shown):
        assert result.exit_code == 1
        assert "Unable to open memory database" in result.output
        assert not isinstance(result.exception, OSError)
