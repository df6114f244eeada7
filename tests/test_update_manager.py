import json
import sys
import pytest
from unittest.mock import MagicMock, patch
from update_manager.ledger import load_ledger
from update_manager.lock import SessionLease
from update_manager.update_manager import GitCommandError, UpdateManager, update_manager

from conftest import record_text


@pytest.fixture
def manager(project_dir, toolkit_dir, config_dir):
    return UpdateManager(
        project_directory=str(project_dir),
        toolkit_directory=str(toolkit_dir),
        config_directory=str(config_dir),
        agent="builder",
        role="builder",
    )


def pending(project_dir):
    return project_dir / "docs" / "pending-updates"


class TestDiscovery:

    def test_nothing_to_discover(self, manager):
        assert manager.discover() == []

    def test_missing_toolkit_and_stores(self, tmp_path):
        manager = UpdateManager(
            project_directory=str(tmp_path),
            config_directory=str(tmp_path / "config"),
        )
        assert manager.discover() == []

    def test_project_record_without_scope_is_planning(self, manager, project_dir, write_update):
        write_update(pending(project_dir), "2026-01-01-fix")

        updates = manager.discover()

        assert [u.id for u in updates] == ["2026-01-01-fix"]
        assert updates[0].source == "project"
        assert updates[0].classification.scope == "planning"
        assert updates[0].classification.source == "inferred"

    def test_created_update_is_discovered(self, manager):
        result = manager.create_update(
            name="add registry entry",
            what_to_do="Add the PRD.",
            files_affected=["docs/prd-registry.json"],
            why="Builder needs it.",
            verification="jq succeeds.",
            date="2026-01-05",
        )

        assert result.status == "created"
        updates = manager.discover()
        assert [u.id for u in updates] == ["2026-01-05-add-registry-entry"]
        record = updates[0].record
        assert record.created_by == "builder"
        assert record.files_affected == ["docs/prd-registry.json"]
        assert record.what_to_do == "Add the PRD."

    @pytest.mark.parametrize(
        "agent,update_type",
        [
            ("team: builder", "schema"),
            ("builder #2", "on"),
            ("null", "yes"),
        ],
    )
    def test_created_update_keeps_yaml_sensitive_values(
        self, project_dir, toolkit_dir, config_dir, agent, update_type
    ):
        manager = UpdateManager(
            project_directory=str(project_dir),
            toolkit_directory=str(toolkit_dir),
            config_directory=str(config_dir),
            agent=agent,
        )
        manager.create_update(
            name="fix",
            what_to_do="a",
            files_affected=["docs/x.md"],
            why="b",
            verification="c",
            update_type=update_type,
            date="2026-01-05",
        )

        updates = manager.discover()

        assert [u.id for u in updates] == ["2026-01-05-fix"]
        record = updates[0].record
        assert (record.created_by, record.update_type) == (agent, update_type)

    def test_create_update_refuses_duplicate(self, manager):
        kwargs = dict(
            name="fix",
            what_to_do="a",
            files_affected=["docs/x.md"],
            why="b",
            verification="c",
            date="2026-01-05",
        )
        manager.create_update(**kwargs)
        result = manager.create_update(**kwargs)
        assert result.status == "error"
        assert result.error.code == "already_pending"

    def test_registry_update_matches_affinity(self, manager, add_registry_update):
        add_registry_update("2026-02-01-electron-path")

        updates = manager.discover()

        assert [u.id for u in updates] == ["2026-02-01-electron-path"]
        assert updates[0].source == "registry"

    def test_registry_update_not_matching_is_excluded(
        self, manager, project_dir, add_registry_update
    ):
        (project_dir / "docs" / "project.json").write_text(json.dumps({"apps": ["web"]}))
        add_registry_update("2026-02-01-electron-path")

        assert manager.discover() == []

    def test_registry_update_without_project_config_is_excluded(
        self, manager, project_dir, add_registry_update
    ):
        (project_dir / "docs" / "project.json").unlink()
        add_registry_update("2026-02-01-electron-path")
        add_registry_update("2026-02-02-broadcast", affinity_rule="everyone")

        assert [u.id for u in manager.discover()] == ["2026-02-02-broadcast"]

    def test_registry_update_with_unknown_or_missing_rule_is_excluded(
        self, manager, add_registry_update
    ):
        add_registry_update("2026-02-01-unknown", affinity_rule="no-such-rule")
        add_registry_update("2026-02-02-no-rule", affinity_rule=None)

        assert manager.discover() == []

    def test_registry_rule_from_frontmatter(self, manager, toolkit_dir):
        (toolkit_dir / "updates" / "2026-02-03-from-frontmatter.md").write_text(
            record_text(affinity_rule="desktop-apps")
        )
        (toolkit_dir / "data" / "update-registry.json").write_text(
            json.dumps(
                {
                    "schemaVersion": 1,
                    "updates": [{"file": "updates/2026-02-03-from-frontmatter.md"}],
                }
            )
        )

        assert [u.id for u in manager.discover()] == ["2026-02-03-from-frontmatter"]

    def test_sources_are_ordered(self, manager, project_dir, config_dir, write_update, add_registry_update):
        write_update(config_dir / "project-updates" / "web-app", "2026-01-01-legacy")
        add_registry_update("2026-01-01-registry")
        write_update(pending(project_dir), "2026-01-09-local")

        assert [(u.id, u.source) for u in manager.discover()] == [
            ("2026-01-09-local", "project"),
            ("2026-01-01-registry", "registry"),
            ("2026-01-01-legacy", "legacy"),
        ]

    def test_same_id_earlier_source_wins(self, manager, project_dir, write_update, add_registry_update):
        write_update(pending(project_dir), "2026-01-01-shared", title="Local copy")
        add_registry_update("2026-01-01-shared", title="Registry copy")

        updates = manager.discover()
        assert len(updates) == 1
        assert updates[0].source == "project"
        assert updates[0].record.title == "Local copy"

    def test_applied_ids_are_excluded(self, manager, project_dir, write_update, add_registry_update):
        write_update(pending(project_dir), "2026-01-01-fix")
        registry_file = add_registry_update("2026-02-01-electron-path")
        (project_dir / "docs" / "applied-updates.json").write_text(
            json.dumps(
                {
                    "schemaVersion": 1,
                    "applied": [
                        {
                            "id": "2026-02-01-electron-path",
                            "appliedAt": "2026-02-02T00:00:00+00:00",
                            "appliedBy": "builder",
                            "updateType": "schema",
                        }
                    ],
                }
            )
        )

        assert [u.id for u in manager.discover()] == ["2026-01-01-fix"]
        assert registry_file.exists()

    def test_unreadable_record_is_skipped(self, manager, project_dir, write_update):
        write_update(pending(project_dir), "2026-01-01-good")
        (pending(project_dir) / "2026-01-02-broken.md").write_text("no frontmatter here")

        assert [u.id for u in manager.discover()] == ["2026-01-01-good"]

    def test_project_id_from_projects_index(self, project_dir, config_dir):
        (config_dir / "projects.json").write_text(
            json.dumps({"projects": [{"id": "webapp-main", "path": str(project_dir)}]})
        )
        manager = UpdateManager(
            project_directory=str(project_dir), config_directory=str(config_dir)
        )
        assert manager.project_id == "webapp-main"
        assert manager.legacy_directory == config_dir / "project-updates" / "webapp-main"


class TestApply:

    def test_apply_project_update(self, manager, project_dir, write_update):
        record_path = write_update(pending(project_dir), "2026-01-01-fix")

        result = manager.apply_update("2026-01-01-fix")

        assert result.status == "applied"
        assert result.error is None
        assert not record_path.exists()
        ledger = json.loads((project_dir / "docs" / "applied-updates.json").read_text())
        entry = ledger["applied"][0]
        assert entry["id"] == "2026-01-01-fix"
        assert entry["appliedBy"] == "builder"
        assert entry["updateType"] == "schema"
        assert entry["appliedAt"]
        assert manager.discover() == []

    def test_apply_registry_update_keeps_file(self, manager, project_dir, add_registry_update):
        registry_file = add_registry_update("2026-02-01-electron-path", update_type="sync")

        result = manager.apply_update("2026-02-01-electron-path")

        assert result.status == "applied"
        assert registry_file.exists()
        ledger = load_ledger(project_dir / "docs" / "applied-updates.json")
        assert ledger.ids() == ["2026-02-01-electron-path"]
        assert ledger.applied[0].update_type == "sync"
        assert manager.verify_removed("2026-02-01-electron-path")

    def test_apply_legacy_update_deletes_file(self, manager, config_dir, write_update):
        legacy = write_update(config_dir / "project-updates" / "web-app", "2026-01-01-legacy")

        result = manager.apply_update("2026-01-01-legacy")

        assert result.status == "applied"
        assert not legacy.exists()

    def test_apply_removes_shadowed_legacy_copy(
        self, manager, project_dir, config_dir, write_update
    ):
        local = write_update(pending(project_dir), "2026-01-01-shared")
        legacy = write_update(config_dir / "project-updates" / "web-app", "2026-01-01-shared")

        result = manager.apply_update("2026-01-01-shared")

        assert result.status == "applied"
        assert not local.exists()
        assert not legacy.exists()

    def test_apply_twice_records_once(self, manager, project_dir, add_registry_update):
        add_registry_update("2026-02-01-electron-path")

        first = manager.apply_update("2026-02-01-electron-path")
        second = manager.apply_update("2026-02-01-electron-path")

        assert first.status == "applied"
        assert second.status == "already_applied"
        ledger = load_ledger(project_dir / "docs" / "applied-updates.json")
        assert ledger.ids().count("2026-02-01-electron-path") == 1

    def test_apply_unknown_update(self, manager):
        result = manager.apply_update("2026-01-01-missing")
        assert result.status == "error"
        assert result.error.code == "not_found"

    def test_applier_receives_record(self, manager, project_dir, write_update):
        write_update(pending(project_dir), "2026-01-01-fix")
        applier = MagicMock()

        manager.apply_update("2026-01-01-fix", applier=applier)

        applier.assert_called_once()
        assert applier.call_args[0][0].id == "2026-01-01-fix"

    def test_failed_applier_leaves_everything(self, manager, project_dir, write_update):
        record_path = write_update(pending(project_dir), "2026-01-01-fix")
        applier = MagicMock(side_effect=RuntimeError("merge conflict"))

        result = manager.apply_update("2026-01-01-fix", applier=applier)

        assert result.status == "error"
        assert result.error.code == "apply_failed"
        assert "merge conflict" in result.error.message
        assert record_path.exists()
        assert not (project_dir / "docs" / "applied-updates.json").exists()
        assert not manager.session_lock_path.exists()

    def test_strict_policy_redirects(self, project_dir, toolkit_dir, config_dir, write_update):
        record_path = write_update(
            pending(project_dir), "2026-01-01-code", files=["src/app.ts"]
        )
        planner = UpdateManager(
            project_directory=str(project_dir),
            toolkit_directory=str(toolkit_dir),
            config_directory=str(config_dir),
            role="planner",
            scope_policy="strict",
        )

        result = planner.apply_update("2026-01-01-code")

        assert result.status == "redirected"
        assert result.error.code == "redirect_required"
        assert result.data == {"scope": "implementation"}
        assert record_path.exists()
        assert not (project_dir / "docs" / "applied-updates.json").exists()

    def test_permissive_policy_lets_planner_apply_code(
        self, project_dir, toolkit_dir, config_dir, write_update
    ):
        write_update(pending(project_dir), "2026-01-01-code", files=["src/app.ts"])
        planner = UpdateManager(
            project_directory=str(project_dir),
            toolkit_directory=str(toolkit_dir),
            config_directory=str(config_dir),
            role="planner",
        )

        result = planner.apply_update("2026-01-01-code")

        assert result.status == "applied"
        assert result.data["appliedBy"] == "planner"

    def test_locked_session(self, manager, project_dir, write_update):
        record_path = write_update(pending(project_dir), "2026-01-01-fix")
        planner = SessionLease(manager.session_lock_path, owner="planner")

        with planner, patch.object(
            SessionLease, "__enter__", lambda self: self.acquire(timeout=0.1)
        ):
            result = manager.apply_update("2026-01-01-fix")

        assert result.status == "error"
        assert result.error.code == "session_locked"
        assert "held by planner" in result.error.message
        assert record_path.exists()
        assert not (project_dir / "docs" / "applied-updates.json").exists()

    def test_double_application_detected(self, manager, project_dir, write_update):
        write_update(pending(project_dir), "2026-01-01-fix")

        with patch.object(manager, "verify_removed", return_value=False):
            result = manager.apply_update("2026-01-01-fix")

        assert result.status == "error"
        assert result.error.code == "double_application"


class TestSkipAndClassify:

    def test_skip_leaves_record_pending(self, manager, project_dir, write_update):
        record_path = write_update(pending(project_dir), "2026-01-01-fix")

        result = manager.skip_update("2026-01-01-fix")

        assert result.status == "skipped"
        assert record_path.exists()
        assert not (project_dir / "docs" / "applied-updates.json").exists()
        assert [u.id for u in manager.discover()] == ["2026-01-01-fix"]

    def test_skip_unknown(self, manager):
        assert manager.skip_update("nope").error.code == "not_found"

    def test_classify_update(self, manager, project_dir, write_update):
        write_update(pending(project_dir), "2026-01-01-fix", scope="implementation")

        result = manager.classify_update("2026-01-01-fix")

        assert result.status == "success"
        assert result.data["classification"]["scope"] == "implementation"
        assert result.data["classification"]["source"] == "explicit"
        assert result.data["authorized"] is True
        assert result.data["policy"] == "permissive"

    def test_validate_updates(self, manager, project_dir, write_update):
        write_update(pending(project_dir), "2026-01-01-fix")
        (pending(project_dir) / "2026-01-02-bad.md").write_text("---\ncreatedBy: x\n---\n")

        report = manager.validate_updates()

        assert not report.ok
        assert {i.path for i in report.issues} == {"2026-01-02-bad.md"}


@pytest.fixture
def registered_projects(tmp_path, config_dir):
    electron = tmp_path / "desktop-app"
    web = tmp_path / "site"
    bare = tmp_path / "scripts"
    for project, config in ((electron, {"apps": ["electron"]}), (web, {"apps": ["web"]})):
        (project / "docs").mkdir(parents=True)
        (project / "docs" / "project.json").write_text(json.dumps(config))
    bare.mkdir()
    (config_dir / "projects.json").write_text(
        json.dumps(
            {
                "projects": [
                    {"id": "desktop-app", "path": str(electron), "hasAgentSystem": True},
                    {"id": "site", "path": str(web), "hasAgentSystem": True},
                    {"id": "scripts", "path": str(bare), "hasAgentSystem": True},
                    {"id": "legacy", "path": str(tmp_path / "legacy"), "hasAgentSystem": False},
                ]
            }
        )
    )
    return {"desktop-app": electron, "site": web, "scripts": bare}


class TestGenerate:

    def test_generate_for_matching_projects(self, manager, registered_projects):
        result = manager.generate_updates("desktop-apps", "add executable path")

        assert result.status == "success"
        assert [m["project"] for m in result.data["matched"]] == ["desktop-app"]
        created = list(pending(registered_projects["desktop-app"]).glob("*.md"))
        assert len(created) == 1
        assert created[0].name.endswith("-add-executable-path.md")
        text = created[0].read_text()
        assert "createdBy: toolkit" in text
        assert "affinityRule: desktop-apps" in text
        assert "updateType: schema" in text
        assert "- `docs/project.json`" in text
        assert not pending(registered_projects["site"]).exists()
        reasons = {s["project"]: s["reason"] for s in result.data["skipped"]}
        assert reasons == {
            "site": "rule not matched",
            "scripts": "no project.json",
            "legacy": "no agent system",
        }

    def test_generate_dry_run_writes_nothing(self, manager, registered_projects):
        result = manager.generate_updates("desktop-apps", "add executable path", dry_run=True)

        assert result.status == "dry_run"
        assert len(result.data["matched"]) == 1
        assert not pending(registered_projects["desktop-app"]).exists()

    def test_generate_skips_pending_and_applied(self, manager, registered_projects):
        manager.generate_updates("everyone", "sync")
        result = manager.generate_updates("everyone", "sync")

        assert result.data["matched"] == []
        assert sorted(result.data["already_pending"]) == ["desktop-app", "site"]

        site = registered_projects["site"]
        UpdateManager(
            project_directory=str(site), config_directory=str(manager.config_directory)
        ).apply_update(result.metadata.update_id)
        result = manager.generate_updates("everyone", "sync")
        assert result.data["already_applied"] == ["site"]

    def test_generate_with_template(self, manager, registered_projects, tmp_path):
        template = tmp_path / "template.md"
        body = (
            "# Add executable path\n\n"
            "Desktop launchers read this field at startup.\n\n"
            "## What to do\nSet apps.desktop.executablePath.\n\n"
            "## Files affected\n- `docs/project.json`\n\n## Why\nLauncher.\n\n"
            "## Verification\nThe field exists.\n"
        )
        template.write_text(body)

        manager.generate_updates(
            "desktop-apps", "add executable path", template_file=str(template), priority="high"
        )

        created = next(pending(registered_projects["desktop-app"]).glob("*.md"))
        text = created.read_text()
        assert text.endswith("---\n\n" + body)
        assert "priority: high" in text
        assert "updateType: schema" in text
        assert "\ntype:" not in text
        record = UpdateManager(
            project_directory=str(registered_projects["desktop-app"]),
            config_directory=str(manager.config_directory),
        ).discover()[0].record
        assert record.update_type == "schema"
        assert record.affinity_rule == "desktop-apps"
        assert record.what_to_do == "Set apps.desktop.executablePath."

    def test_generate_unknown_rule(self, manager, registered_projects):
        result = manager.generate_updates("no-such-rule", "x")
        assert result.status == "error"
        assert result.error.code == "rule_not_found"

    def test_generate_missing_template(self, manager, registered_projects, tmp_path):
        with pytest.raises(FileNotFoundError):
            manager.generate_updates("everyone", "x", template_file=str(tmp_path / "nope.md"))


class TestMigrate:

    def test_migrate_moves_legacy_records(self, manager, config_dir, registered_projects, write_update):
        legacy_dir = config_dir / "project-updates" / "site"
        original = write_update(legacy_dir, "2026-01-01-old")
        write_update(config_dir / "project-updates" / "unknown", "2026-01-01-orphan")

        result = manager.migrate_legacy_updates(commit=False)

        assert result.status == "success"
        assert result.data["migrated"] == [{"project": "site", "file": "2026-01-01-old.md"}]
        assert result.data["skipped"] == [
            {"project": "unknown", "reason": "project not in projects.json"}
        ]
        target = pending(registered_projects["site"]) / "2026-01-01-old.md"
        assert "updateType: schema" in target.read_text()
        assert not original.exists()
        assert not legacy_dir.exists()

    def test_migrate_commits(self, manager, config_dir, registered_projects, write_update):
        write_update(config_dir / "project-updates" / "site", "2026-01-01-old")

        with patch.object(manager, "git_action", return_value="") as git_action:
            manager.migrate_legacy_updates()

        commands = [c.args[0] for c in git_action.call_args_list]
        assert commands[0] == ["git", "add", "--", "docs/pending-updates/2026-01-01-old.md"]
        assert commands[1][:3] == ["git", "commit", "-m"]
        assert commands[1][3].startswith("chore: migrate 1 pending update(s)")
        assert git_action.call_args.kwargs["directory"] == str(registered_projects["site"])
        assert git_action.call_args.kwargs["check"] is True

    @patch("subprocess.Popen")
    def test_migrate_passes_filenames_as_arguments(
        self, mock_popen, manager, config_dir, registered_projects, write_update
    ):
        process_mock = MagicMock()
        process_mock.communicate.return_value = ("", "")
        process_mock.returncode = 0
        mock_popen.return_value = process_mock
        name = "2026-01-01-$(touch INJECTED)"
        write_update(config_dir / "project-updates" / "site", name)

        result = manager.migrate_legacy_updates()

        assert result.status == "success"
        add_call = mock_popen.call_args_list[0]
        assert add_call.args[0] == ["git", "add", "--", f"docs/pending-updates/{name}.md"]
        assert not add_call.kwargs.get("shell", False)
        assert not (registered_projects["site"] / "INJECTED").exists()
        assert (pending(registered_projects["site"]) / f"{name}.md").exists()

    @patch("subprocess.Popen")
    def test_migrate_reports_git_failure(
        self, mock_popen, manager, config_dir, registered_projects, write_update
    ):
        process_mock = MagicMock()
        process_mock.communicate.return_value = ("", "fatal: not a git repository")
        process_mock.returncode = 128
        mock_popen.return_value = process_mock
        original = write_update(config_dir / "project-updates" / "site", "2026-01-01-old")

        result = manager.migrate_legacy_updates()

        assert result.status == "error"
        assert result.error.code == "migration_failed"
        assert result.data["migrated"] == []
        assert result.data["errors"][0]["file"] == "2026-01-01-old.md"
        assert "not a git repository" in result.data["errors"][0]["error"]
        assert original.exists()

    def test_migrate_keeps_originals_when_commit_fails(
        self, manager, config_dir, registered_projects, write_update
    ):
        original = write_update(config_dir / "project-updates" / "site", "2026-01-01-old")

        def git_action(command, directory=None, check=False):
            if command[1] == "commit":
                raise GitCommandError("git commit exited with 1: nothing to commit")
            return ""

        with patch.object(manager, "git_action", side_effect=git_action):
            result = manager.migrate_legacy_updates()

        assert result.status == "error"
        assert result.error.code == "migration_failed"
        assert result.data["errors"] == [
            {
                "project": "site",
                "file": "commit",
                "error": "git commit exited with 1: nothing to commit",
            }
        ]
        assert original.exists()

    def test_migrate_dry_run(self, manager, config_dir, registered_projects, write_update):
        original = write_update(config_dir / "project-updates" / "site", "2026-01-01-old")

        result = manager.migrate_legacy_updates(dry_run=True)

        assert result.status == "dry_run"
        assert original.exists()
        assert not pending(registered_projects["site"]).exists()

    def test_migrate_without_legacy_directory(self, manager):
        assert manager.migrate_legacy_updates().data == {"migrated": []}


class TestGitAction:

    @patch("subprocess.Popen")
    def test_git_action(self, mock_popen, manager):
        process_mock = MagicMock()
        process_mock.communicate.return_value = ("[main abc123] chore", "")
        process_mock.returncode = 0
        mock_popen.return_value = process_mock

        result = manager.git_action(["git", "commit", "-m", "test"])

        assert result == "[main abc123] chore"
        assert mock_popen.call_args.args[0] == ["git", "commit", "-m", "test"]
        assert mock_popen.call_args.kwargs["cwd"] == manager.project_directory

    @patch("subprocess.Popen")
    def test_git_action_failure(self, mock_popen, manager):
        process_mock = MagicMock()
        process_mock.communicate.return_value = ("", "error: pathspec did not match")
        process_mock.returncode = 1
        mock_popen.return_value = process_mock

        assert manager.git_action(["git", "add", "x"]) == "error: pathspec did not match"
        with pytest.raises(GitCommandError, match="pathspec"):
            manager.git_action(["git", "add", "x"], check=True)


@pytest.fixture
def cli_config(config_dir, monkeypatch):
    module = sys.modules[UpdateManager.__module__]
    monkeypatch.setattr(module, "DEFAULT_CONFIG_DIRECTORY", str(config_dir))
    return config_dir


class TestCommandLine:

    def test_cli_apply(self, project_dir, toolkit_dir, cli_config, write_update):
        write_update(pending(project_dir), "2026-01-01-fix")

        update_manager(
            [
                "--project", str(project_dir),
                "--toolkit", str(toolkit_dir),
                "--agent", "builder",
                "--apply", "2026-01-01-fix",
            ]
        )

        ledger = load_ledger(project_dir / "docs" / "applied-updates.json")
        assert ledger.ids() == ["2026-01-01-fix"]
        assert ledger.applied[0].applied_by == "builder"

    def test_cli_redirect_is_not_a_failure(self, project_dir, cli_config, write_update):
        record_path = write_update(
            pending(project_dir), "2026-01-01-code", files=["src/app.ts"]
        )

        update_manager(
            [
                "--project", str(project_dir),
                "--role", "planner",
                "--strict",
                "--apply", "2026-01-01-code",
            ]
        )

        assert record_path.exists()

    def test_cli_unknown_update_exits_nonzero(self, project_dir, cli_config):
        with pytest.raises(SystemExit) as exc:
            update_manager(["--project", str(project_dir), "--apply", "2026-01-01-missing"])
        assert exc.value.code == 1

    def test_cli_invalid_records_fail_validation(self, project_dir, cli_config):
        pending(project_dir).mkdir()
        (pending(project_dir) / "2026-01-01-bad.md").write_text("no frontmatter")

        with pytest.raises(SystemExit) as exc:
            update_manager(["--project", str(project_dir), "--validate"])
        assert exc.value.code == 1

    def test_cli_missing_project_directory(self, tmp_path):
        with pytest.raises(SystemExit) as exc:
            update_manager(["--project", str(tmp_path / "missing"), "--discover"])
        assert exc.value.code == 2

    def test_cli_unknown_role(self, project_dir):
        with pytest.raises(SystemExit) as exc:
            update_manager(["--project", str(project_dir), "--role", "reviewer", "--discover"])
        assert exc.value.code == 2

    def test_cli_generate_requires_name(self, project_dir):
        with pytest.raises(SystemExit) as exc:
            update_manager(["--project", str(project_dir), "--generate", "desktop-apps"])
        assert exc.value.code == 2

    def test_cli_bad_option(self):
        with pytest.raises(SystemExit) as exc:
            update_manager(["--frobnicate"])
        assert exc.value.code == 2
