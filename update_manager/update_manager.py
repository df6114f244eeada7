#!/usr/bin/env python
# coding: utf-8

"""
A command-line tool for routing pending updates between agent sessions.

Updates are discovered from the project's own pending-updates store, the
toolkit's central registry and the legacy per-machine store, filtered against
the project's applied-updates ledger, and applied idempotently.
"""

import subprocess
import os
import sys
import getopt
import logging
import datetime

from pathlib import Path
from typing import Callable, Dict, List, Optional

from update_manager.affinity import evaluate_rule, load_rules
from update_manager.classification import Role, ScopePolicy, authorize, classify
from update_manager.ledger import LEDGER_FILE, load_ledger, record_applied
from update_manager.lock import (
    DEFAULT_LEASE_TTL,
    LeaseTimeoutError,
    SessionLease,
    lease_status,
)
from update_manager.models import (
    DEFAULT_UPDATE_TYPE,
    DiscoveredUpdate,
    Priority,
    ProjectEntry,
    UpdateError,
    UpdateMetadata,
    UpdateRecord,
    UpdateRegistry,
    UpdateResult,
    UpdateSource,
    ValidationReport,
)
from update_manager.records import (
    UpdateRecordError,
    ensure_update_type,
    list_record_files,
    load_record,
    parse_record,
    update_id as build_update_id,
    validate_store,
    write_record,
)
from update_manager.utils import (
    atomic_write_text,
    load_json_file,
    render_frontmatter,
    to_boolean,
    to_integer,
    utc_now,
)

DEFAULT_PROJECT_DIRECTORY = os.environ.get("UPDATE_MANAGER_PROJECT_DIRECTORY", None)
DEFAULT_TOOLKIT_DIRECTORY = os.environ.get("UPDATE_MANAGER_TOOLKIT_DIRECTORY", None)
DEFAULT_CONFIG_DIRECTORY = os.environ.get(
    "UPDATE_MANAGER_CONFIG_DIRECTORY",
    os.path.join(os.path.expanduser("~"), ".config", "opencode"),
)
DEFAULT_ROLE = os.environ.get("UPDATE_MANAGER_ROLE", Role.BUILDER.value)
DEFAULT_AGENT = os.environ.get("UPDATE_MANAGER_AGENT", None)
DEFAULT_STRICT_SCOPE = to_boolean(os.environ.get("UPDATE_MANAGER_STRICT_SCOPE", None))
DEFAULT_LEASE_SECONDS = to_integer(
    os.environ.get("UPDATE_MANAGER_LEASE_TTL", str(int(DEFAULT_LEASE_TTL)))
)

PENDING_UPDATES_DIRECTORY = os.path.join("docs", "pending-updates")
PROJECT_CONFIG_FILE = os.path.join("docs", "project.json")
LEDGER_PATH = os.path.join("docs", LEDGER_FILE)
SESSION_LOCK_PATH = os.path.join("docs", ".update-session.lock")
REGISTRY_FILE = os.path.join("data", "update-registry.json")
AFFINITY_RULES_FILE = os.path.join("data", "update-affinity-rules.json")
LEGACY_UPDATES_DIRECTORY = "project-updates"
PROJECTS_INDEX_FILE = "projects.json"

FILE_SOURCES = (UpdateSource.PROJECT.value, UpdateSource.LEGACY.value)

DEFAULT_TEMPLATE_BODY = """# {title}

## What to do

<!-- Describe the steps to apply this update -->

## Files affected

- `{project_config}`

## Why

<!-- Explain why this update is needed -->

## Verification

<!-- How to verify the update was applied correctly -->
"""


class GitCommandError(RuntimeError):
    """Raised by git_action when a checked command exits non-zero."""


# Configure logging
def setup_logging(is_mcp_server=False, log_file="update_manager_mcp.log"):
    logger = logging.getLogger("UpdateManager")
    logger.setLevel(logging.DEBUG)  # Logger processes all levels

    # Clear any existing handlers to avoid duplicate logs
    logger.handlers.clear()

    if is_mcp_server:
        # stdout carries the MCP stdio transport, so only errors go to a file
        handler = logging.FileHandler(log_file, mode="a")
        handler.setLevel(logging.ERROR)
    else:
        handler = logging.StreamHandler(sys.stdout)
        handler.setLevel(logging.INFO)

    formatter = logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )
    handler.setFormatter(formatter)
    logger.addHandler(handler)
    return logger


def no_op_applier(record: UpdateRecord) -> None:
    """Default apply hook: the change itself is carried out by the operator."""
    return None


class UpdateManager:
    """Discovers, classifies and applies pending updates for one project."""

    def __init__(
        self,
        project_directory: str = None,
        project_id: str = None,
        toolkit_directory: str = None,
        config_directory: str = None,
        agent: str = None,
        role: str = None,
        scope_policy: str = None,
        lease_ttl: float = None,
        is_mcp_server: bool = False,
    ):
        """Initialize the UpdateManager with default settings."""
        self.logger = setup_logging(is_mcp_server=is_mcp_server)
        self.is_mcp_server = is_mcp_server
        self.project_directory = os.path.abspath(
            project_directory or DEFAULT_PROJECT_DIRECTORY or os.getcwd()
        )
        self.toolkit_directory = toolkit_directory or DEFAULT_TOOLKIT_DIRECTORY
        self.config_directory = config_directory or DEFAULT_CONFIG_DIRECTORY
        self.role = Role(role or DEFAULT_ROLE).value
        self.agent = agent or DEFAULT_AGENT or self.role
        if scope_policy:
            self.scope_policy = ScopePolicy(scope_policy).value
        elif DEFAULT_STRICT_SCOPE:
            self.scope_policy = ScopePolicy.STRICT.value
        else:
            self.scope_policy = ScopePolicy.PERMISSIVE.value
        self.lease_ttl = lease_ttl or DEFAULT_LEASE_SECONDS
        self.project_id = project_id or self.resolve_project_id()

    @property
    def pending_directory(self) -> Path:
        return Path(self.project_directory) / PENDING_UPDATES_DIRECTORY

    @property
    def ledger_path(self) -> Path:
        return Path(self.project_directory) / LEDGER_PATH

    @property
    def project_config_path(self) -> Path:
        return Path(self.project_directory) / PROJECT_CONFIG_FILE

    @property
    def session_lock_path(self) -> Path:
        return Path(self.project_directory) / SESSION_LOCK_PATH

    @property
    def legacy_root(self) -> Path:
        return Path(self.config_directory) / LEGACY_UPDATES_DIRECTORY

    @property
    def legacy_directory(self) -> Path:
        return self.legacy_root / self.project_id

    @property
    def projects_index_path(self) -> Path:
        return Path(self.config_directory) / PROJECTS_INDEX_FILE

    def resolve_project_id(self) -> str:
        """
        Look the project up in the projects index by path.

        Returns:
            str: The id registered for this directory, or the directory name
                when the project is not registered.
        """
        for project in self.read_projects_index():
            if os.path.abspath(os.path.expanduser(project.path)) == self.project_directory:
                return project.id
        return os.path.basename(self.project_directory.rstrip(os.sep))

    def read_projects_index(self) -> List[ProjectEntry]:
        data = load_json_file(self.projects_index_path, default={}) or {}
        projects = []
        for raw in data.get("projects", []):
            try:
                projects.append(ProjectEntry.model_validate(raw))
            except ValueError as e:
                self.logger.warning(f"Skipping invalid projects.json entry {raw}: {e}")
        return projects

    def load_project_config(self, project_directory: str = None) -> Dict:
        path = (
            Path(project_directory) / PROJECT_CONFIG_FILE
            if project_directory
            else self.project_config_path
        )
        data = load_json_file(path, default={})
        return data if isinstance(data, dict) else {}

    def load_registry(self) -> UpdateRegistry:
        if not self.toolkit_directory:
            return UpdateRegistry()
        data = load_json_file(Path(self.toolkit_directory) / REGISTRY_FILE, default={})
        return UpdateRegistry.model_validate(data or {})

    def load_affinity_rules(self):
        if not self.toolkit_directory:
            return {}
        return load_rules(Path(self.toolkit_directory) / AFFINITY_RULES_FILE)

    def _read_store(self, directory: Path, source: UpdateSource) -> List[UpdateRecord]:
        records = []
        for path in list_record_files(directory):
            try:
                records.append(load_record(path, source=source))
            except (UpdateRecordError, OSError) as e:
                self.logger.warning(f"Skipping unreadable update {path}: {e}")
        return records

    def _read_registry(self, config: Dict) -> List[UpdateRecord]:
        registry = self.load_registry()
        if not registry.updates:
            return []
        rules = self.load_affinity_rules()
        records = []
        for entry in registry.updates:
            path = Path(self.toolkit_directory) / entry.file
            record_id = entry.id or path.stem
            if not path.is_file():
                self.logger.warning(f"Registry update {record_id} has no file at {path}")
                continue
            try:
                with open(path, "r", encoding="utf-8") as record_file:
                    record = parse_record(
                        record_file.read(),
                        record_id=record_id,
                        path=path,
                        source=UpdateSource.REGISTRY,
                    )
            except (UpdateRecordError, OSError) as e:
                self.logger.warning(f"Skipping unreadable registry update {path}: {e}")
                continue
            rule_name = entry.affinity_rule or record.affinity_rule
            rule = rules.get(rule_name) if rule_name else None
            if rule is None:
                self.logger.warning(
                    f"Registry update {record_id} has no evaluable affinity rule "
                    f"({rule_name or 'none'}), excluding it"
                )
                continue
            if evaluate_rule(rule, config):
                records.append(record)
            else:
                self.logger.debug(f"Registry update {record_id} does not match rule {rule_name}")
        return records

    def discover(self) -> List[DiscoveredUpdate]:
        """
        Enumerate the unapplied updates relevant to this project.

        Sources are read in priority order: the project store, the central
        registry and the legacy store. When two sources carry the same id the
        earlier one wins.

        Returns:
            List[DiscoveredUpdate]: The pending updates with their scope.
        """
        ledger = load_ledger(self.ledger_path)
        applied = set(ledger.ids())
        config = self.load_project_config()

        candidates = []
        candidates.extend(self._read_store(self.pending_directory, UpdateSource.PROJECT))
        candidates.extend(self._read_registry(config))
        candidates.extend(self._read_store(self.legacy_directory, UpdateSource.LEGACY))

        discovered = []
        seen = set()
        for record in candidates:
            if record.id in applied:
                continue
            if record.id in seen:
                self.logger.warning(
                    f"Ignoring {record.source} copy of update {record.id}, "
                    "an earlier source already provides it"
                )
                continue
            seen.add(record.id)
            discovered.append(
                DiscoveredUpdate(
                    record=record, source=record.source, classification=classify(record)
                )
            )
        self.logger.info(
            f"Discovered {len(discovered)} pending update(s) for {self.project_id}"
        )
        return discovered

    def find_update(self, update_id: str) -> Optional[DiscoveredUpdate]:
        for update in self.discover():
            if update.id == update_id:
                return update
        return None

    def verify_removed(self, update_id: str) -> bool:
        """Re-run discovery and confirm the update no longer surfaces."""
        return self.find_update(update_id) is None

    def _result(self, status, operation, update_id=None, data=None, error=None, code=None):
        return UpdateResult(
            status=status,
            data=data,
            error=UpdateError(message=error, code=code) if error else None,
            metadata=UpdateMetadata(
                operation=operation,
                project=self.project_directory,
                update_id=update_id,
                timestamp=utc_now(),
            ),
        )

    def classify_update(self, update_id: str) -> UpdateResult:
        update = self.find_update(update_id)
        if update is None:
            return self._result(
                "error", "classify", update_id,
                error=f"Update {update_id} is not pending", code="not_found",
            )
        authorized = authorize(self.role, update.classification, self.scope_policy)
        return self._result(
            "success",
            "classify",
            update_id,
            data={
                "classification": update.classification.model_dump(),
                "role": self.role,
                "policy": self.scope_policy,
                "authorized": authorized,
            },
        )

    def _record_files(self, update: DiscoveredUpdate) -> List[Path]:
        """
        File-store copies of an update, including copies shadowed during
        discovery by an earlier source with the same id.
        """
        candidates = []
        if update.source in FILE_SOURCES and update.record.path:
            candidates.append(Path(update.record.path))
        for directory in (self.pending_directory, self.legacy_directory):
            candidates.append(directory / f"{update.id}.md")
        files = []
        for path in candidates:
            if path.is_file() and path not in files:
                files.append(path)
        return files

    def session_lease(self) -> SessionLease:
        return SessionLease(
            self.session_lock_path, owner=self.agent, ttl_seconds=self.lease_ttl
        )

    def session_status(self) -> Dict:
        return lease_status(self.session_lock_path)

    def apply_update(
        self,
        update_id: str,
        applier: Callable[[UpdateRecord], None] = None,
    ) -> UpdateResult:
        """
        Apply one pending update and record it as done.

        Args:
            update_id (str): Id of a discovered update.
            applier (Callable, optional): Hook that performs the change
                described by the record. Defaults to a no-op.

        Returns:
            UpdateResult: applied, redirected, already_applied or error.
        """
        applier = applier or no_op_applier
        ledger = load_ledger(self.ledger_path)
        if ledger.contains(update_id):
            self.logger.info(f"Update {update_id} was already applied")
            return self._result("already_applied", "apply", update_id)

        update = self.find_update(update_id)
        if update is None:
            return self._result(
                "error", "apply", update_id,
                error=f"Update {update_id} is not pending", code="not_found",
            )

        if not authorize(self.role, update.classification, self.scope_policy):
            message = (
                f"Update {update_id} has {update.classification.scope} scope and "
                f"cannot be applied by the {self.role} role under the "
                f"{self.scope_policy} policy"
            )
            self.logger.warning(message)
            return self._result(
                "redirected", "apply", update_id,
                data={"scope": update.classification.scope},
                error=message, code="redirect_required",
            )

        try:
            with self.session_lease():
                try:
                    applier(update.record)
                except Exception as e:
                    self.logger.error(f"Applying update {update_id} failed: {e}")
                    return self._result(
                        "error", "apply", update_id,
                        error=f"Applying update {update_id} failed: {e}",
                        code="apply_failed",
                    )
                entry, _ = record_applied(
                    self.ledger_path,
                    update_id,
                    applied_by=self.agent,
                    update_type=update.record.ledger_type,
                    lease_ttl=self.lease_ttl,
                )
                for record_path in self._record_files(update):
                    record_path.unlink(missing_ok=True)
                    self.logger.info(f"Deleted applied update file {record_path}")
        except LeaseTimeoutError as e:
            self.logger.error(str(e))
            return self._result(
                "error", "apply", update_id, error=str(e), code="session_locked"
            )

        if not self.verify_removed(update_id):
            message = f"Update {update_id} still discoverable after it was applied"
            self.logger.error(message)
            return self._result(
                "error", "apply", update_id, error=message, code="double_application"
            )
        self.logger.info(f"Applied update {update_id} from {update.source} store")
        return self._result(
            "applied", "apply", update_id, data=entry.model_dump(by_alias=True)
        )

    def skip_update(self, update_id: str) -> UpdateResult:
        """Leave an update pending so it resurfaces on the next discovery."""
        update = self.find_update(update_id)
        if update is None:
            return self._result(
                "error", "skip", update_id,
                error=f"Update {update_id} is not pending", code="not_found",
            )
        self.logger.info(f"Skipped update {update_id}; it stays pending")
        return self._result("skipped", "skip", update_id, data={"source": update.source})

    def create_update(
        self,
        name: str,
        what_to_do: str,
        files_affected: List[str],
        why: str,
        verification: str,
        priority: str = "normal",
        update_type: str = DEFAULT_UPDATE_TYPE,
        scope: str = None,
        title: str = None,
        date: str = None,
    ) -> UpdateResult:
        """Write a new record to the project's pending-updates store."""
        date = date or datetime.date.today().strftime("%Y-%m-%d")
        record_id = build_update_id(name, date=date)
        record = UpdateRecord(
            id=record_id,
            created_by=self.agent,
            date=date,
            priority=priority,
            update_type=update_type,
            scope=scope,
            title=title or name,
            sections={
                "What to do": what_to_do,
                "Files affected": "\n".join(f"- `{p}`" for p in files_affected),
                "Why": why,
                "Verification": verification,
            },
        )
        target = self.pending_directory / f"{record_id}.md"
        if target.exists():
            return self._result(
                "error", "create", record_id,
                error=f"Update {record_id} already exists at {target}",
                code="already_pending",
            )
        path = write_record(record, self.pending_directory)
        return self._result("created", "create", record_id, data={"path": str(path)})

    def validate_updates(self, require_scope: bool = False) -> ValidationReport:
        report = validate_store(self.pending_directory, require_scope=require_scope)
        for issue in report.issues:
            self.logger.warning(f"{issue.path}: {issue.message}")
        return report

    def _templated_content(self, record_id, rule_id, template, priority, update_type) -> str:
        frontmatter = render_frontmatter(
            {
                "createdBy": "toolkit",
                "date": record_id[:10],
                "priority": priority,
                "updateType": update_type,
                "affinityRule": rule_id,
            }
        )
        body = template or DEFAULT_TEMPLATE_BODY.format(
            title=record_id.replace("-", " ").title(),
            project_config=PROJECT_CONFIG_FILE,
        )
        return f"{frontmatter}\n{body}"

    def generate_updates(
        self,
        rule_id: str,
        name: str,
        template_file: str = None,
        priority: str = "normal",
        update_type: str = DEFAULT_UPDATE_TYPE,
        dry_run: bool = False,
    ) -> UpdateResult:
        """
        Write a pending update into every registered project matching a rule.

        Args:
            rule_id (str): Affinity rule from the toolkit's rules file.
            name (str): Update name, combined with today's date into the id.
            template_file (str, optional): Markdown body to use for the record.
            priority (str, optional): Record priority. Defaults to normal.
            update_type (str, optional): Record type. Defaults to schema.
            dry_run (bool, optional): Report matches without writing files.

        Returns:
            UpdateResult: Lists of matched, already applied, already pending
                and skipped projects.
        """
        priority = Priority(str(priority).strip().lower()).value
        rules = self.load_affinity_rules()
        rule = rules.get(rule_id)
        if rule is None:
            return self._result(
                "error", "generate",
                error=f"Rule '{rule_id}' not found", code="rule_not_found",
            )
        if not self.projects_index_path.is_file():
            raise FileNotFoundError(f"projects.json not found at {self.projects_index_path}")
        template = ""
        if template_file:
            if not os.path.exists(template_file):
                raise FileNotFoundError(f"Template not found: {template_file}")
            with open(template_file, "r", encoding="utf-8") as f:
                template = f.read()

        record_id = build_update_id(name)
        matched, already_applied, already_pending, skipped = [], [], [], []
        for project in self.read_projects_index():
            if not project.has_agent_system:
                skipped.append({"project": project.id, "reason": "no agent system"})
                continue
            project_path = Path(os.path.expanduser(project.path))
            if not (project_path / PROJECT_CONFIG_FILE).is_file():
                skipped.append({"project": project.id, "reason": "no project.json"})
                continue
            try:
                config = self.load_project_config(str(project_path))
                applied = load_ledger(project_path / LEDGER_PATH).contains(record_id)
            except ValueError as e:
                skipped.append({"project": project.id, "reason": f"invalid json: {e}"})
                continue
            if applied:
                already_applied.append(project.id)
                continue
            target = project_path / PENDING_UPDATES_DIRECTORY / f"{record_id}.md"
            if target.exists():
                already_pending.append(project.id)
                continue
            if not evaluate_rule(rule, config):
                skipped.append({"project": project.id, "reason": "rule not matched"})
                continue
            if not dry_run:
                atomic_write_text(
                    target,
                    self._templated_content(
                        record_id, rule_id, template, priority, update_type
                    ),
                )
                self.logger.info(f"Created: {target}")
            matched.append({"project": project.id, "path": str(target)})

        self.logger.info(
            f"Rule '{rule_id}': {len(matched)} matched, {len(already_applied)} already applied, "
            f"{len(already_pending)} already pending, {len(skipped)} skipped"
        )
        return self._result(
            "dry_run" if dry_run else "success",
            "generate",
            record_id,
            data={
                "matched": matched,
                "already_applied": already_applied,
                "already_pending": already_pending,
                "skipped": skipped,
            },
        )

    def migrate_legacy_updates(self, dry_run: bool = False, commit: bool = True) -> UpdateResult:
        """
        Move legacy per-machine updates into each project's pending store.

        Copies gain an updateType field when they have none. Originals are
        deleted only once their copy is written and, when committing, staged
        and committed. Emptied legacy directories are removed.
        """
        if not self.legacy_root.is_dir():
            self.logger.info(f"No legacy updates directory at {self.legacy_root}")
            return self._result("success", "migrate", data={"migrated": []})

        projects = {p.id: Path(os.path.expanduser(p.path)) for p in self.read_projects_index()}
        migrated, skipped, errors = [], [], []
        for project_dir in sorted(self.legacy_root.iterdir()):
            if not project_dir.is_dir():
                continue
            project_id = project_dir.name
            if project_id not in projects:
                skipped.append({"project": project_id, "reason": "project not in projects.json"})
                continue
            project_path = projects[project_id]
            if not project_path.exists():
                skipped.append({"project": project_id, "reason": "project path does not exist"})
                continue
            target_dir = project_path / PENDING_UPDATES_DIRECTORY
            staged = []
            for update_file in list_record_files(project_dir):
                target_file = target_dir / update_file.name
                if dry_run:
                    self.logger.info(f"DRY RUN: Would copy {update_file} -> {target_file}")
                    migrated.append({"project": project_id, "file": update_file.name})
                    continue
                try:
                    with open(update_file, "r", encoding="utf-8") as f:
                        content = ensure_update_type(f.read())
                    atomic_write_text(target_file, content)
                    self.logger.info(f"Copied: {update_file.name} -> {target_file}")
                    if commit:
                        self.git_action(
                            ["git", "add", "--", str(target_file.relative_to(project_path))],
                            directory=str(project_path),
                            check=True,
                        )
                except (OSError, GitCommandError) as e:
                    errors.append({"project": project_id, "file": update_file.name, "error": str(e)})
                    continue
                staged.append(update_file)

            if commit and staged:
                try:
                    self.git_action(
                        [
                            "git",
                            "commit",
                            "-m",
                            f"chore: migrate {len(staged)} pending update(s) from legacy location",
                        ],
                        directory=str(project_path),
                        check=True,
                    )
                except GitCommandError as e:
                    errors.append({"project": project_id, "file": "commit", "error": str(e)})
                    # originals stay until their copies are committed
                    continue

            for update_file in staged:
                migrated.append({"project": project_id, "file": update_file.name})
                update_file.unlink()
                self.logger.info(f"Deleted original: {update_file}")
            if not dry_run and not any(project_dir.iterdir()):
                project_dir.rmdir()
                self.logger.info(f"Removed empty directory: {project_dir}")

        return self._result(
            "error" if errors else ("dry_run" if dry_run else "success"),
            "migrate",
            data={"migrated": migrated, "skipped": skipped, "errors": errors},
            error=f"{len(errors)} migration step(s) failed" if errors else None,
            code="migration_failed" if errors else None,
        )

    def git_action(
        self, command: List[str], directory: str = None, check: bool = False
    ) -> str:
        """
        Execute a Git command in the specified directory.

        Args:
            command (List[str]): The Git command and its arguments. It is run
                without a shell, so arguments are never interpreted.
            directory (str, optional): The directory to execute the command in.
                Defaults to the project directory.
            check (bool, optional): Raise GitCommandError when the command
                exits non-zero. Defaults to False.

        Returns:
            str: The combined stdout and stderr output of the command.
        """
        if directory is None:
            directory = self.project_directory
        pipe = subprocess.Popen(
            command,
            cwd=directory,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            stdin=subprocess.DEVNULL,
            text=True,
        )
        (out, error) = pipe.communicate()
        result = f"{out}{error}".strip()
        pipe.wait()
        if pipe.returncode != 0:
            self.logger.error(f"Command failed: {' '.join(command)}\nError: {error}")
            if check:
                raise GitCommandError(
                    f"{' '.join(command)} exited with {pipe.returncode}: {result}"
                )
        elif not self.is_mcp_server:
            self.logger.info(f"Command: {' '.join(command)}\nOutput: {result}")
        return result


def usage() -> None:
    """Log the usage instructions for the command-line tool."""
    logger = setup_logging()
    logger.info(
        "Usage: \n"
        "-h | --help           [ See usage for script ]\n"
        "-l | --discover       [ List pending updates for the project ]\n"
        "-a | --apply          [ Apply and record the given update id ]\n"
        "-s | --skip           [ Leave the given update id pending ]\n"
        "-c | --classify       [ Show scope and authorization for an update id ]\n"
        "-v | --validate       [ Check pending update files against the schema ]\n"
        "-g | --generate       [ Broadcast an update to projects matching a rule ]\n"
        "-n | --name           [ Update name used with --generate ]\n"
        "-T | --template       [ Markdown template used with --generate ]\n"
        "-m | --migrate        [ Move legacy updates into project stores ]\n"
        "-p | --project        [ Project directory - Default current directory ]\n"
        "-k | --toolkit        [ Toolkit directory holding the central registry ]\n"
        "-A | --agent          [ Agent name recorded in the ledger ]\n"
        "-r | --role           [ planner or builder - Default builder ]\n"
        "--strict              [ Only let a role apply updates of its own scope ]\n"
        "--dry-run             [ Report without writing ]\n"
        "--no-commit           [ Do not commit migrated updates ]\n"
        "\n"
        "update-manager \n\t"
        "--project '/home/user/projects/web-app' \n\t"
        "--toolkit '/home/user/toolkit' \n\t"
        "--apply '2026-01-01-fix'"
    )


def update_manager(argv: list) -> None:
    """
    Process command-line arguments and run update queue operations.

    Args:
        argv (list): List of command-line arguments.

    Exits:
        With status 1 when an operation reports an error or validation fails,
        with status 2 on invalid arguments.
    """
    logger = setup_logging()
    settings = {}
    actions = []
    generate_rule = None
    name = None
    template = None
    dry_run = False
    commit = True
    try:
        opts, args = getopt.getopt(
            argv,
            "hlvma:s:c:g:n:T:p:k:A:r:",
            [
                "help",
                "discover",
                "validate",
                "migrate",
                "apply=",
                "skip=",
                "classify=",
                "generate=",
                "name=",
                "template=",
                "project=",
                "toolkit=",
                "agent=",
                "role=",
                "strict",
                "dry-run",
                "no-commit",
            ],
        )
    except getopt.GetoptError:
        usage()
        sys.exit(2)
    for opt, arg in opts:
        if opt in ("-h", "--help"):
            usage()
            sys.exit()
        elif opt in ("-l", "--discover"):
            actions.append(("discover", None))
        elif opt in ("-v", "--validate"):
            actions.append(("validate", None))
        elif opt in ("-m", "--migrate"):
            actions.append(("migrate", None))
        elif opt in ("-a", "--apply"):
            actions.append(("apply", arg))
        elif opt in ("-s", "--skip"):
            actions.append(("skip", arg))
        elif opt in ("-c", "--classify"):
            actions.append(("classify", arg))
        elif opt in ("-g", "--generate"):
            generate_rule = arg
            actions.append(("generate", arg))
        elif opt in ("-n", "--name"):
            name = arg
        elif opt in ("-T", "--template"):
            template = arg
        elif opt in ("-p", "--project"):
            if os.path.isdir(arg):
                settings["project_directory"] = arg
            else:
                logger.error(f"Directory not found: {arg}")
                usage()
                sys.exit(2)
        elif opt in ("-k", "--toolkit"):
            settings["toolkit_directory"] = arg
        elif opt in ("-A", "--agent"):
            settings["agent"] = arg
        elif opt in ("-r", "--role"):
            if arg not in [r.value for r in Role]:
                logger.error(f"Unknown role: {arg}")
                usage()
                sys.exit(2)
            settings["role"] = arg
        elif opt == "--strict":
            settings["scope_policy"] = ScopePolicy.STRICT.value
        elif opt == "--dry-run":
            dry_run = True
        elif opt == "--no-commit":
            commit = False

    if generate_rule and not name:
        logger.error("--generate requires --name")
        usage()
        sys.exit(2)

    manager = UpdateManager(**settings)
    failed = False
    for action, arg in actions:
        if action == "discover":
            for update in manager.discover():
                logger.info(
                    f"[{update.source}] {update.id} "
                    f"(priority: {update.record.priority}, "
                    f"scope: {update.classification.scope}/{update.classification.source}) "
                    f"{update.record.title}"
                )
            continue
        if action == "validate":
            report = manager.validate_updates()
            logger.info(f"Validated {len(report.checked)} update file(s)")
            failed = failed or not report.ok
            continue
        if action == "apply":
            result = manager.apply_update(arg)
        elif action == "skip":
            result = manager.skip_update(arg)
        elif action == "classify":
            result = manager.classify_update(arg)
        elif action == "generate":
            result = manager.generate_updates(
                rule_id=arg, name=name, template_file=template, dry_run=dry_run
            )
        else:
            result = manager.migrate_legacy_updates(dry_run=dry_run, commit=commit)
        logger.info(f"{action}: {result.status}\n{result.model_dump_json(indent=2)}")
        if result.status == "redirected":
            logger.warning(result.error.message)
        elif result.error:
            logger.error(result.error.message)
            failed = True
    if failed:
        sys.exit(1)


def main():
    """
    Entry point for the command-line tool.

    Exits:
        If insufficient arguments are provided, displays usage and exits.
    """
    logger = setup_logging()
    if len(sys.argv) < 2:
        logger.error("Insufficient arguments provided")
        usage()
        sys.exit(2)
    update_manager(sys.argv[1:])


if __name__ == "__main__":
    main()
