import json
import pytest

RECORD_TEMPLATE = """---
createdBy: {created_by}
date: {date}
priority: {priority}
type: {update_type}
{extra}---

# {title}

## What to do
1. Make the change described by the title.

## Files affected
{files}

## Why
Keeps the project in line with the toolkit.

## Verification
`jq . docs/project.json` succeeds.
"""


def record_text(
    files=("docs/prd-registry.json",),
    scope=None,
    title="Fix registry",
    update_type="schema",
    priority="normal",
    created_by="planner",
    date="2026-01-01",
    affinity_rule=None,
):
    extra = ""
    if scope:
        extra += f"scope: {scope}\n"
    if affinity_rule:
        extra += f"affinityRule: {affinity_rule}\n"
    return RECORD_TEMPLATE.format(
        created_by=created_by,
        date=date,
        priority=priority,
        update_type=update_type,
        extra=extra,
        title=title,
        files="\n".join(f"- `{f}`" for f in files),
    )


@pytest.fixture
def write_update():
    def _write(directory, update_id, **kwargs):
        directory.mkdir(parents=True, exist_ok=True)
        path = directory / f"{update_id}.md"
        path.write_text(record_text(**kwargs))
        return path

    return _write


@pytest.fixture
def project_dir(tmp_path):
    project = tmp_path / "web-app"
    (project / "docs").mkdir(parents=True)
    (project / "docs" / "project.json").write_text(
        json.dumps({"name": "web-app", "apps": ["electron", "web"]})
    )
    return project


@pytest.fixture
def config_dir(tmp_path):
    config = tmp_path / "config"
    config.mkdir()
    return config


@pytest.fixture
def toolkit_dir(tmp_path):
    toolkit = tmp_path / "toolkit"
    (toolkit / "data").mkdir(parents=True)
    (toolkit / "updates").mkdir()
    (toolkit / "data" / "update-affinity-rules.json").write_text(
        json.dumps(
            {
                "rules": [
                    {
                        "id": "desktop-apps",
                        "description": "Projects shipping an Electron app",
                        "match": {
                            "condition": "contains",
                            "path": "apps",
                            "value": "electron",
                        },
                    },
                    {"id": "everyone", "match": {"condition": "always"}},
                ]
            }
        )
    )
    return toolkit


@pytest.fixture
def add_registry_update(toolkit_dir):
    def _add(update_id, affinity_rule="desktop-apps", **kwargs):
        path = toolkit_dir / "updates" / f"{update_id}.md"
        path.write_text(record_text(**kwargs))
        registry_file = toolkit_dir / "data" / "update-registry.json"
        if registry_file.exists():
            registry = json.loads(registry_file.read_text())
        else:
            registry = {"schemaVersion": 1, "updates": []}
        entry = {"id": update_id, "file": f"updates/{update_id}.md"}
        if affinity_rule:
            entry["affinityRule"] = affinity_rule
        registry["updates"].append(entry)
        registry_file.write_text(json.dumps(registry))
        return path

    return _add
