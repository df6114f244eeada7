#!/usr/bin/python
# coding: utf-8
"""
Reading, writing and schema checks for pending update records.

A record is a markdown document with YAML frontmatter::

    ---
    createdBy: planner
    date: 2026-01-01
    priority: normal
    type: schema
    scope: planning
    ---

    # Title

    ## What to do
    ## Files affected
    ## Why
    ## Verification

The record id is the filename stem, e.g. ``2026-01-01-fix``.
"""

import re
import logging
import datetime
import yaml

from pathlib import Path
from typing import List, Optional, Union
from pydantic import ValidationError

from update_manager.models import (
    DEFAULT_UPDATE_TYPE,
    REQUIRED_SECTIONS,
    Priority,
    Scope,
    UpdateRecord,
    UpdateSource,
    ValidationIssue,
    ValidationReport,
)
from update_manager.utils import (
    FRONTMATTER_PATTERN,
    atomic_write_text,
    slugify,
    split_frontmatter,
)

logger = logging.getLogger(__name__)

README_NAME = "README.md"
REQUIRED_FRONTMATTER = ["createdBy", "date", "priority", "type"]
HEADING_PATTERN = re.compile(r"^(#{1,2})\s+(.*?)\s*#*\s*$")


class UpdateRecordError(ValueError):
    """Raised when a pending update file cannot be read as a record."""


def update_id(name: str, date: Optional[Union[str, datetime.date]] = None) -> str:
    """Build a record id of the form YYYY-MM-DD-<slug>."""
    if date is None:
        date = datetime.date.today()
    if isinstance(date, datetime.date):
        date = date.strftime("%Y-%m-%d")
    slug = slugify(name)
    if not slug:
        raise ValueError(f"Cannot derive an update id from '{name}'")
    return f"{date}-{slug}"


def parse_sections(body: str):
    """Return the document title and its ## sections in order of appearance."""
    title = ""
    sections = {}
    current = None
    lines = []
    for line in body.splitlines():
        match = HEADING_PATTERN.match(line)
        if match and len(match.group(1)) == 1 and not title and current is None:
            title = match.group(2)
            continue
        if match and len(match.group(1)) == 2:
            if current is not None:
                sections[current] = "\n".join(lines).strip()
            current = match.group(2)
            lines = []
            continue
        if current is not None:
            lines.append(line)
    if current is not None:
        sections[current] = "\n".join(lines).strip()
    return title, sections


def parse_record(
    content: str,
    record_id: Optional[str] = None,
    path: Optional[Union[str, Path]] = None,
    source: Union[UpdateSource, str] = UpdateSource.PROJECT,
) -> UpdateRecord:
    """
    Parse the text of a pending update file.

    Args:
        content (str): The markdown document.
        record_id (str, optional): Explicit id. Defaults to the stem of path.
        path (str | Path, optional): File the content came from.
        source (UpdateSource, optional): Store the file belongs to.

    Returns:
        UpdateRecord: The parsed record.

    Raises:
        UpdateRecordError: If the frontmatter is missing, malformed or holds
            values outside the allowed enumerations.
    """
    if record_id is None:
        if path is None:
            raise UpdateRecordError("Either record_id or path is required")
        record_id = Path(path).stem
    try:
        frontmatter, body = split_frontmatter(content)
    except ValueError as e:
        raise UpdateRecordError(f"{record_id}: {e}")
    if frontmatter is None:
        raise UpdateRecordError(f"{record_id}: missing frontmatter block")

    title, sections = parse_sections(body)
    update_type = frontmatter.get("updateType", frontmatter.get("type"))
    try:
        return UpdateRecord(
            id=record_id,
            created_by=frontmatter.get("createdBy") or "",
            date=frontmatter.get("date"),
            priority=frontmatter.get("priority") or Priority.NORMAL.value,
            update_type=update_type,
            scope=frontmatter.get("scope") or None,
            affinity_rule=frontmatter.get("affinityRule"),
            title=title,
            sections=sections,
            source=source,
            path=str(path) if path is not None else None,
        )
    except ValidationError as e:
        raise UpdateRecordError(f"{record_id}: invalid frontmatter: {e}")


def load_record(
    path: Union[str, Path], source: Union[UpdateSource, str] = UpdateSource.PROJECT
) -> UpdateRecord:
    path = Path(path)
    with open(path, "r", encoding="utf-8") as record_file:
        content = record_file.read()
    return parse_record(content, path=path, source=source)


def list_record_files(directory: Union[str, Path]) -> List[Path]:
    """Markdown files of a store, sorted by name. A missing store is empty."""
    directory = Path(directory)
    if not directory.is_dir():
        return []
    return sorted(
        p for p in directory.glob("*.md") if p.is_file() and p.name != README_NAME
    )


def ensure_update_type(content: str, update_type: str = DEFAULT_UPDATE_TYPE) -> str:
    """Add an updateType field to the frontmatter of a record that has none."""
    match = FRONTMATTER_PATTERN.match(content)
    if not match:
        return content
    frontmatter = match.group(1)
    if re.search(r"^updateType\s*:", frontmatter, re.MULTILINE):
        return content
    added = yaml.safe_dump({"updateType": update_type}, allow_unicode=True).rstrip("\n")
    new_frontmatter = frontmatter.rstrip() + "\n" + added
    return f"---\n{new_frontmatter}\n---\n" + content[match.end() :]


def write_record(record: UpdateRecord, directory: Union[str, Path]) -> Path:
    target = Path(directory) / f"{record.id}.md"
    atomic_write_text(target, record.to_markdown())
    logger.info(f"Wrote update {record.id} to {target}")
    return target


def validate_record_text(
    content: str, name: str = "<record>", require_scope: bool = False
) -> List[ValidationIssue]:
    """
    Check a record against the pending update schema.

    Unlike parse_record this collects every problem instead of stopping at the
    first one, so it can be used to lint a whole store.
    """
    issues = []
    if not content.startswith("---"):
        return [ValidationIssue(path=name, message="missing frontmatter block")]
    try:
        frontmatter, body = split_frontmatter(content)
    except ValueError as e:
        return [ValidationIssue(path=name, message=str(e))]
    if frontmatter is None:
        return [ValidationIssue(path=name, message="malformed frontmatter block")]

    required = list(REQUIRED_FRONTMATTER)
    if require_scope:
        required.append("scope")
    for key in required:
        value = frontmatter.get(key)
        if key == "type" and not value:
            value = frontmatter.get("updateType")
        if value is None or value == "":
            issues.append(
                ValidationIssue(path=name, message=f"missing frontmatter field '{key}'")
            )

    scope = frontmatter.get("scope")
    allowed_scope = [s.value for s in Scope]
    if scope and str(scope).strip().lower() not in allowed_scope:
        issues.append(
            ValidationIssue(
                path=name,
                message=f"invalid scope '{scope}' (expected one of: {', '.join(allowed_scope)})",
            )
        )

    priority = frontmatter.get("priority")
    allowed_priority = [p.value for p in Priority]
    if priority and str(priority).strip().lower() not in allowed_priority:
        issues.append(
            ValidationIssue(
                path=name,
                message=f"invalid priority '{priority}' (expected one of: {', '.join(allowed_priority)})",
            )
        )

    _, sections = parse_sections(body)
    for section in REQUIRED_SECTIONS:
        if section not in sections:
            issues.append(
                ValidationIssue(path=name, message=f"missing section '## {section}'")
            )
    return issues


def validate_store(
    directory: Union[str, Path], require_scope: bool = False
) -> ValidationReport:
    report = ValidationReport()
    for path in list_record_files(directory):
        with open(path, "r", encoding="utf-8") as record_file:
            content = record_file.read()
        report.checked.append(str(path))
        report.issues.extend(
            validate_record_text(content, name=path.name, require_scope=require_scope)
        )
    return report
