import re
import datetime

from enum import Enum
from typing import List, Optional, Any, Dict
from pydantic import BaseModel, ConfigDict, Field, field_validator

from update_manager.utils import render_frontmatter

REQUIRED_SECTIONS = ["What to do", "Files affected", "Why", "Verification"]
DEFAULT_UPDATE_TYPE = "schema"


class Priority(str, Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


class Scope(str, Enum):
    PLANNING = "planning"
    IMPLEMENTATION = "implementation"
    MIXED = "mixed"


class UpdateSource(str, Enum):
    """Where a discovered record was found, in discovery priority order."""

    PROJECT = "project"
    REGISTRY = "registry"
    LEGACY = "legacy"


class ClassificationSource(str, Enum):
    EXPLICIT = "explicit"
    INFERRED = "inferred"


class UpdateRecord(BaseModel):
    """One requested change, as written to a pending update markdown file."""

    model_config = ConfigDict(populate_by_name=True, use_enum_values=True)

    id: str = Field(..., description="Date and slug derived from the filename")
    created_by: str = Field(
        default="", alias="createdBy", description="Agent that produced the update"
    )
    date: str = Field(default="", description="Creation date as YYYY-MM-DD")
    priority: Priority = Field(default="normal", validate_default=True)
    update_type: Optional[str] = Field(
        default=None,
        alias="updateType",
        description="Free-form classification used for ledger bookkeeping",
    )
    scope: Optional[Scope] = Field(
        default=None, description="planning, implementation or mixed"
    )
    affinity_rule: Optional[str] = Field(
        default=None,
        alias="affinityRule",
        description="Rule that selected the project for a broadcast update",
    )
    title: str = Field(default="")
    sections: Dict[str, str] = Field(
        default_factory=dict, description="Body sections keyed by their ## heading"
    )
    source: UpdateSource = Field(default="project", validate_default=True)
    path: Optional[str] = Field(default=None, description="File the record was read from")

    @field_validator("date", mode="before")
    def convert_date(cls, v):
        if v is None:
            return ""
        if isinstance(v, (datetime.date, datetime.datetime)):
            return v.strftime("%Y-%m-%d")
        return str(v)

    @field_validator("created_by", "update_type", mode="before")
    def stringify(cls, v):
        if v is None:
            return v
        return str(v)

    @field_validator("priority", "scope", mode="before")
    def normalize_enum(cls, v):
        if isinstance(v, str):
            return v.strip().lower()
        return v

    @property
    def what_to_do(self) -> str:
        return self.sections.get("What to do", "")

    @property
    def why(self) -> str:
        return self.sections.get("Why", "")

    @property
    def verification(self) -> str:
        return self.sections.get("Verification", "")

    @property
    def files_affected(self) -> List[str]:
        """Paths listed as bullets under the Files affected section."""
        paths = []
        for line in self.sections.get("Files affected", "").splitlines():
            line = line.strip()
            if not line or line[0] not in "-*+":
                continue
            item = line[1:].strip()
            quoted = re.search(r"`([^`]+)`", item)
            if quoted:
                paths.append(quoted.group(1).strip())
            elif item:
                paths.append(item.split()[0])
        return paths

    @property
    def ledger_type(self) -> str:
        return self.update_type or DEFAULT_UPDATE_TYPE

    def frontmatter(self) -> Dict[str, Any]:
        data = {
            "createdBy": self.created_by,
            "date": self.date,
            "priority": self.priority,
            "type": self.ledger_type,
        }
        if self.scope:
            data["scope"] = self.scope
        if self.affinity_rule:
            data["affinityRule"] = self.affinity_rule
        return data

    def to_markdown(self) -> str:
        """Render the record in the pending update file format."""
        md = [render_frontmatter(self.frontmatter())]
        md.append(f"# {self.title or self.id}")
        md.append("")
        headings = REQUIRED_SECTIONS + [
            h for h in self.sections if h not in REQUIRED_SECTIONS
        ]
        for heading in headings:
            md.append(f"## {heading}")
            md.append("")
            body = self.sections.get(heading, "").strip()
            if body:
                md.append(body)
                md.append("")
        return "\n".join(md)


class LedgerEntry(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(..., description="Id of the applied update")
    applied_at: str = Field(..., alias="appliedAt", description="ISO 8601 timestamp")
    applied_by: str = Field(..., alias="appliedBy", description="Applying agent")
    update_type: str = Field(default=DEFAULT_UPDATE_TYPE, alias="updateType")


class AppliedLedger(BaseModel):
    """Per-project record of update ids that have already been processed."""

    model_config = ConfigDict(populate_by_name=True)

    schema_version: int = Field(default=1, alias="schemaVersion")
    applied: List[LedgerEntry] = Field(default_factory=list)

    @field_validator("applied", mode="before")
    def ensure_list_entries(cls, v):
        if v is None:
            return []
        if isinstance(v, list):
            return v
        return [v]

    def ids(self) -> List[str]:
        return [entry.id for entry in self.applied]

    def contains(self, update_id: str) -> bool:
        return any(entry.id == update_id for entry in self.applied)

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)


class AffinityRule(BaseModel):
    id: str = Field(default="", description="Rule name referenced by updates")
    description: Optional[str] = Field(default=None)
    condition: str = Field(
        ...,
        description="always, equals, contains, hasValueWhere, exists or notExists",
    )
    path: Optional[str] = Field(
        default=None, description="Dot path into the project configuration"
    )
    value: Any = Field(default=None)
    where: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("where", mode="before")
    def ensure_where(cls, v):
        if v is None:
            return {}
        return v


class RegistryEntry(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: Optional[str] = Field(default=None)
    file: str = Field(..., description="Record file relative to the toolkit root")
    affinity_rule: Optional[str] = Field(default=None, alias="affinityRule")


class UpdateRegistry(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    schema_version: int = Field(default=1, alias="schemaVersion")
    updates: List[RegistryEntry] = Field(default_factory=list)


class ScopeClassification(BaseModel):
    """Scope of an update, tagged with whether it was declared or guessed."""

    model_config = ConfigDict(use_enum_values=True)

    scope: Scope
    source: ClassificationSource
    planning_paths: List[str] = Field(default_factory=list)
    implementation_paths: List[str] = Field(default_factory=list)

    @property
    def is_explicit(self) -> bool:
        return self.source == ClassificationSource.EXPLICIT.value


class DiscoveredUpdate(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    record: UpdateRecord
    source: UpdateSource
    classification: ScopeClassification

    @property
    def id(self) -> str:
        return self.record.id


class ProjectEntry(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    path: str
    has_agent_system: bool = Field(default=False, alias="hasAgentSystem")


class UpdateError(BaseModel):
    """Represents an update operation that could not be completed."""

    message: str = Field(..., description="Human readable reason")
    code: str = Field(
        ...,
        description="not_found, redirect_required, apply_failed or double_application",
    )


class UpdateMetadata(BaseModel):
    operation: str = Field(..., description="The operation performed")
    project: str = Field(..., description="The project directory")
    update_id: Optional[str] = Field(default=None)
    timestamp: str = Field(..., description="ISO formatted timestamp of execution")


class UpdateResult(BaseModel):
    """Result of an update queue operation."""

    status: str = Field(
        ...,
        description="applied, skipped, redirected, error, or an operation specific status",
    )
    data: Any = Field(default=None)
    error: Optional[UpdateError] = Field(default=None)
    metadata: UpdateMetadata


class ValidationIssue(BaseModel):
    path: str
    message: str


class ValidationReport(BaseModel):
    checked: List[str] = Field(default_factory=list)
    issues: List[ValidationIssue] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.issues
