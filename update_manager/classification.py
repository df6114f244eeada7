#!/usr/bin/python
# coding: utf-8

import logging

from enum import Enum
from fnmatch import fnmatch
from typing import List, Union

from update_manager.models import (
    ClassificationSource,
    Scope,
    ScopeClassification,
    UpdateRecord,
)

logger = logging.getLogger(__name__)

PLANNING_PATTERNS = [
    "docs/*",
    "*.md",
    "prd*",
    "*/prd*",
    "*registry*.json",
    "project.json",
    "*/project.json",
]

IMPLEMENTATION_PATTERNS = [
    "src/*",
    "app/*",
    "lib/*",
    "pkg/*",
    "cmd/*",
    "internal/*",
    "components/*",
    "pages/*",
    "server/*",
    "scripts/*",
    "test/*",
    "tests/*",
    "e2e/*",
    "__tests__/*",
    "migrations/*",
    "prisma/*",
    "supabase/*",
    "package.json",
    "tsconfig*.json",
    "*.config.*",
    ".env*",
    "Dockerfile*",
    "docker-compose*",
    "Makefile",
    "go.mod",
    "pyproject.toml",
    "requirements*.txt",
    "*.py",
    "*.ts",
    "*.tsx",
    "*.js",
    "*.jsx",
    "*.go",
    "*.rs",
    "*.sql",
    "*.sh",
    "*.css",
]


class Role(str, Enum):
    PLANNER = "planner"
    BUILDER = "builder"


class ScopePolicy(str, Enum):
    """
    Which consuming role may apply which scope.

    PERMISSIVE lets either role apply any scope. STRICT restricts planning
    updates to the planner and implementation updates to the builder; mixed
    updates may be applied by either.
    """

    PERMISSIVE = "permissive"
    STRICT = "strict"


def _normalize_path(path: str) -> str:
    path = path.strip().replace("\\", "/")
    while path.startswith("./"):
        path = path[2:]
    return path.lstrip("/")


def is_planning_path(path: str) -> bool:
    path = _normalize_path(path)
    return any(fnmatch(path, pattern) for pattern in PLANNING_PATTERNS)


def is_implementation_path(path: str) -> bool:
    path = _normalize_path(path)
    return any(fnmatch(path, pattern) for pattern in IMPLEMENTATION_PATTERNS)


def classify_paths(paths: List[str]) -> ScopeClassification:
    planning = []
    implementation = []
    for path in paths:
        # documentation paths win so docs/examples/foo.ts stays planning
        if is_planning_path(path):
            planning.append(path)
        elif is_implementation_path(path):
            implementation.append(path)
    if planning and not implementation:
        scope = Scope.PLANNING
    elif implementation and not planning:
        scope = Scope.IMPLEMENTATION
    else:
        scope = Scope.MIXED
    return ScopeClassification(
        scope=scope,
        source=ClassificationSource.INFERRED,
        planning_paths=planning,
        implementation_paths=implementation,
    )


def classify(record: UpdateRecord) -> ScopeClassification:
    """Use the declared scope when present, otherwise infer it from Files affected."""
    if record.scope:
        return ScopeClassification(scope=record.scope, source=ClassificationSource.EXPLICIT)
    classification = classify_paths(record.files_affected)
    logger.debug(
        f"Inferred scope {classification.scope} for {record.id} "
        f"from {len(record.files_affected)} path(s)"
    )
    return classification


def authorize(
    role: Union[Role, str],
    classification: ScopeClassification,
    policy: Union[ScopePolicy, str] = ScopePolicy.PERMISSIVE,
) -> bool:
    policy = ScopePolicy(policy)
    if policy == ScopePolicy.PERMISSIVE:
        return True
    role = Role(role)
    scope = Scope(classification.scope)
    if scope == Scope.MIXED:
        return True
    if scope == Scope.PLANNING:
        return role == Role.PLANNER
    return role == Role.BUILDER
