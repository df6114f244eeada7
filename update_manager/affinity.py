#!/usr/bin/python
# coding: utf-8
"""
Affinity rules decide whether a centrally broadcast update applies to a project.

Evaluation is fail-closed: a path that does not resolve in the project
configuration never matches, except for the ``always`` and ``notExists``
conditions which do not need a value.
"""

import logging

from pathlib import Path
from typing import Any, Dict, Union
from pydantic import ValidationError

from update_manager.models import AffinityRule
from update_manager.utils import MISSING, get_nested, load_json_file

logger = logging.getLogger(__name__)

CONDITIONS = {"always", "equals", "contains", "hasValueWhere", "exists", "notExists"}


def _strict_equals(actual: Any, expected: Any) -> bool:
    # bool is a subclass of int, so True == 1 must be ruled out by type
    if type(actual) is not type(expected):
        return False
    return actual == expected


def matches_where(item: Any, where: Dict[str, Any]) -> bool:
    """Check that every field in where matches; a null expectation means the field is absent."""
    if not isinstance(item, dict):
        return False
    for key, expected in where.items():
        actual = get_nested(item, key)
        if expected is None:
            if actual is not MISSING and actual is not None:
                return False
        elif actual is MISSING or not _strict_equals(actual, expected):
            return False
    return True


def evaluate_rule(rule: Union[AffinityRule, Dict[str, Any]], config: Any) -> bool:
    """
    Evaluate an affinity rule against a project configuration document.

    Args:
        rule (AffinityRule | dict): The rule, or its raw JSON form.
        config (Any): The parsed project configuration (docs/project.json).

    Returns:
        bool: True when the project matches the rule.
    """
    if isinstance(rule, dict):
        try:
            rule = AffinityRule(**rule)
        except ValidationError as e:
            logger.warning(f"Unevaluable affinity rule {rule}: {e}")
            return False

    condition = rule.condition
    if condition == "always":
        return True
    if condition not in CONDITIONS:
        logger.warning(f"Unknown affinity condition '{condition}' in rule '{rule.id}'")
        return False
    if not rule.path:
        return False

    value = get_nested(config, rule.path)

    if condition == "notExists":
        return value is MISSING or value is None
    if value is MISSING:
        return False
    if condition == "exists":
        return value is not None
    if condition == "equals":
        return _strict_equals(value, rule.value)
    if condition == "contains":
        if isinstance(value, list):
            return any(_strict_equals(item, rule.value) for item in value)
        return False
    if condition == "hasValueWhere":
        if isinstance(value, dict):
            candidates = list(value.values())
        elif isinstance(value, list):
            candidates = value
        else:
            return False
        return any(matches_where(item, rule.where) for item in candidates)
    return False


def parse_rules(data: Any) -> Dict[str, AffinityRule]:
    """
    Build a name to rule mapping from an affinity rules document.

    Two layouts are accepted::

        {"rules": [{"id": "desktop-apps", "match": {"condition": ...}}]}
        {"desktop-apps": {"condition": ..., "path": ...}}

    Entries that do not describe a valid rule are logged and left out, so any
    update referencing them fails to match.
    """
    rules = {}
    if not isinstance(data, dict):
        return rules
    if isinstance(data.get("rules"), list):
        items = []
        for raw in data["rules"]:
            if not isinstance(raw, dict) or "id" not in raw:
                logger.warning(f"Skipping affinity rule without id: {raw}")
                continue
            match = raw.get("match", raw)
            items.append((raw["id"], {**match, "description": raw.get("description")}))
    else:
        items = list(data.items())

    for name, body in items:
        if not isinstance(body, dict):
            logger.warning(f"Skipping affinity rule '{name}': not an object")
            continue
        body = {k: v for k, v in body.items() if k != "id"}
        try:
            rules[name] = AffinityRule(id=name, **body)
        except ValidationError as e:
            logger.warning(f"Skipping affinity rule '{name}': {e}")
    return rules


def load_rules(path: Union[str, Path]) -> Dict[str, AffinityRule]:
    return parse_rules(load_json_file(path, default={}))
