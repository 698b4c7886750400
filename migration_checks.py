"""
Migration checks

Filtering, warning detection, auto-fixing and dependency ordering for the
resources exported from a Port organization. Everything here works on the
records from port_resources and never touches the network or the filesystem.
"""

import re
from dataclasses import dataclass, field, replace
from typing import Dict, Iterable, Iterator, List, Optional, Set, Tuple

from port_resources import (
    Action,
    Blueprint,
    Integration,
    Page,
    Relation,
    is_system_owned,
)


ENTITY_PAGE_TYPE = 'entity'
FIXED_ENTITY_PAGE_TYPE = 'blueprint-entities'
PATTERN_KINDS = ('integration', 'blueprint', 'page')


# ---------------------------------------------------------------------------
# Filtering
# ---------------------------------------------------------------------------

@dataclass
class FilterOptions:
    exclude_github_integrations: bool = False
    exclude_system_blueprints: bool = False
    exclude_ai_pages: bool = False
    exclude_patterns: List[str] = field(default_factory=list)


def _glob_to_regex(glob: str) -> re.Pattern:
    parts = [re.escape(part) for part in glob.split('*')]
    return re.compile('^' + '.*'.join(parts) + '$', re.IGNORECASE)


def match_exclude_pattern(pattern: str, kind: str, *values: str) -> bool:
    """Check if a "<kind>:<glob>" exclude pattern matches any of the given values

    The glob only understands ``*`` and is matched against the whole value,
    ignoring case. Patterns without exactly one ``:`` never match.
    """
    if pattern.count(':') != 1:
        return False
    pattern_kind, glob = pattern.split(':')
    if pattern_kind.strip().lower() != kind.lower():
        return False
    regex = _glob_to_regex(glob.strip())
    return any(value is not None and regex.match(value) for value in values)


def is_valid_exclude_pattern(pattern: str) -> bool:
    """Check if an exclude pattern has the "<kind>:<glob>" shape with a known kind"""
    if pattern.count(':') != 1:
        return False
    pattern_kind = pattern.split(':')[0].strip().lower()
    return pattern_kind in PATTERN_KINDS


def _excluded_by_patterns(patterns: Iterable[str], kind: str, *values: str) -> bool:
    return any(match_exclude_pattern(pattern, kind, *values) for pattern in patterns)


def filter_integrations(integrations: List[Integration], options: FilterOptions) -> List[Integration]:
    """Drop GitHub integrations and integrations matched by an exclude pattern"""
    kept = []
    for integration in integrations:
        if options.exclude_github_integrations and integration.is_github:
            continue
        if _excluded_by_patterns(options.exclude_patterns, 'integration',
                                 integration.identifier, integration.integration_type):
            continue
        kept.append(integration)
    return kept


def filter_blueprints(blueprints: List[Blueprint], options: FilterOptions) -> List[Blueprint]:
    """Drop system blueprints (when asked) and blueprints matched by an exclude pattern"""
    kept = []
    for blueprint in blueprints:
        if options.exclude_system_blueprints and is_system_owned(blueprint.identifier):
            continue
        if _excluded_by_patterns(options.exclude_patterns, 'blueprint', blueprint.identifier):
            continue
        kept.append(blueprint)
    return kept


def filter_pages(pages: List[Page], options: FilterOptions) -> List[Page]:
    """Drop AI agent pages and pages matched by an exclude pattern

    System and virtual pages are passed through untouched; the import
    generator is responsible for skipping them.
    """
    kept = []
    for page in pages:
        if page.is_system:
            kept.append(page)
            continue
        if options.exclude_ai_pages and page.has_ai_agent_widget():
            continue
        if _excluded_by_patterns(options.exclude_patterns, 'page', page.identifier):
            continue
        kept.append(page)
    return kept


# ---------------------------------------------------------------------------
# Warning detection
# ---------------------------------------------------------------------------

GITHUB_INTEGRATIONS = 'github_integrations'
SYSTEM_BLUEPRINTS = 'system_blueprints'
AI_AGENT_PAGES = 'ai_agent_pages'
PAGE_ORDERING = 'page_ordering'
NULL_RELATION_TITLES = 'null_relation_titles'
AUTOMATION_ACTIONS = 'automation_actions'
ENTITY_PAGE_TYPES = 'entity_page_types'

WARNING_CATEGORIES = (
    GITHUB_INTEGRATIONS,
    SYSTEM_BLUEPRINTS,
    AI_AGENT_PAGES,
    PAGE_ORDERING,
    NULL_RELATION_TITLES,
    AUTOMATION_ACTIONS,
    ENTITY_PAGE_TYPES,
)

WARNING_TITLES = {
    GITHUB_INTEGRATIONS: 'GitHub integrations (require a new GitHub App installation)',
    SYSTEM_BLUEPRINTS: 'System blueprints (cannot be created, only imported)',
    AI_AGENT_PAGES: 'Pages with AI agent widgets (agents must exist in the target)',
    PAGE_ORDERING: 'Pages ordered after a page that is not imported',
    NULL_RELATION_TITLES: 'Blueprint relations with a null title',
    AUTOMATION_ACTIONS: 'Automations (triggers reference the source organization)',
    ENTITY_PAGE_TYPES: 'Pages with the unsupported "entity" type',
}


@dataclass
class MigrationWarning:
    category: str
    resource_type: str
    resource_id: str
    message: str


@dataclass
class MigrationWarnings:
    github_integrations: List[MigrationWarning] = field(default_factory=list)
    system_blueprints: List[MigrationWarning] = field(default_factory=list)
    ai_agent_pages: List[MigrationWarning] = field(default_factory=list)
    page_ordering: List[MigrationWarning] = field(default_factory=list)
    null_relation_titles: List[MigrationWarning] = field(default_factory=list)
    automation_actions: List[MigrationWarning] = field(default_factory=list)
    entity_page_types: List[MigrationWarning] = field(default_factory=list)

    def by_category(self) -> List[Tuple[str, List[MigrationWarning]]]:
        return [(category, getattr(self, category)) for category in WARNING_CATEGORIES]

    def total(self) -> int:
        return sum(len(warnings) for _, warnings in self.by_category())


def importable_page_ids(pages: Iterable[Page]) -> Set[str]:
    """Identifiers of every page that is neither a system nor a virtual page"""
    return {page.identifier for page in pages if not page.is_system}


def detect_migration_warnings(integrations: List[Integration], blueprints: List[Blueprint],
                              pages: List[Page], actions: List[Action],
                              imported_page_ids: Optional[Set[str]] = None) -> MigrationWarnings:
    """Scan the exported resources for anything that will not migrate cleanly

    Expects the unfiltered resources so the report reflects the whole source
    organization. ``imported_page_ids`` defaults to every non-system page.
    """
    if imported_page_ids is None:
        imported_page_ids = importable_page_ids(pages)
    warnings = MigrationWarnings()

    for integration in integrations:
        if integration.is_github:
            warnings.github_integrations.append(MigrationWarning(
                GITHUB_INTEGRATIONS, 'integration', integration.identifier,
                f"GitHub integration '{integration.identifier}' is bound to a GitHub App installation "
                f"of the source organization and must be reinstalled in the target",
            ))

    for blueprint in blueprints:
        if is_system_owned(blueprint.identifier):
            warnings.system_blueprints.append(MigrationWarning(
                SYSTEM_BLUEPRINTS, 'blueprint', blueprint.identifier,
                f"System blueprint '{blueprint.identifier}' already exists in every organization; "
                f"it is imported as port_system_blueprint and cannot be created",
            ))

    for page in pages:
        if page.is_system:
            continue
        if page.has_ai_agent_widget():
            warnings.ai_agent_pages.append(MigrationWarning(
                AI_AGENT_PAGES, 'page', page.identifier,
                f"Page '{page.identifier}' has an AI agent widget; the agent must exist in the target first",
            ))
        if page.after and page.after not in imported_page_ids:
            warnings.page_ordering.append(MigrationWarning(
                PAGE_ORDERING, 'page', page.identifier,
                f"Page '{page.identifier}' is ordered after '{page.after}', which is not being imported",
            ))

    for blueprint in blueprints:
        for key, relation in blueprint.relations.items():
            if relation.has_null_title:
                warnings.null_relation_titles.append(MigrationWarning(
                    NULL_RELATION_TITLES, 'blueprint', f"{blueprint.identifier}.{key}",
                    f"Relation '{key}' on blueprint '{blueprint.identifier}' has a null title",
                ))

    for action in actions:
        if action.automation_trigger is not None:
            warnings.automation_actions.append(MigrationWarning(
                AUTOMATION_ACTIONS, 'action', action.identifier,
                f"Automation '{action.identifier}' has a trigger that may reference source-organization resources",
            ))

    for page in pages:
        if not page.is_system and page.type == ENTITY_PAGE_TYPE:
            warnings.entity_page_types.append(MigrationWarning(
                ENTITY_PAGE_TYPES, 'page', page.identifier,
                f"Page '{page.identifier}' has type \"entity\", which the provider rejects; "
                f"use \"{FIXED_ENTITY_PAGE_TYPE}\" instead",
            ))

    return warnings


# ---------------------------------------------------------------------------
# Auto-fix
# ---------------------------------------------------------------------------

@dataclass
class RelationTitleFix:
    blueprint: str
    relation: str
    new_title: str


@dataclass
class AutoFixResult:
    entity_page_types_fixed: List[str] = field(default_factory=list)
    page_ordering_fixed: List[str] = field(default_factory=list)
    relation_titles_fixed: List[RelationTitleFix] = field(default_factory=list)

    def total(self) -> int:
        return len(self.entity_page_types_fixed) + len(self.page_ordering_fixed) + len(self.relation_titles_fixed)

    def merge(self, other: 'AutoFixResult') -> 'AutoFixResult':
        return AutoFixResult(
            entity_page_types_fixed=self.entity_page_types_fixed + other.entity_page_types_fixed,
            page_ordering_fixed=self.page_ordering_fixed + other.page_ordering_fixed,
            relation_titles_fixed=self.relation_titles_fixed + other.relation_titles_fixed,
        )


def humanize(key: str) -> str:
    """Turn a relation key into a title: ``service_owner`` -> ``Service Owner``"""
    words = [word for word in re.split(r'[-_]', key) if word]
    return ' '.join(word.capitalize() for word in words)


def fix_pages(pages: List[Page], imported_page_ids: Set[str]) -> Tuple[List[Page], AutoFixResult]:
    """Rewrite entity page types and drop dangling ``after`` references

    Returns new page records; system and virtual pages are returned as the
    very same objects.
    """
    result = AutoFixResult()
    fixed_pages = []
    for page in pages:
        if page.is_system:
            fixed_pages.append(page)
            continue
        changes = {}
        if page.type == ENTITY_PAGE_TYPE:
            changes['type'] = FIXED_ENTITY_PAGE_TYPE
            result.entity_page_types_fixed.append(page.identifier)
        if page.after and page.after not in imported_page_ids:
            changes['after'] = None
            result.page_ordering_fixed.append(page.identifier)
        fixed_pages.append(replace(page, **changes) if changes else page)
    return fixed_pages, result


def fix_blueprints(blueprints: List[Blueprint]) -> Tuple[List[Blueprint], AutoFixResult]:
    """Give every relation with a null title a title derived from its key

    System blueprints are left alone; their schema belongs to the platform.
    """
    result = AutoFixResult()
    fixed_blueprints = []
    for blueprint in blueprints:
        if (is_system_owned(blueprint.identifier)
                or not any(relation.has_null_title for relation in blueprint.relations.values())):
            fixed_blueprints.append(blueprint)
            continue
        relations: Dict[str, Relation] = {}
        for key, relation in blueprint.relations.items():
            if relation.has_null_title:
                new_title = humanize(key)
                relations[key] = replace(relation, title=new_title)
                result.relation_titles_fixed.append(RelationTitleFix(blueprint.identifier, key, new_title))
            else:
                relations[key] = relation
        fixed_blueprints.append(replace(blueprint, relations=relations))
    return fixed_blueprints, result


# ---------------------------------------------------------------------------
# Dependency ordering
# ---------------------------------------------------------------------------

@dataclass
class BlueprintDependency:
    blueprint: str
    depends_on: List[str]


def blueprint_dependencies(blueprints: List[Blueprint]) -> List[BlueprintDependency]:
    """Direct dependencies between user blueprints, derived from their relations

    Targets that are system blueprints, the blueprint itself, or not part of
    the given blueprints are ignored. Blueprints without any remaining
    dependency are left out.
    """
    known = {blueprint.identifier for blueprint in blueprints}
    dependencies = []
    for blueprint in blueprints:
        if is_system_owned(blueprint.identifier) or not blueprint.relations:
            continue
        depends_on: List[str] = []
        for relation in blueprint.relations.values():
            target = relation.target
            if (target in known and not is_system_owned(target)
                    and target != blueprint.identifier and target not in depends_on):
                depends_on.append(target)
        if depends_on:
            dependencies.append(BlueprintDependency(blueprint.identifier, depends_on))
    return dependencies


def find_dependency_cycles(dependencies: List[BlueprintDependency]) -> List[Tuple[str, ...]]:
    """Find relation cycles among blueprint dependencies

    Each cycle is returned once as a closed path, e.g. ``('a', 'b', 'a')``,
    rotated so it starts at its smallest identifier.
    """
    children: Dict[str, List[str]] = {dep.blueprint: list(dep.depends_on) for dep in dependencies}
    state: Dict[str, int] = {}
    path: List[str] = []
    cycles: Dict[Tuple[str, ...], None] = {}

    for root in sorted(children):
        if state.get(root, 0) != 0:
            continue
        # (node, remaining children) pairs in place of recursion
        state[root] = 1
        path.append(root)
        stack: List[Tuple[str, Iterator[str]]] = [(root, iter(children.get(root, [])))]
        while stack:
            node, remaining = stack[-1]
            child = next(remaining, None)
            if child is None:
                stack.pop()
                path.pop()
                state[node] = 2
                continue
            child_state = state.get(child, 0)
            if child_state == 0:
                state[child] = 1
                path.append(child)
                stack.append((child, iter(children.get(child, []))))
            elif child_state == 1:
                loop = path[path.index(child):]
                start = loop.index(min(loop))
                rotated = loop[start:] + loop[:start]
                cycles[tuple(rotated + [rotated[0]])] = None
    return list(cycles)
