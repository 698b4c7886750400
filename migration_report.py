"""
Migration report and remediation script rendering
"""

from typing import Dict, List, Optional, Tuple

from migration_checks import (
    ENTITY_PAGE_TYPES,
    FIXED_ENTITY_PAGE_TYPE,
    NULL_RELATION_TITLES,
    PAGE_ORDERING,
    WARNING_TITLES,
    AutoFixResult,
    BlueprintDependency,
    MigrationWarnings,
)


DEFAULT_GENERATED_CONFIG = 'generated.tf'

# Categories the auto-fix engine can correct before generation
AUTO_FIXABLE_CATEGORIES = (ENTITY_PAGE_TYPES, PAGE_ORDERING, NULL_RELATION_TITLES)

ENTITY_TYPE_SED = r's/(^|[^[:alnum:]_])type[[:space:]]*=[[:space:]]*"entity"/\1type = "blueprint-entities"/g'
NULL_EXPRESSIONS_SED = r's/(^|[^[:alnum:]_])expressions[[:space:]]*=[[:space:]]*null/\1expressions = []/g'


def _fixed_count(category: str, fixes: AutoFixResult) -> int:
    if category == ENTITY_PAGE_TYPES:
        return len(fixes.entity_page_types_fixed)
    if category == PAGE_ORDERING:
        return len(fixes.page_ordering_fixed)
    if category == NULL_RELATION_TITLES:
        return len(fixes.relation_titles_fixed)
    return 0


def _fix_status(category: str, count: int, fixes: Optional[AutoFixResult]) -> str:
    if count == 0:
        return '-'
    if category not in AUTO_FIXABLE_CATEGORIES:
        return 'manual review'
    if fixes is None:
        return 'fixable with --auto-fix'
    fixed = _fixed_count(category, fixes)
    if fixed >= count:
        return 'auto-fixed'
    if fixed == 0:
        return 'manual review'
    return f"auto-fixed {fixed}, manual review {count - fixed}"


def render_dependency_lines(dependencies: List[BlueprintDependency]) -> List[str]:
    """One annotation line per dependent blueprint"""
    return [f"# {dep.blueprint} depends on: {', '.join(dep.depends_on)}" for dep in dependencies]


def render_migration_report(resource_counts: Dict[str, int], warnings: MigrationWarnings,
                            fixes: Optional[AutoFixResult], dependencies: List[BlueprintDependency],
                            cycles: Optional[List[Tuple[str, ...]]] = None,
                            filtered_counts: Optional[Dict[str, int]] = None) -> str:
    """Render the human-facing migration report as Markdown

    ``fixes`` is None when auto-fix was not requested.
    """
    lines = ['# Port Migration Report', '']

    lines += ['## Resources', '']
    if filtered_counts is not None:
        lines += ['| Kind | Exported | Imported |', '|------|---------:|---------:|']
        for kind, count in resource_counts.items():
            lines.append(f"| {kind} | {count} | {filtered_counts.get(kind, count)} |")
    else:
        lines += ['| Kind | Count |', '|------|------:|']
        for kind, count in resource_counts.items():
            lines.append(f"| {kind} | {count} |")
    lines.append('')

    lines += ['## Warnings', '', '| Category | Count | Status |', '|----------|------:|--------|']
    for category, category_warnings in warnings.by_category():
        status = _fix_status(category, len(category_warnings), fixes)
        lines.append(f"| {WARNING_TITLES[category]} | {len(category_warnings)} | {status} |")
    lines.append('')
    lines.append(f"Total warnings: {warnings.total()}")
    lines.append('')

    for category, category_warnings in warnings.by_category():
        if not category_warnings:
            continue
        lines += [f"### {WARNING_TITLES[category]}", '']
        for warning in category_warnings:
            lines.append(f"- `{warning.resource_id}`: {warning.message}")
        lines.append('')

    lines += ['## Auto-fix', '']
    if fixes is None:
        lines += ['Auto-fix was not enabled. Re-run with `--auto-fix` to correct entity page types, '
                  'dangling page ordering and null relation titles.', '']
    elif fixes.total() == 0:
        lines += ['Auto-fix found nothing to change.', '']
    else:
        for identifier in fixes.entity_page_types_fixed:
            lines.append(f"- page `{identifier}`: type \"entity\" -> \"{FIXED_ENTITY_PAGE_TYPE}\"")
        for identifier in fixes.page_ordering_fixed:
            lines.append(f"- page `{identifier}`: dangling `after` reference removed")
        for fix in fixes.relation_titles_fixed:
            lines.append(f"- blueprint `{fix.blueprint}` relation `{fix.relation}`: title set to \"{fix.new_title}\"")
        lines.append('')

    manual = [category for category, category_warnings in warnings.by_category()
              if category_warnings and _fix_status(category, len(category_warnings), fixes) != 'auto-fixed']
    lines += ['## Manual review', '']
    if manual:
        for category in manual:
            lines.append(f"- {WARNING_TITLES[category]}")
    else:
        lines.append('Nothing left for manual review.')
    lines.append('')

    lines += ['## Blueprint dependencies', '']
    if dependencies:
        lines.append('Create blueprints in an order that satisfies these direct dependencies:')
        lines += ['', '```'] + render_dependency_lines(dependencies) + ['```']
    else:
        lines.append('No dependencies between user blueprints.')
    lines.append('')

    if cycles:
        lines += ['## Dependency cycles', '',
                  'These blueprints relate to each other in a cycle; break one relation, create the '
                  'blueprints, then add the relation back:', '']
        for cycle in cycles:
            lines.append(f"- {' -> '.join(cycle)}")
        lines.append('')

    return '\n'.join(lines)


def render_fix_script(warnings: MigrationWarnings, fixes: Optional[AutoFixResult] = None,
                      generated_config: str = DEFAULT_GENERATED_CONFIG) -> str:
    """Render a shell script that patches the config generated by ``terraform plan``

    Every substitution is made with ``sed -i.bak`` so the original file can be
    restored from the backup.
    """
    substitutions = []
    if warnings.entity_page_types:
        substitutions.append(('Rewrite unsupported page types', ENTITY_TYPE_SED))
    substitutions.append(('Replace null expressions with an empty list', NULL_EXPRESSIONS_SED))

    lines = [
        '#!/usr/bin/env bash',
        '# Patches Terraform configuration generated from the import blocks',
        f"# Usage: $0 [path/to/{generated_config}]",
        '# The original file is kept next to it with a .bak suffix; restore it with:',
        '#   mv "$TARGET.bak" "$TARGET"',
        'set -euo pipefail',
        '',
        f'TARGET="${{1:-{generated_config}}}"',
        '',
        'if [ ! -f "$TARGET" ]; then',
        '  echo "Generated config not found: $TARGET" >&2',
        '  exit 1',
        'fi',
        '',
    ]
    for description, _ in substitutions:
        lines.append(f"# {description}")
    lines.append("sed -i.bak -E \\")
    for _, expression in substitutions:
        lines.append(f"  -e '{expression}' \\")
    lines.append('  "$TARGET"')
    lines.append('')

    if warnings.entity_page_types:
        lines.append('# Pages rewritten to type "blueprint-entities":')
        for warning in warnings.entity_page_types:
            lines.append(f"#   {warning.resource_id}")
        lines.append('')

    fixed_titles = {f"{fix.blueprint}.{fix.relation}": fix.new_title
                    for fix in (fixes.relation_titles_fixed if fixes else [])}
    if warnings.null_relation_titles:
        lines.append('# REVIEW: relations with a null title (not patched here, set a title before applying):')
        for warning in warnings.null_relation_titles:
            if warning.resource_id in fixed_titles:
                lines.append(f"#   {warning.resource_id} (auto-fixed as \"{fixed_titles[warning.resource_id]}\")")
            else:
                lines.append(f"#   {warning.resource_id}")
        lines.append('')

    fixed_ordering = set(fixes.page_ordering_fixed) if fixes else set()
    if warnings.page_ordering:
        lines.append('# REVIEW: pages ordered after a page that is not imported (clear or change "after"):')
        for warning in warnings.page_ordering:
            suffix = ' (auto-fixed, "after" removed)' if warning.resource_id in fixed_ordering else ''
            lines.append(f"#   {warning.resource_id}{suffix}")
        lines.append('')

    if warnings.automation_actions:
        lines.append(f"# REVIEW: {len(warnings.automation_actions)} automation(s) may reference "
                     f"source-organization resources in their triggers")
        lines.append('')

    lines.append('echo "Patched $TARGET (backup: $TARGET.bak)"')
    lines.append('')
    return '\n'.join(lines)
