#!/usr/bin/env python3
"""
Port Terraform Export Script

This script exports configuration resources (blueprints, actions, scorecards,
integrations, webhooks, pages, folders and entities) from a Port organization
and generates Terraform import blocks for them, so the configuration can be
brought under Terraform and applied to another organization.
"""

import argparse
import os
import sys
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import requests
import yaml

from migration_checks import (
    WARNING_TITLES,
    AutoFixResult,
    FilterOptions,
    MigrationWarnings,
    blueprint_dependencies,
    detect_migration_warnings,
    filter_blueprints,
    filter_integrations,
    filter_pages,
    find_dependency_cycles,
    fix_blueprints,
    fix_pages,
    importable_page_ids,
    is_valid_exclude_pattern,
)
from migration_report import render_fix_script, render_migration_report
from port_client import DEFAULT_BASE_URL, PortAPIClient
from port_resources import (
    decode_actions,
    decode_blueprints,
    decode_entities,
    decode_folders,
    decode_integrations,
    decode_pages,
    decode_scorecards,
    decode_webhooks,
)
from tf_import_blocks import (
    DEFAULT_PROVIDER_ALIAS,
    generate_action_imports,
    generate_aggregation_property_imports,
    generate_blueprint_imports,
    generate_entity_imports,
    generate_folder_imports,
    generate_integration_imports,
    generate_page_imports,
    generate_scorecard_imports,
    generate_webhook_imports,
    imported_page_ids,
    write_import_blocks,
)


RESOURCE_KINDS = ['actions', 'blueprints', 'scorecards', 'integrations', 'webhooks', 'pages', 'folders']

REPORT_FILE = 'migration_report.md'
FIX_SCRIPT_FILE = 'fix_generated_config.sh'


@dataclass
class ExportOptions:
    exclude_github_integrations: bool = False
    exclude_system_blueprints: bool = False
    exclude_ai_pages: bool = False
    exclude_patterns: List[str] = field(default_factory=list)
    show_warnings: bool = False
    auto_fix: bool = False
    generate_report: bool = False
    generate_fix_script: bool = False
    blueprints: List[str] = field(default_factory=list)
    provider_alias: str = DEFAULT_PROVIDER_ALIAS
    output_dir: str = '.'
    base_url: str = DEFAULT_BASE_URL

    @property
    def filters(self) -> FilterOptions:
        return FilterOptions(
            exclude_github_integrations=self.exclude_github_integrations,
            exclude_system_blueprints=self.exclude_system_blueprints,
            exclude_ai_pages=self.exclude_ai_pages,
            exclude_patterns=list(self.exclude_patterns),
        )

    @classmethod
    def from_argparse(cls, args: argparse.Namespace, config: Optional[Dict[str, Any]] = None) -> 'ExportOptions':
        """Build options from parsed arguments layered over a config file

        Flags given on the command line win over the config file; exclude
        patterns from both are combined.
        """
        config = dict(config or {})
        values = {}
        for option in fields(cls):
            cli_value = getattr(args, option.name, None)
            if option.name == 'exclude_patterns':
                values[option.name] = list(config.get(option.name) or []) + list(cli_value or [])
            elif option.name == 'blueprints':
                values[option.name] = parse_blueprint_list(cli_value or config.get(option.name))
            elif cli_value is not None:
                values[option.name] = cli_value
            elif option.name in config:
                values[option.name] = config[option.name]
        if 'base_url' not in values and os.environ.get('PORT_BASE_URL'):
            values['base_url'] = os.environ['PORT_BASE_URL']
        return cls(**values)


def parse_blueprint_list(value: Any) -> List[str]:
    """Accept "a, b,c" or a list and return the non-empty identifiers"""
    if not value:
        return []
    if isinstance(value, str):
        value = value.split(',')
    return [str(item).strip() for item in value if str(item).strip()]


def load_config_file(path: str) -> Dict[str, Any]:
    """Load export options from a YAML file"""
    with open(path) as f:
        config = yaml.safe_load(f) or {}
    if not isinstance(config, dict):
        raise ValueError(f"Config file {path} must contain a mapping of option names to values")

    known = {option.name for option in fields(ExportOptions)}
    unknown = sorted(set(config) - known)
    if unknown:
        print(f"Warning: Ignoring unknown config keys in {path}: {', '.join(unknown)}")
    return {key: value for key, value in config.items() if key in known}


def print_warnings(warnings: MigrationWarnings) -> None:
    print("\n=== Migration Warnings ===")
    if warnings.total() == 0:
        print("No migration warnings found")
        return
    for category, category_warnings in warnings.by_category():
        if not category_warnings:
            continue
        print(f"\n{WARNING_TITLES[category]}: {len(category_warnings)}")
        for warning in category_warnings:
            print(f"  - {warning.message}")


class PortExporter:
    """Main export class"""

    def __init__(self, client: PortAPIClient, options: ExportOptions):
        self.client = client
        self.options = options
        self.output_dir = Path(options.output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self.export_dir = self.output_dir / "port_exports"
        self.export_dir.mkdir(exist_ok=True)
        self.results: Dict[str, Dict[str, int]] = {}

    def _result(self, kind: str) -> Dict[str, int]:
        return self.results.setdefault(kind, {'success': 0, 'failed': 0, 'skipped': 0})

    def fetch_resources(self) -> Dict[str, list]:
        """Fetch and decode every resource kind; a failed kind continues as empty"""
        fetchers: Dict[str, tuple] = {
            'actions': (self.client.list_actions, decode_actions),
            'blueprints': (self.client.list_blueprints, decode_blueprints),
            'scorecards': (self.client.list_scorecards, decode_scorecards),
            'integrations': (self.client.list_integrations, decode_integrations),
            'webhooks': (self.client.list_webhooks, decode_webhooks),
            'pages': (self.client.list_pages, decode_pages),
            'folders': (self.client.list_folders, decode_folders),
        }
        resources = {}
        for kind in RESOURCE_KINDS:
            fetch, decode = fetchers[kind]
            print(f"fetching {kind}")
            try:
                resources[kind] = decode(fetch())
            except requests.exceptions.RequestException as e:
                print(f"  Error: Failed to fetch {kind}: {e}")
                self._result(kind)['failed'] += 1
                resources[kind] = []
        return resources

    def fetch_entities(self) -> list:
        if not self.options.blueprints:
            print("No blueprint identifiers provided, skipping entity fetch.")
            return []

        entities = []
        for blueprint_id in self.options.blueprints:
            print(f"fetching entities for blueprint: {blueprint_id}")
            try:
                response = self.client.list_entities(blueprint_id)
            except requests.exceptions.RequestException as e:
                print(f"  Error: Failed to fetch entities for blueprint \"{blueprint_id}\": {e}")
                self._result('entities')['failed'] += 1
                continue
            if not isinstance(response, dict) or not isinstance(response.get('entities'), list):
                print(f"  Warning: No valid entities array returned for blueprint: {blueprint_id}")
                continue
            entities.extend(decode_entities(response))
        return entities

    def export_snapshot(self, name: str, records: List[Dict]) -> Optional[Path]:
        """Save records as YAML for backup; a failed write is reported, not raised"""
        yaml_file = self.export_dir / f"{name}.yaml"
        try:
            yaml_file.write_text(yaml.dump(records, default_flow_style=False, sort_keys=False))
        except OSError as e:
            print(f"  Failed to export {name}: {e}")
            return None
        print(f"  Exported data to {yaml_file}")
        return yaml_file

    def _write_kind(self, kind: str, file_name: str, generate: Callable[[], List[str]], skipped: int = 0) -> None:
        result = self._result(kind)
        result['skipped'] += skipped
        try:
            import_blocks = generate()
            write_import_blocks(import_blocks, self.output_dir / file_name)
        except OSError as e:
            print(f"  Error: Failed to write {kind} imports: {e}")
            result['failed'] += 1
            return
        result['success'] += len(import_blocks)

    def run(self) -> Dict[str, Dict[str, int]]:
        options = self.options
        alias = options.provider_alias

        print("\n=== Fetching Resources ===")
        resources = self.fetch_resources()
        entities = self.fetch_entities()

        print("\n=== Exporting Snapshots ===")
        for kind in RESOURCE_KINDS:
            self.export_snapshot(kind, [record.raw for record in resources[kind]])
        if entities:
            self.export_snapshot('entities', [entity.raw for entity in entities])

        filters = options.filters
        for pattern in filters.exclude_patterns:
            if not is_valid_exclude_pattern(pattern):
                print(f"Warning: Exclude pattern '{pattern}' is not of the form <integration|blueprint|page>:<glob>"
                      f" and will not match anything")

        integrations = filter_integrations(resources['integrations'], filters)
        blueprints = filter_blueprints(resources['blueprints'], filters)
        pages = filter_pages(resources['pages'], filters)
        # Entity pages only get imported once auto-fix rewrites their type
        page_ids = importable_page_ids(pages) if options.auto_fix else imported_page_ids(pages)

        warnings = detect_migration_warnings(
            resources['integrations'], resources['blueprints'], resources['pages'], resources['actions'],
            imported_page_ids=page_ids,
        )
        if options.show_warnings:
            print_warnings(warnings)

        fixes: Optional[AutoFixResult] = None
        if options.auto_fix:
            print("\n=== Auto-fixing Resources ===")
            pages, page_fixes = fix_pages(pages, page_ids)
            blueprints, blueprint_fixes = fix_blueprints(blueprints)
            fixes = page_fixes.merge(blueprint_fixes)
            print(f"  Entity page types fixed: {len(fixes.entity_page_types_fixed)}")
            print(f"  Page ordering fixed: {len(fixes.page_ordering_fixed)}")
            print(f"  Relation titles fixed: {len(fixes.relation_titles_fixed)}")
            if fixes.entity_page_types_fixed or fixes.page_ordering_fixed:
                self.export_snapshot('autofix_pages', [page.to_dict() for page in pages if not page.is_system])
            if fixes.relation_titles_fixed:
                self.export_snapshot('autofix_blueprints', [blueprint.to_dict() for blueprint in blueprints])

        print("\n=== Generating Import Blocks ===")
        self._write_kind('actions', 'action_imports.tf',
                         lambda: generate_action_imports(resources['actions'], alias))
        self._write_kind('blueprints', 'blueprint_imports.tf',
                         lambda: generate_blueprint_imports(blueprints, alias),
                         skipped=len(resources['blueprints']) - len(blueprints))
        self._write_kind('aggregation_properties', 'aggregation_property_imports.tf',
                         lambda: generate_aggregation_property_imports(blueprints, alias))
        self._write_kind('scorecards', 'scorecard_imports.tf',
                         lambda: generate_scorecard_imports(resources['scorecards'], alias))
        self._write_kind('integrations', 'integration_imports.tf',
                         lambda: generate_integration_imports(integrations, alias),
                         skipped=len(resources['integrations']) - len(integrations))
        self._write_kind('webhooks', 'webhook_imports.tf',
                         lambda: generate_webhook_imports(resources['webhooks'], alias))
        self._write_kind('pages', 'page_imports.tf',
                         lambda: generate_page_imports(pages, alias),
                         skipped=len(resources['pages']) - len(pages))
        self._write_kind('folders', 'folder_imports.tf',
                         lambda: generate_folder_imports(resources['folders'], alias))
        self._write_kind('entities', 'entities_imports.tf',
                         lambda: generate_entity_imports(entities, alias))

        dependencies = blueprint_dependencies(resources['blueprints'])
        cycles = find_dependency_cycles(dependencies)
        if cycles:
            for cycle in cycles:
                print(f"Warning: Blueprint relation cycle: {' -> '.join(cycle)}")

        if options.generate_report:
            print("\n=== Writing Migration Report ===")
            resource_counts = {kind: len(resources[kind]) for kind in RESOURCE_KINDS}
            resource_counts['entities'] = len(entities)
            filtered_counts = dict(resource_counts, integrations=len(integrations),
                                   blueprints=len(blueprints), pages=len(imported_page_ids(pages)))
            report = render_migration_report(resource_counts, warnings, fixes, dependencies,
                                             cycles=cycles, filtered_counts=filtered_counts)
            self._write_artifact('report', REPORT_FILE, report)

        if options.generate_fix_script:
            print("\n=== Writing Fix Script ===")
            script_path = self._write_artifact('fix_script', FIX_SCRIPT_FILE, render_fix_script(warnings, fixes))
            if script_path is not None:
                script_path.chmod(0o755)

        return self.results

    def _write_artifact(self, kind: str, file_name: str, content: str) -> Optional[Path]:
        path = self.output_dir / file_name
        try:
            path.write_text(content)
        except OSError as e:
            print(f"  Error: Failed to write {path}: {e}")
            self._result(kind)['failed'] += 1
            return None
        print(f"  Written to {path}")
        self._result(kind)['success'] += 1
        return path


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='Export Port resources as Terraform import blocks')
    # Flags default to None so a config file value is only overridden when given
    parser.add_argument('--exclude-github-integrations', action='store_true', default=None,
                        help='Skip GitHub integrations (they need a new GitHub App installation)')
    parser.add_argument('--exclude-system-blueprints', action='store_true', default=None,
                        help='Skip system blueprints (identifiers starting with "_")')
    parser.add_argument('--exclude-ai-pages', action='store_true', default=None,
                        help='Skip pages containing AI agent widgets')
    parser.add_argument('--exclude-pattern', dest='exclude_patterns', action='append', metavar='KIND:GLOB',
                        help='Exclude resources matching a pattern, e.g. "integration:GitHub-*" or "page:_*". '
                             'Kinds: integration, blueprint, page. May be repeated')
    parser.add_argument('--show-warnings', action='store_true', default=None,
                        help='Print migration warnings')
    parser.add_argument('--auto-fix', action='store_true', default=None,
                        help='Fix entity page types, dangling page ordering and null relation titles')
    parser.add_argument('--generate-report', action='store_true', default=None,
                        help=f'Write {REPORT_FILE}')
    parser.add_argument('--generate-fix-script', action='store_true', default=None,
                        help=f'Write {FIX_SCRIPT_FILE} to patch the config generated by terraform')
    parser.add_argument('--blueprints', help='Comma-separated blueprint identifiers whose entities to export')
    parser.add_argument('--provider-alias', help=f'Provider reference used in import blocks '
                                                 f'(default: {DEFAULT_PROVIDER_ALIAS})')
    parser.add_argument('--output-dir', help='Directory for the generated files (default: current directory)')
    parser.add_argument('--base-url', help=f'Port API base URL (default: $PORT_BASE_URL or {DEFAULT_BASE_URL})')
    parser.add_argument('--config', help='YAML file with default values for the options above')
    return parser


def main(argv: Optional[List[str]] = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    client_id = os.environ.get('PORT_CLIENT_ID')
    client_secret = os.environ.get('PORT_CLIENT_SECRET')
    if not client_id or not client_secret:
        print('Please provide env vars PORT_CLIENT_ID and PORT_CLIENT_SECRET')
        sys.exit(0)

    config = {}
    if args.config:
        try:
            config = load_config_file(args.config)
        except (OSError, ValueError, yaml.YAMLError) as e:
            parser.error(f"Invalid config file: {e}")
    options = ExportOptions.from_argparse(args, config)

    try:
        client = PortAPIClient(client_id, client_secret, options.base_url,
                               bearer_token=os.environ.get('PORT_BEARER_TOKEN'))
    except (requests.exceptions.RequestException, ValueError) as e:
        print(f"Error: Could not authenticate with Port: {e}")
        sys.exit(1)

    print("Starting Port Terraform export...")
    print(f"API: {options.base_url}")
    print(f"Provider alias: {options.provider_alias}")
    print(f"Output directory: {Path(options.output_dir).absolute()}")
    if options.exclude_patterns:
        print(f"Exclude patterns: {', '.join(options.exclude_patterns)}")

    exporter = PortExporter(client, options)
    results = exporter.run()

    print("\n" + "=" * 50)
    print("EXPORT SUMMARY")
    print("=" * 50)
    for kind, result in results.items():
        print(f"\n{kind.upper()}:")
        print(f"  Generated: {result['success']}")
        print(f"  Failed: {result['failed']}")
        print(f"  Skipped: {result['skipped']}")

    total_failed = sum(r['failed'] for r in results.values())
    print(f"\nTOTAL:")
    print(f"  Generated: {sum(r['success'] for r in results.values())}")
    print(f"  Failed: {total_failed}")
    print(f"\nExported YAML files saved to: {exporter.export_dir.absolute()}")
    if total_failed:
        sys.exit(1)


if __name__ == "__main__":
    main()
