"""
Terraform import block generation

Renders ``import {}`` blocks for every exported Port resource so the target
organization's Terraform configuration can adopt them.
"""

import re
from pathlib import Path
from typing import List, Set, Union

from port_resources import (
    Action,
    Blueprint,
    Entity,
    Folder,
    Integration,
    Page,
    Scorecard,
    Webhook,
    is_system_owned,
)
from migration_checks import ENTITY_PAGE_TYPE


DEFAULT_PROVIDER_ALIAS = 'port-labs'


def format_import_block(resource_address: str, import_id: str, provider_alias: str = DEFAULT_PROVIDER_ALIAS) -> str:
    return (
        "import {\n"
        f"  to = {resource_address}\n"
        f"  id = \"{import_id}\"\n"
        f"  provider = {provider_alias}\n"
        "}"
    )


def clean_identifier(identifier: str) -> str:
    """Replace a leading dot, which is not a valid resource name start"""
    return re.sub(r'^\.', 'dot', identifier)


def integration_resource_name(identifier: str, integration_type: str) -> str:
    """Resource name for an integration

    Identifiers that are numeric, contain no letters or look like a template
    (``{...}``) are prefixed with the integration type.
    """
    trimmed = identifier.strip()
    numeric = re.fullmatch(r'[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?', trimmed) is not None
    if numeric or not re.search(r'[a-zA-Z]', trimmed) or trimmed.startswith('{'):
        return f"{integration_type}-{re.sub(r'[{}]', '', trimmed)}"
    return trimmed


def generate_action_imports(actions: List[Action], provider_alias: str = DEFAULT_PROVIDER_ALIAS) -> List[str]:
    return [
        format_import_block(f"port_action.{action.identifier}", action.identifier, provider_alias)
        for action in actions
    ]


def generate_blueprint_imports(blueprints: List[Blueprint], provider_alias: str = DEFAULT_PROVIDER_ALIAS) -> List[str]:
    import_blocks = []
    for blueprint in blueprints:
        resource_type = 'port_system_blueprint' if is_system_owned(blueprint.identifier) else 'port_blueprint'
        import_blocks.append(
            format_import_block(f"{resource_type}.{blueprint.identifier}", blueprint.identifier, provider_alias)
        )
    return import_blocks


def generate_aggregation_property_imports(blueprints: List[Blueprint],
                                          provider_alias: str = DEFAULT_PROVIDER_ALIAS) -> List[str]:
    import_blocks = []
    for blueprint in blueprints:
        # System blueprints carry their aggregation properties in port_system_blueprint
        if not blueprint.aggregation_properties or is_system_owned(blueprint.identifier):
            continue
        import_blocks.append(format_import_block(
            f"port_aggregation_properties.{blueprint.identifier}_aggregation_properties",
            blueprint.identifier,
            provider_alias,
        ))
    return import_blocks


def generate_scorecard_imports(scorecards: List[Scorecard], provider_alias: str = DEFAULT_PROVIDER_ALIAS) -> List[str]:
    return [
        format_import_block(
            f"port_scorecard.{scorecard.identifier}",
            f"{scorecard.blueprint}:{scorecard.identifier}",
            provider_alias,
        )
        for scorecard in scorecards
        if not is_system_owned(scorecard.blueprint)
    ]


def generate_integration_imports(integrations: List[Integration],
                                 provider_alias: str = DEFAULT_PROVIDER_ALIAS) -> List[str]:
    return [
        format_import_block(
            f"port_integration.{integration_resource_name(integration.identifier, integration.integration_type)}",
            integration.identifier,
            provider_alias,
        )
        for integration in integrations
    ]


def generate_webhook_imports(webhooks: List[Webhook], provider_alias: str = DEFAULT_PROVIDER_ALIAS) -> List[str]:
    return [
        format_import_block(f"port_webhook.{webhook.identifier}", webhook.identifier, provider_alias)
        for webhook in webhooks
    ]


def is_page_importable(page: Page) -> bool:
    """System pages, virtual pages and unsupported entity pages are not imported"""
    return not page.is_system and page.type != ENTITY_PAGE_TYPE


def imported_page_ids(pages: List[Page]) -> Set[str]:
    return {page.identifier for page in pages if is_page_importable(page)}


def generate_page_imports(pages: List[Page], provider_alias: str = DEFAULT_PROVIDER_ALIAS) -> List[str]:
    return [
        format_import_block(f"port_page.{page.identifier}", page.identifier, provider_alias)
        for page in pages
        if is_page_importable(page)
    ]


def generate_folder_imports(folders: List[Folder], provider_alias: str = DEFAULT_PROVIDER_ALIAS) -> List[str]:
    # Identifiers starting with a digit are not valid HCL resource names
    return [
        format_import_block(f"port_folder.{folder.identifier}", folder.identifier, provider_alias)
        for folder in folders
        if folder.sidebar_type == 'folder' and not re.match(r'^\d', folder.identifier)
    ]


def generate_entity_imports(entities: List[Entity], provider_alias: str = DEFAULT_PROVIDER_ALIAS) -> List[str]:
    """Entity imports; entities of system blueprints import their blueprint once instead"""
    import_blocks = []
    system_blueprints_imported = set()
    for entity in entities:
        if is_system_owned(entity.blueprint):
            if entity.blueprint not in system_blueprints_imported:
                system_blueprints_imported.add(entity.blueprint)
                import_blocks.append(format_import_block(
                    f"port_system_blueprint.{entity.blueprint}", entity.blueprint, provider_alias
                ))
        else:
            import_blocks.append(format_import_block(
                f"port_entity.{clean_identifier(entity.identifier)}",
                f"{entity.blueprint}:{entity.identifier}",
                provider_alias,
            ))
    return import_blocks


def write_import_blocks(import_blocks: List[str], output_path: Union[str, Path]) -> Path:
    """Write import blocks to a .tf file, separated by blank lines"""
    output_path = Path(output_path)
    try:
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_text('\n\n'.join(import_blocks))
    except OSError as e:
        print(f"  Error writing import blocks to {output_path}: {e}")
        raise
    print(f"  Import blocks written to {output_path}")
    return output_path
