"""Unit tests for migration_checks."""

import pytest

from migration_checks import (
    FilterOptions,
    RelationTitleFix,
    blueprint_dependencies,
    detect_migration_warnings,
    filter_blueprints,
    filter_integrations,
    filter_pages,
    find_dependency_cycles,
    fix_blueprints,
    fix_pages,
    humanize,
    is_valid_exclude_pattern,
    match_exclude_pattern,
)
from port_resources import Action, Blueprint, Integration, Page, Relation


def _blueprint(identifier, **targets):
    relations = {key: Relation(key=key, target=target) for key, target in targets.items()}
    return Blueprint(identifier=identifier, relations=relations)


def _null_title_blueprint(identifier, key, target='team'):
    return Blueprint.from_dict({
        'identifier': identifier,
        'relations': {key: {'target': target, 'title': None, 'many': False, 'required': False}},
    })


# Filtering

def test_exclude_pattern_matching() -> None:
    assert match_exclude_pattern('integration:GitHub-*', 'integration', 'GitHub-App-1')
    assert not match_exclude_pattern('integration:GitHub-*', 'integration', 'gitlab-app')
    assert match_exclude_pattern('page:_*', 'page', '_ai_agents')
    assert match_exclude_pattern('PAGE:Home', 'page', 'home')


def test_exclude_pattern_is_anchored_and_scoped_by_kind() -> None:
    assert not match_exclude_pattern('blueprint:svc', 'blueprint', 'svc_v2')
    assert not match_exclude_pattern('blueprint:svc', 'page', 'svc')
    assert match_exclude_pattern('blueprint:*svc*', 'blueprint', 'my_svc_v2')
    # Only * is special
    assert not match_exclude_pattern('blueprint:svc.v?', 'blueprint', 'svcXv2')
    assert match_exclude_pattern('blueprint:svc.v?', 'blueprint', 'svc.v?')


@pytest.mark.parametrize('pattern', ['integration', 'integration:a:b', '', ':'])
def test_malformed_exclude_patterns_never_match(pattern: str) -> None:
    assert not match_exclude_pattern(pattern, 'integration', 'a', 'integration', '')
    assert not is_valid_exclude_pattern(pattern)


def test_is_valid_exclude_pattern_checks_kind() -> None:
    assert is_valid_exclude_pattern('integration:*')
    assert not is_valid_exclude_pattern('action:*')


def test_filter_integrations_by_github_flag_and_type_pattern() -> None:
    integrations = [
        Integration('gh-1', 'GitHub'),
        Integration('k8s', 'kubernetes'),
        Integration('jira-prod', 'jira'),
        Integration('gl', 'gitlab'),
    ]
    options = FilterOptions(exclude_github_integrations=True, exclude_patterns=['integration:JIRA'])

    kept = filter_integrations(integrations, options)

    assert [i.identifier for i in kept] == ['k8s', 'gl']


def test_filter_blueprints_drops_system_blueprints_only_when_asked() -> None:
    blueprints = [Blueprint('_user'), Blueprint('svc'), Blueprint('legacy_svc')]

    assert [b.identifier for b in filter_blueprints(blueprints, FilterOptions())] == ['_user', 'svc', 'legacy_svc']
    options = FilterOptions(exclude_system_blueprints=True, exclude_patterns=['blueprint:legacy_*'])
    assert [b.identifier for b in filter_blueprints(blueprints, options)] == ['svc']


def test_filter_pages_passes_system_pages_through() -> None:
    pages = [
        Page('_ai_agents', widgets=[{'type': 'ai-agent'}]),
        Page('$catalog'),
        Page('agents', widgets=[{'type': 'ai-agent'}]),
        Page('tmp_page'),
        Page('home'),
    ]
    options = FilterOptions(exclude_ai_pages=True, exclude_patterns=['page:_*', 'page:tmp_*'])

    kept = filter_pages(pages, options)

    assert [p.identifier for p in kept] == ['_ai_agents', '$catalog', 'home']
    assert kept[0] is pages[0]


def test_filtering_is_idempotent() -> None:
    options = FilterOptions(
        exclude_github_integrations=True,
        exclude_system_blueprints=True,
        exclude_ai_pages=True,
        exclude_patterns=['integration:k8s*', 'blueprint:tmp*', 'page:draft*', 'broken'],
    )
    integrations = [Integration('gh', 'github'), Integration('k8s-1', 'kubernetes'), Integration('pd', 'pagerduty')]
    blueprints = [Blueprint('_team'), Blueprint('tmp_bp'), Blueprint('svc')]
    pages = [Page('draft_1'), Page('ai', widgets=['{"type":"ai-agent"}']), Page('home'), Page('$x')]

    once = filter_integrations(integrations, options)
    assert filter_integrations(once, options) == once
    once = filter_blueprints(blueprints, options)
    assert filter_blueprints(once, options) == once
    once = filter_pages(pages, options)
    assert filter_pages(once, options) == once


# Warning detection

def test_detects_every_category_in_input_order() -> None:
    integrations = [Integration('gh-b', 'GITHUB'), Integration('k8s', 'kubernetes'), Integration('gh-a', 'github')]
    blueprints = [Blueprint('_user'), _null_title_blueprint('svc', 'owner_team'), Blueprint('_team')]
    pages = [
        Page('agents', widgets=[{'type': 'ai-agent'}]),
        Page('_system', type='entity', after='nowhere', widgets=[{'type': 'ai-agent'}]),
        Page('$virtual', type='entity'),
        Page('svc_entity', type='entity'),
    ]
    actions = [Action('deploy'), Action('notify', automation_trigger={'event': {'type': 'ENTITY_CREATED'}})]

    warnings = detect_migration_warnings(integrations, blueprints, pages, actions)

    assert [w.resource_id for w in warnings.github_integrations] == ['gh-b', 'gh-a']
    assert [w.resource_id for w in warnings.system_blueprints] == ['_user', '_team']
    assert [w.resource_id for w in warnings.ai_agent_pages] == ['agents']
    assert warnings.page_ordering == []
    assert [w.resource_id for w in warnings.null_relation_titles] == ['svc.owner_team']
    assert [w.resource_id for w in warnings.automation_actions] == ['notify']
    assert [w.resource_id for w in warnings.entity_page_types] == ['svc_entity']
    assert warnings.total() == 8
    assert all(w.category == category for category, ws in warnings.by_category() for w in ws)


def test_missing_relation_title_is_not_flagged() -> None:
    blueprint = Blueprint.from_dict({'identifier': 'svc', 'relations': {'team': {'target': 'team'}}})
    warnings = detect_migration_warnings([], [blueprint], [], [])
    assert warnings.null_relation_titles == []


def test_page_ordering_detection_and_fix() -> None:
    pages = [Page('a'), Page('b', after='a'), Page('c', after='z')]
    imported = {'a', 'b'}

    warnings = detect_migration_warnings([], [], pages, [], imported_page_ids=imported)
    assert [w.resource_id for w in warnings.page_ordering] == ['c']

    fixed, result = fix_pages(pages, imported)
    assert fixed[2].after is None
    assert fixed[1].after == 'a'
    assert result.page_ordering_fixed == ['c']
    assert pages[2].after == 'z'


def test_entity_page_type_detection_and_fix_is_idempotent() -> None:
    pages = [Page('p', type='entity'), Page('home', type='home')]

    warnings = detect_migration_warnings([], [], pages, [])
    assert [w.resource_id for w in warnings.entity_page_types] == ['p']

    fixed, result = fix_pages(pages, {'p', 'home'})
    assert fixed[0].type == 'blueprint-entities'
    assert result.entity_page_types_fixed == ['p']
    assert pages[0].type == 'entity'

    fixed_again, result_again = fix_pages(fixed, {'p', 'home'})
    assert fixed_again == fixed
    assert result_again.total() == 0


def test_page_fixer_returns_system_pages_unchanged() -> None:
    system_page = Page('_ai_agents', type='entity', after='missing')
    virtual_page = Page('$catalog', type='entity', after='missing')

    fixed, result = fix_pages([system_page, virtual_page], set())

    assert fixed[0] is system_page
    assert fixed[1] is virtual_page
    assert result.total() == 0


# Auto-fix of relation titles

@pytest.mark.parametrize('key, expected', [
    ('service_owner', 'Service Owner'),
    ('on-call-team', 'On Call Team'),
    ('x', 'X'),
    ('API_owner', 'Api Owner'),
    ('double__underscore', 'Double Underscore'),
])
def test_humanize(key: str, expected: str) -> None:
    assert humanize(key) == expected


def test_null_title_detection_and_fix() -> None:
    blueprints = [_null_title_blueprint('svc', 'owner_team')]

    warnings = detect_migration_warnings([], blueprints, [], [])
    assert [w.resource_id for w in warnings.null_relation_titles] == ['svc.owner_team']

    fixed, result = fix_blueprints(blueprints)
    assert fixed[0].relations['owner_team'].title == 'Owner Team'
    assert fixed[0].to_dict()['relations']['owner_team']['title'] == 'Owner Team'
    assert result.relation_titles_fixed == [RelationTitleFix('svc', 'owner_team', 'Owner Team')]
    assert blueprints[0].relations['owner_team'].title is None

    fixed_again, result_again = fix_blueprints(fixed)
    assert fixed_again == fixed
    assert result_again.total() == 0


def test_blueprint_fixer_leaves_other_blueprints_equal() -> None:
    clean = Blueprint.from_dict({'identifier': 'team', 'relations': {'domain': {'target': 'domain', 'title': 'D'}}})
    system = _null_title_blueprint('_user', 'manager', target='_user')

    fixed, result = fix_blueprints([clean, system])

    assert fixed == [clean, system]
    assert result.relation_titles_fixed == []


def test_fix_results_merge() -> None:
    _, page_result = fix_pages([Page('p', type='entity')], {'p'})
    _, blueprint_result = fix_blueprints([_null_title_blueprint('svc', 'team')])

    merged = page_result.merge(blueprint_result)

    assert merged.entity_page_types_fixed == ['p']
    assert [fix.relation for fix in merged.relation_titles_fixed] == ['team']
    assert merged.total() == 2


# Dependency ordering

def test_dependencies_are_direct_deduplicated_and_ordered() -> None:
    blueprints = [
        _blueprint('svc', team='team', owner='team', domain='domain', user='_user', ext='not_exported'),
        _blueprint('team', domain='domain'),
        _blueprint('domain'),
    ]

    dependencies = blueprint_dependencies(blueprints)

    assert [(d.blueprint, d.depends_on) for d in dependencies] == [
        ('svc', ['team', 'domain']),
        ('team', ['domain']),
    ]


def test_dependencies_skip_self_loops_and_system_targets() -> None:
    blueprints = [
        _blueprint('node', parent='node'),
        _blueprint('svc', creator='_user'),
        _blueprint('_user', team='team'),
        _blueprint('team'),
        Blueprint('_user_copy'),
    ]

    assert blueprint_dependencies(blueprints) == []


def test_find_dependency_cycles() -> None:
    blueprints = [
        _blueprint('a', b='b'),
        _blueprint('b', c='c'),
        _blueprint('c', a='a', d='d'),
        _blueprint('d'),
    ]

    cycles = find_dependency_cycles(blueprint_dependencies(blueprints))

    assert cycles == [('a', 'b', 'c', 'a')]


def test_find_dependency_cycles_without_cycles() -> None:
    blueprints = [_blueprint('svc', team='team'), _blueprint('team')]
    assert find_dependency_cycles(blueprint_dependencies(blueprints)) == []


def test_find_dependency_cycles_handles_long_chains() -> None:
    count = 3000
    blueprints = [_blueprint(f"b{i:04d}", next=f"b{i + 1:04d}") for i in range(count)]
    blueprints.append(_blueprint(f"b{count:04d}"))

    assert find_dependency_cycles(blueprint_dependencies(blueprints)) == []

    blueprints[-1] = _blueprint(f"b{count:04d}", first='b0000')
    cycles = find_dependency_cycles(blueprint_dependencies(blueprints))

    assert len(cycles) == 1
    assert cycles[0][0] == cycles[0][-1] == 'b0000'
    assert len(cycles[0]) == count + 2
