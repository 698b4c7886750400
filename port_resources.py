"""
Port resource records

Typed snapshots of the resources fetched from the Port API. Every record is
decoded once from the raw JSON returned by the API; unknown fields are ignored
but the original mapping is kept on ``raw`` so it can be exported unchanged.
"""

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


SYSTEM_PREFIX = '_'
VIRTUAL_PAGE_PREFIX = '$'
AI_AGENT_WIDGET_TYPE = 'ai-agent'
AI_AGENT_MARKERS = ('"type":"ai-agent"', 'agentIdentifier')


def is_system_owned(identifier: str) -> bool:
    """Check if an identifier is reserved by the platform (starts with underscore)"""
    return identifier.startswith(SYSTEM_PREFIX)


def is_virtual_page(identifier: str) -> bool:
    """Check if a page identifier is a platform-internal view (starts with $)"""
    return identifier.startswith(VIRTUAL_PAGE_PREFIX)


def _widget_is_ai_agent(widget: Any) -> bool:
    if isinstance(widget, dict):
        return widget.get('type') == AI_AGENT_WIDGET_TYPE or bool(widget.get('agentIdentifier'))
    if isinstance(widget, str):
        try:
            parsed = json.loads(widget)
        except (ValueError, RecursionError):
            return any(marker in widget for marker in AI_AGENT_MARKERS)
        if isinstance(parsed, dict):
            return _widget_is_ai_agent(parsed)
        return any(marker in widget for marker in AI_AGENT_MARKERS)
    return False


@dataclass
class Action:
    identifier: str
    automation_trigger: Any = None
    raw: Dict[str, Any] = field(default_factory=dict, repr=False, compare=False)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Action':
        return cls(
            identifier=str(data.get('identifier') or ''),
            automation_trigger=data.get('automationTrigger'),
            raw=data,
        )


@dataclass
class Relation:
    """A blueprint relation keyed by its name within the owning blueprint.

    ``title_set`` records whether the source carried a ``title`` key at all, so
    an explicit ``"title": null`` can be told apart from a missing title.
    """
    key: str
    target: str
    many: bool = False
    required: bool = False
    title: Optional[str] = None
    title_set: bool = False
    raw: Dict[str, Any] = field(default_factory=dict, repr=False, compare=False)

    @property
    def has_null_title(self) -> bool:
        return self.title_set and self.title is None

    @classmethod
    def from_dict(cls, key: str, data: Dict[str, Any]) -> 'Relation':
        return cls(
            key=key,
            target=data.get('target') or '',
            many=bool(data.get('many', False)),
            required=bool(data.get('required', False)),
            title=data.get('title'),
            title_set='title' in data,
            raw=data,
        )

    def to_dict(self) -> Dict[str, Any]:
        data = dict(self.raw)
        data['target'] = self.target
        if 'many' in self.raw or self.many:
            data['many'] = self.many
        if 'required' in self.raw or self.required:
            data['required'] = self.required
        if self.title_set:
            data['title'] = self.title
        return data


@dataclass
class Blueprint:
    identifier: str
    aggregation_properties: Dict[str, Any] = field(default_factory=dict)
    relations: Dict[str, Relation] = field(default_factory=dict)
    raw: Dict[str, Any] = field(default_factory=dict, repr=False, compare=False)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Blueprint':
        aggregation_properties = data.get('aggregationProperties') or {}
        # Older payloads list aggregation properties instead of keying them
        if isinstance(aggregation_properties, list):
            aggregation_properties = {
                item.get('identifier', str(index)): item
                for index, item in enumerate(aggregation_properties)
                if isinstance(item, dict)
            }
        relations = {
            key: Relation.from_dict(key, value)
            for key, value in (data.get('relations') or {}).items()
            if isinstance(value, dict)
        }
        return cls(
            identifier=str(data.get('identifier') or ''),
            aggregation_properties=aggregation_properties,
            relations=relations,
            raw=data,
        )

    def to_dict(self) -> Dict[str, Any]:
        data = dict(self.raw)
        data['identifier'] = self.identifier
        if self.relations or 'relations' in self.raw:
            data['relations'] = {key: relation.to_dict() for key, relation in self.relations.items()}
        return data


@dataclass
class Scorecard:
    identifier: str
    blueprint: str
    raw: Dict[str, Any] = field(default_factory=dict, repr=False, compare=False)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Scorecard':
        return cls(identifier=str(data.get('identifier') or ''), blueprint=data.get('blueprint') or '', raw=data)


@dataclass
class Integration:
    identifier: str
    integration_type: str = ''
    installation_id: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict, repr=False, compare=False)

    @property
    def is_github(self) -> bool:
        return (self.integration_type or '').lower() == 'github'

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Integration':
        return cls(
            identifier=str(data.get('identifier') or ''),
            integration_type=data.get('integrationType') or '',
            installation_id=data.get('installationId'),
            raw=data,
        )


@dataclass
class Webhook:
    identifier: str
    raw: Dict[str, Any] = field(default_factory=dict, repr=False, compare=False)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Webhook':
        return cls(identifier=str(data.get('identifier') or ''), raw=data)


@dataclass
class Page:
    identifier: str
    type: str = ''
    after: Optional[str] = None
    widgets: List[Any] = field(default_factory=list)
    raw: Dict[str, Any] = field(default_factory=dict, repr=False, compare=False)

    @property
    def is_system(self) -> bool:
        """System and virtual pages are never generated, filtered or fixed"""
        return is_system_owned(self.identifier) or is_virtual_page(self.identifier)

    def has_ai_agent_widget(self) -> bool:
        """Check if any widget on the page embeds an AI agent.

        Widgets may arrive as objects or as serialized JSON strings. A string
        that does not parse is searched for the agent markers instead; a
        malformed widget never raises, it simply does not match.
        """
        return any(_widget_is_ai_agent(widget) for widget in self.widgets or [])

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Page':
        widgets = data.get('widgets') or []
        if not isinstance(widgets, list):
            widgets = [widgets]
        return cls(
            identifier=str(data.get('identifier') or ''),
            type=data.get('type') or '',
            after=data.get('after'),
            widgets=widgets,
            raw=data,
        )

    def to_dict(self) -> Dict[str, Any]:
        data = dict(self.raw)
        data['identifier'] = self.identifier
        data['type'] = self.type
        if self.after is not None or 'after' in self.raw:
            data['after'] = self.after
        return data


@dataclass
class Folder:
    identifier: str
    sidebar_type: str = 'folder'
    raw: Dict[str, Any] = field(default_factory=dict, repr=False, compare=False)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Folder':
        return cls(identifier=str(data.get('identifier') or ''), sidebar_type=data.get('sidebarType') or '', raw=data)


@dataclass
class Entity:
    identifier: str
    blueprint: str
    raw: Dict[str, Any] = field(default_factory=dict, repr=False, compare=False)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Entity':
        return cls(identifier=str(data.get('identifier') or ''), blueprint=data.get('blueprint') or '', raw=data)


def _items(response: Optional[Dict], key: str) -> List[Dict]:
    if not isinstance(response, dict):
        return []
    items = response.get(key) or []
    return [item for item in items if isinstance(item, dict)]


def decode_actions(response: Optional[Dict]) -> List[Action]:
    return [Action.from_dict(item) for item in _items(response, 'actions')]


def decode_blueprints(response: Optional[Dict]) -> List[Blueprint]:
    return [Blueprint.from_dict(item) for item in _items(response, 'blueprints')]


def decode_scorecards(response: Optional[Dict]) -> List[Scorecard]:
    return [Scorecard.from_dict(item) for item in _items(response, 'scorecards')]


def decode_integrations(response: Optional[Dict]) -> List[Integration]:
    return [Integration.from_dict(item) for item in _items(response, 'integrations')]


def decode_webhooks(response: Optional[Dict]) -> List[Webhook]:
    # The webhooks endpoint reuses the integrations envelope
    return [Webhook.from_dict(item) for item in _items(response, 'integrations')]


def decode_pages(response: Optional[Dict]) -> List[Page]:
    return [Page.from_dict(item) for item in _items(response, 'pages')]


def decode_folders(response: Optional[Dict]) -> List[Folder]:
    """Decode the catalog sidebar, keeping only folder items"""
    sidebar = response.get('sidebar') if isinstance(response, dict) else None
    folders = [Folder.from_dict(item) for item in _items(sidebar, 'items')]
    return [folder for folder in folders if folder.sidebar_type == 'folder']


def decode_entities(response: Optional[Dict]) -> List[Entity]:
    return [Entity.from_dict(item) for item in _items(response, 'entities')]
