"""
Condition Router
================

Chooses which model version scores each record.

Rules are evaluated in declared order and the first enabled rule whose
conditions all hold wins. Records matching no rule, and every record while
the router is disabled, go to the default model.
"""

import logging
from collections import OrderedDict
from typing import Dict, List, Mapping, NamedTuple, Optional, Sequence

from src.api.serving.config import ConditionRule, RoutingConfig

logger = logging.getLogger(__name__)


class IndexedRecord(NamedTuple):
    """A record tagged with its position in the request."""
    index: int
    record: Mapping[str, Optional[str]]


class ConditionRouter:
    """Stateless after construction; safe to share across requests."""

    def __init__(self, config: RoutingConfig):
        self.config = config
        self._rules = tuple(rule for rule in config.rules if rule.enabled)
        logger.info(
            f"ConditionRouter initialized: enabled={config.enabled}, "
            f"default={config.default_model}, active rules={len(self._rules)}"
        )

    @property
    def default_model(self) -> str:
        return self.config.default_model

    @staticmethod
    def _matches(rule: ConditionRule, record: Mapping[str, Optional[str]]) -> bool:
        for condition in rule.conditions:
            value = record.get(condition.field)
            if value is None or value != condition.value:
                return False
        return True

    def route(self, record: Mapping[str, Optional[str]]) -> str:
        if not self.config.enabled:
            return self.config.default_model

        for rule in self._rules:
            if self._matches(rule, record):
                logger.debug(f"Record matched rule '{rule.name}' -> {rule.target_model}")
                return rule.target_model

        return self.config.default_model

    def route_batch(self, records: Sequence[Mapping[str, Optional[str]]]) -> List[str]:
        return [self.route(record) for record in records]

    def group(self, records: Sequence[Mapping[str, Optional[str]]]) -> Dict[str, List[IndexedRecord]]:
        """Partition records by target version, keeping original positions."""
        groups: Dict[str, List[IndexedRecord]] = OrderedDict()
        for index, record in enumerate(records):
            groups.setdefault(self.route(record), []).append(IndexedRecord(index, record))

        if groups:
            summary = ", ".join(f"{version}={len(items)}" for version, items in groups.items())
            logger.debug(f"Routed {len(records)} record(s): {summary}")
        return dict(groups)

    def summary(self) -> Dict[str, object]:
        return {
            "enabled": self.config.enabled,
            "default_model": self.config.default_model,
            "rules": [
                {
                    "name": rule.name,
                    "target_model": rule.target_model,
                    "enabled": rule.enabled,
                    "conditions": {c.field: c.value for c in rule.conditions},
                }
                for rule in self.config.rules
            ],
        }
