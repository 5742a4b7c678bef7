"""Merge-safe reconciliation of a bucket's lifecycle configuration."""

import copy
import json
import logging
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

VALID_STATUSES = ('Enabled', 'Disabled')


def reconcile(existing_config: Optional[Dict[str, Any]],
              canonical_rule: Dict[str, Any]) -> Dict[str, Any]:
    """Ensure ``canonical_rule`` is present in a lifecycle configuration.

    Merge Logic:
    - If the bucket has no configuration: the result holds only the canonical rule
    - If a rule with the canonical rule's ID exists: it is replaced in place,
      and any later duplicates of that ID are dropped
    - Otherwise: the canonical rule is appended after the existing rules

    Rules with other IDs are carried over verbatim and in order, including
    fields this tool does not know about. The input is never mutated.

    Args:
        existing_config: Current lifecycle configuration (can be None)
        canonical_rule: Rule to ensure, in S3 rule shape

    Returns:
        Merged configuration dictionary
    """
    rule_id = canonical_rule['ID']

    if not existing_config:
        logger.debug(f"No existing configuration, using rule '{rule_id}' alone")
        return {'Rules': [copy.deepcopy(canonical_rule)]}

    merged_config = {
        k: copy.deepcopy(v) for k, v in existing_config.items()
        if k not in ('Rules', 'ResponseMetadata')
    }

    merged_rules = []
    replaced = False
    for rule in existing_config.get('Rules') or []:
        if rule.get('ID') != rule_id:
            merged_rules.append(copy.deepcopy(rule))
        elif not replaced:
            merged_rules.append(copy.deepcopy(canonical_rule))
            replaced = True
            logger.debug(f"Replacing existing rule ID '{rule_id}' in place")
        else:
            logger.debug(f"Dropping duplicate rule ID '{rule_id}'")

    if not replaced:
        merged_rules.append(copy.deepcopy(canonical_rule))
        logger.debug(f"Appending rule ID '{rule_id}' after {len(merged_rules) - 1} existing rules")

    merged_config['Rules'] = merged_rules
    return merged_config


def validate_lifecycle_config(config: Dict[str, Any]) -> bool:
    """Validate S3 lifecycle configuration.

    Args:
        config: Lifecycle configuration dictionary

    Returns:
        True if valid, False otherwise
    """
    if not isinstance(config, dict) or 'Rules' not in config:
        logger.error("Lifecycle configuration must have 'Rules' array")
        return False

    rules = config['Rules']
    if not isinstance(rules, list):
        logger.error("'Rules' must be an array")
        return False

    seen = set()
    for i, rule in enumerate(rules):
        if not isinstance(rule, dict):
            logger.error(f"Rule at index {i} must be an object")
            return False

        if not rule.get('ID'):
            logger.error(f"Rule at index {i} missing required 'ID' field")
            return False

        if rule['ID'] in seen:
            logger.error(f"Rule at index {i} repeats ID '{rule['ID']}'")
            return False
        seen.add(rule['ID'])

        if rule.get('Status') not in VALID_STATUSES:
            logger.error(f"Rule at index {i} has invalid Status '{rule.get('Status')}' (must be 'Enabled' or 'Disabled')")
            return False

    return True


def configs_equal(config1: Optional[Dict[str, Any]],
                  config2: Optional[Dict[str, Any]]) -> bool:
    """Compare two configurations for equality, ignoring key order."""
    def normalize_config(config):
        if not config:
            return None
        config = {k: v for k, v in config.items() if k != 'ResponseMetadata'}
        return json.dumps(config, sort_keys=True, separators=(',', ':'), default=str)

    return normalize_config(config1) == normalize_config(config2)
