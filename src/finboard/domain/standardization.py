"""Standardization rules: ordered, first-match-wins rewrites of imported rows."""

import logging
import re
import warnings
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional

from finboard.database.base import Database
from finboard.domain.entities import (
    ImportRowStatus,
    OperationType,
    RuleMatchType,
    StandardizationRule,
    category_accepts,
    get_flow_type_from_operation,
    is_inflow,
    operation_for_amount,
)
from finboard.domain.errors import (
    ConstraintViolationError,
    InvalidReferenceError,
    NotFoundError,
    RuleConflict,
    ValidationError,
    invalid_reference,
    invalid_row_transition,
    not_found,
)
from finboard.domain.events import EventBus, FinanceEvent, entity_event_type

logger = logging.getLogger(__name__)


def normalize_pattern(pattern: str) -> str:
    return " ".join(pattern.split()).casefold()


def rule_matches(rule: StandardizationRule, description: str, account_id: Optional[str] = None) -> bool:
    """Return True if ``rule`` matches a raw description (case-insensitive).

    Account-scoped rules only match rows of their account. A stored regex
    that no longer compiles never matches.
    """
    if rule.account_id is not None and rule.account_id != account_id:
        return False
    text = description or ""
    needle = rule.pattern
    if rule.match_type == RuleMatchType.CONTAINS:
        return normalize_pattern(needle) in normalize_pattern(text)
    if rule.match_type == RuleMatchType.EQUALS:
        return normalize_pattern(needle) == normalize_pattern(text)
    if rule.match_type == RuleMatchType.STARTS_WITH:
        return normalize_pattern(text).startswith(normalize_pattern(needle))
    if rule.match_type == RuleMatchType.REGEX:
        try:
            return re.search(needle, text, flags=re.IGNORECASE) is not None
        except re.error:
            return False
    return False


@dataclass(frozen=True)
class Standardized:
    """Outcome of running the rules over one raw row."""

    description: str
    category_id: Optional[str]
    operation_type: OperationType
    rule_id: Optional[str] = None
    warnings: tuple[str, ...] = field(default_factory=tuple)


class RuleService:
    """Service for managing and evaluating standardization rules."""

    def __init__(self, db: Database, bus: Optional[EventBus] = None):
        self.db = db
        self.bus = bus or EventBus()

    def _publish(self, operation: str, rule: StandardizationRule) -> None:
        self.bus.publish(
            FinanceEvent(
                type=entity_event_type(operation),
                entity_kind="rule",
                operation=operation,
                payload={"id": rule.id, "rule": rule},
            )
        )

    def _validate(
        self,
        pattern: str,
        match_type: RuleMatchType,
        account_id: Optional[str],
        category_id: Optional[str],
        description: Optional[str],
        operation_type: Optional[OperationType],
    ) -> None:
        if not pattern or not pattern.strip():
            raise ValidationError("Rule pattern must not be empty")
        if match_type == RuleMatchType.REGEX:
            try:
                re.compile(pattern)
            except re.error as e:
                raise ValidationError(f"Invalid regular expression '{pattern}': {e}")
        if category_id is None and description is None and operation_type is None:
            raise ValidationError(
                "A rule must set a category, a description or an operation type"
            )
        if account_id is not None and self.db.get_account(account_id) is None:
            raise InvalidReferenceError(invalid_reference("account", account_id, "account_id"))
        if category_id is not None:
            category = self.db.get_category(category_id)
            if category is None:
                raise InvalidReferenceError(
                    invalid_reference("category", category_id, "category_id")
                )
            if operation_type is not None and not category_accepts(category.direction, operation_type):
                raise ConstraintViolationError(
                    f"Category '{category.name}' cannot classify '{operation_type.value}' rows"
                )

    def _warn_conflicts(self, rule: StandardizationRule) -> None:
        key = (rule.match_type, normalize_pattern(rule.pattern), rule.account_id)
        for other in self.db.list_rules():
            if other.id == rule.id:
                continue
            if (other.match_type, normalize_pattern(other.pattern), other.account_id) == key:
                message = (
                    f"Rule {rule.id} has the same match as rule {other.id} "
                    f"('{rule.pattern}'); the earlier rule wins"
                )
                logger.warning(message)
                warnings.warn(message, RuleConflict, stacklevel=3)
                return

    def create_rule(
        self,
        pattern: str,
        match_type: RuleMatchType = RuleMatchType.CONTAINS,
        category_id: Optional[str] = None,
        description: Optional[str] = None,
        operation_type: Optional[OperationType] = None,
        account_id: Optional[str] = None,
        position: Optional[int] = None,
    ) -> StandardizationRule:
        """Create a rule.

        Args:
            pattern: Substring or regular expression matched against raw descriptions
            match_type: How ``pattern`` is compared
            category_id: Category assigned on match
            description: Cleaned description assigned on match
            operation_type: Operation assigned on match
            account_id: Restrict the rule to one account
            position: Evaluation slot (0 = first); appended when omitted

        Returns:
            The stored rule

        Warns:
            RuleConflict: If another rule already has the same match predicate
        """
        match_type = RuleMatchType(match_type)
        operation_type = OperationType(operation_type) if operation_type is not None else None
        with self.db.atomic():
            self._validate(pattern, match_type, account_id, category_id, description, operation_type)
            rules = self.db.list_rules()
            rule_id = self.db.create_rule(
                pattern=pattern.strip(),
                match_type=match_type,
                position=len(rules),
                account_id=account_id,
                category_id=category_id,
                description=description,
                operation_type=operation_type,
            )
            if position is not None:
                self._reorder(rule_id, position)
            rule = self.db.get_rule(rule_id)
        self._warn_conflicts(rule)
        self._publish("created", rule)
        return rule

    def get_rule(self, rule_id: str) -> Optional[StandardizationRule]:
        return self.db.get_rule(rule_id)

    def require_rule(self, rule_id: str) -> StandardizationRule:
        rule = self.db.get_rule(rule_id)
        if rule is None:
            raise NotFoundError(not_found("Rule", rule_id))
        return rule

    def list_rules(self) -> list[StandardizationRule]:
        """Rules in evaluation order."""
        return self.db.list_rules()

    def update_rule(self, rule_id: str, **fields) -> StandardizationRule:
        """Update rule fields (pattern, match_type, category_id, description,
        operation_type, account_id)."""
        allowed = {"pattern", "match_type", "category_id", "description", "operation_type", "account_id"}
        unknown = set(fields) - allowed
        if unknown:
            raise ValidationError(f"Cannot update field(s): {', '.join(sorted(unknown))}")
        with self.db.atomic():
            rule = self.require_rule(rule_id)
            merged = {
                "pattern": rule.pattern,
                "match_type": rule.match_type,
                "account_id": rule.account_id,
                "category_id": rule.category_id,
                "description": rule.description,
                "operation_type": rule.operation_type,
                **fields,
            }
            merged["match_type"] = RuleMatchType(merged["match_type"])
            if merged["operation_type"] is not None:
                merged["operation_type"] = OperationType(merged["operation_type"])
            self._validate(**merged)
            self.db.update_rule(rule_id, **fields)
            rule = self.db.get_rule(rule_id)
        if {"pattern", "match_type", "account_id"} & set(fields):
            self._warn_conflicts(rule)
        self._publish("updated", rule)
        return rule

    def delete_rule(self, rule_id: str) -> None:
        with self.db.atomic():
            rule = self.require_rule(rule_id)
            self.db.delete_rule(rule_id)
            for index, remaining in enumerate(self.db.list_rules()):
                if remaining.position != index:
                    self.db.update_rule(remaining.id, position=index)
        self._publish("deleted", rule)

    def _reorder(self, rule_id: str, position: int) -> None:
        ordered = [r for r in self.db.list_rules() if r.id != rule_id]
        position = max(0, min(position, len(ordered)))
        ids = [r.id for r in ordered]
        ids.insert(position, rule_id)
        for index, current_id in enumerate(ids):
            self.db.update_rule(current_id, position=index)

    def move_rule(self, rule_id: str, position: int) -> StandardizationRule:
        """Move a rule to another evaluation slot, shifting the others."""
        with self.db.atomic():
            self.require_rule(rule_id)
            self._reorder(rule_id, position)
            rule = self.db.get_rule(rule_id)
        self._publish("updated", rule)
        return rule

    def find_conflicts(self) -> list[tuple[StandardizationRule, StandardizationRule]]:
        """Pairs of (winning rule, shadowed rule) sharing one match predicate."""
        seen: dict[tuple, StandardizationRule] = {}
        conflicts = []
        for rule in self.db.list_rules():
            key = (rule.match_type, normalize_pattern(rule.pattern), rule.account_id)
            if key in seen:
                conflicts.append((seen[key], rule))
            else:
                seen[key] = rule
        return conflicts

    def _contradiction(
        self, rule: StandardizationRule, amount: Decimal, operation: OperationType
    ) -> Optional[str]:
        if rule.operation_type is not None:
            if is_inflow(get_flow_type_from_operation(rule.operation_type)) != (amount > 0):
                return (
                    f"Rule {rule.id} skipped: operation '{rule.operation_type.value}' "
                    f"contradicts amount {amount}"
                )
        if rule.category_id is not None:
            category = self.db.get_category(rule.category_id)
            if category is not None and not category_accepts(category.direction, operation):
                return (
                    f"Rule {rule.id} skipped: category '{category.name}' cannot "
                    f"classify a '{operation.value}' row"
                )
        return None

    def standardize(
        self,
        raw_description: str,
        amount: Decimal,
        account_id: Optional[str] = None,
        rules: Optional[list[StandardizationRule]] = None,
    ) -> Standardized:
        """Run the rules over a raw row; the first applicable match wins.

        With no match the description stays raw, the category empty and the
        operation is inferred from the amount sign. A matching rule that
        contradicts the amount is skipped with a warning.
        """
        notes = []
        for rule in rules if rules is not None else self.db.list_rules():
            if not rule_matches(rule, raw_description, account_id):
                continue
            operation = rule.operation_type or operation_for_amount(amount)
            problem = self._contradiction(rule, amount, operation)
            if problem is not None:
                logger.warning(problem)
                notes.append(problem)
                continue
            return Standardized(
                description=rule.description or raw_description,
                category_id=rule.category_id,
                operation_type=operation,
                rule_id=rule.id,
                warnings=tuple(notes),
            )
        return Standardized(
            description=raw_description,
            category_id=None,
            operation_type=operation_for_amount(amount),
            warnings=tuple(notes),
        )

    def match(
        self, description: str, account_id: Optional[str] = None, amount: Optional[Decimal] = None
    ) -> Optional[StandardizationRule]:
        """Return the rule that would apply to a description, if any."""
        if amount is None:
            for rule in self.db.list_rules():
                if rule_matches(rule, description, account_id):
                    return rule
            return None
        rule_id = self.standardize(description, amount, account_id).rule_id
        return self.db.get_rule(rule_id) if rule_id is not None else None

    def apply_rule(self, rule_id: str, row_id: str):
        """Re-standardize a not yet committed imported row with one rule.

        Raises:
            ConstraintViolationError: If the row is already committed, duplicate
                or ignored, or the rule contradicts the row's amount
            ValidationError: If the rule does not match the row
        """
        with self.db.atomic():
            rule = self.require_rule(rule_id)
            row = self.db.get_imported_row(row_id)
            if row is None:
                raise NotFoundError(not_found("Imported row", row_id))
            if row.status not in (ImportRowStatus.UNMATCHED, ImportRowStatus.RULE_APPLIED):
                raise ConstraintViolationError(
                    invalid_row_transition(row_id, row.status.value, ImportRowStatus.RULE_APPLIED.value)
                )
            if not rule_matches(rule, row.raw_description, row.account_id):
                raise ValidationError(f"Rule {rule_id} does not match row {row_id}")
            operation = rule.operation_type or operation_for_amount(row.amount)
            problem = self._contradiction(rule, row.amount, operation)
            if problem is not None:
                raise ConstraintViolationError(problem)
            self.db.update_imported_row(
                row_id,
                description=rule.description or row.raw_description,
                category_id=rule.category_id,
                operation_type=operation,
                rule_id=rule.id,
                status=ImportRowStatus.RULE_APPLIED,
            )
            row = self.db.get_imported_row(row_id)
        self.bus.publish(
            FinanceEvent(
                type=entity_event_type("updated"),
                entity_kind="imported_row",
                operation="updated",
                payload={"id": row.id, "row": row},
            )
        )
        return row
