"""
Decision Table Model

Columns, conditions, rules and tables used by the triage engine, plus the
authoring operations that keep every rule's conditions in lockstep with the
table's columns.
"""
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class TouchLevel(str, Enum):
    """Routing classification produced by triage."""
    STP = "STP"
    LOW = "LOW"
    MODERATE = "MODERATE"
    HIGH = "HIGH"


class ConditionOperator(str, Enum):
    """Comparison operators available to a decision condition."""
    EQ = "eq"
    NEQ = "neq"
    GT = "gt"
    GTE = "gte"
    LT = "lt"
    LTE = "lte"
    BETWEEN = "between"
    CONTAINS = "contains"
    BLANK = "blank"
    NOTBLANK = "notblank"
    ANY = "any"


NUMERIC_OPERATORS = {
    ConditionOperator.GT,
    ConditionOperator.GTE,
    ConditionOperator.LT,
    ConditionOperator.LTE,
    ConditionOperator.BETWEEN,
}


class EntitySource(str, Enum):
    """Where a field value comes from."""
    IDP = "IDP"
    POLICY = "Policy"
    WORKFLOW = "Workflow"


class ColumnDataType(str, Enum):
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    DATE = "date"
    PERCENT = "percent"


class TableStatus(str, Enum):
    DRAFT = "draft"
    ACTIVE = "active"
    ARCHIVED = "archived"


class IssueSeverity(str, Enum):
    WARNING = "warning"
    ERROR = "error"


DEFAULT_RULE_ORDER = 99


class DecisionTableError(ValueError):
    """Raised when an authoring operation would break the table."""


class DecisionTableElementNotFound(DecisionTableError):
    """Raised when a column, rule or condition id does not exist."""


def _new_id(prefix: str) -> str:
    return f"{prefix}{uuid.uuid4().hex[:12]}"


@dataclass
class DecisionColumn:
    """A field participating in the table."""
    id: str
    field_name: str
    display_name: str
    entity_source: EntitySource = EntitySource.IDP
    data_type: ColumnDataType = ColumnDataType.STRING
    unit: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "field_name": self.field_name,
            "display_name": self.display_name,
            "entity_source": self.entity_source.value,
            "data_type": self.data_type.value,
            "unit": self.unit,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DecisionColumn":
        return cls(
            id=data["id"],
            field_name=data["field_name"],
            display_name=data.get("display_name") or data["field_name"],
            entity_source=EntitySource(data.get("entity_source", EntitySource.IDP.value)),
            data_type=ColumnDataType(data.get("data_type", ColumnDataType.STRING.value)),
            unit=data.get("unit"),
        )


@dataclass
class DecisionCondition:
    """One cell of a rule row: an operator applied to one column."""
    id: str
    column_id: str
    field_name: str
    operator: ConditionOperator = ConditionOperator.ANY
    value: str = ""
    value2: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "column_id": self.column_id,
            "field_name": self.field_name,
            "operator": self.operator.value,
            "value": self.value,
            "value2": self.value2,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DecisionCondition":
        return cls(
            id=data["id"],
            column_id=data["column_id"],
            field_name=data["field_name"],
            operator=ConditionOperator(data.get("operator", ConditionOperator.ANY.value)),
            value=data.get("value") or "",
            value2=data.get("value2"),
        )


@dataclass
class DecisionRule:
    """A row of the table: AND of its conditions mapped to a touch level."""
    id: str
    order: int
    output_touch_level: TouchLevel
    description: Optional[str] = None
    conditions: List[DecisionCondition] = field(default_factory=list)
    is_default: bool = False

    def get_condition(self, condition_id: str) -> DecisionCondition:
        for condition in self.conditions:
            if condition.id == condition_id:
                return condition
        raise DecisionTableElementNotFound(
            f"Condition {condition_id} not found on rule {self.id}"
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "order": self.order,
            "description": self.description,
            "conditions": [c.to_dict() for c in self.conditions],
            "output_touch_level": self.output_touch_level.value,
            "is_default": self.is_default,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DecisionRule":
        return cls(
            id=data["id"],
            order=int(data.get("order", 0)),
            description=data.get("description"),
            conditions=[DecisionCondition.from_dict(c) for c in data.get("conditions", [])],
            output_touch_level=TouchLevel(data["output_touch_level"]),
            is_default=bool(data.get("is_default", False)),
        )


@dataclass
class TableIssue:
    """A problem found by DecisionTable.validate()."""
    severity: IssueSeverity
    message: str
    rule_id: Optional[str] = None
    column_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "severity": self.severity.value,
            "message": self.message,
            "rule_id": self.rule_id,
            "column_id": self.column_id,
        }


@dataclass
class DecisionTable:
    """
    An ordered decision table for one transaction type.

    The table owns its rules and each rule owns one condition per column.
    Use the authoring methods below rather than editing the lists directly;
    they keep conditions and columns in lockstep.
    """
    id: str
    name: str
    transaction_type_key: str
    version: str = "1.0"
    status: TableStatus = TableStatus.DRAFT
    columns: List[DecisionColumn] = field(default_factory=list)
    rules: List[DecisionRule] = field(default_factory=list)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    @property
    def default_rule(self) -> Optional[DecisionRule]:
        return next((r for r in self.rules if r.is_default), None)

    @property
    def ordered_rules(self) -> List[DecisionRule]:
        """Non-default rules in evaluation order."""
        return sorted((r for r in self.rules if not r.is_default), key=lambda r: r.order)

    def get_column(self, column_id: str) -> DecisionColumn:
        for column in self.columns:
            if column.id == column_id:
                return column
        raise DecisionTableElementNotFound(f"Column {column_id} not found")

    def get_rule(self, rule_id: str) -> DecisionRule:
        for rule in self.rules:
            if rule.id == rule_id:
                return rule
        raise DecisionTableElementNotFound(f"Rule {rule_id} not found")

    def display_names(self) -> Dict[str, str]:
        """Map field name to column display name."""
        return {c.field_name: c.display_name for c in self.columns}

    # ------------------------------------------------------------------
    # Authoring operations
    # ------------------------------------------------------------------

    def add_column(
        self,
        field_name: str,
        display_name: Optional[str] = None,
        entity_source: EntitySource = EntitySource.IDP,
        data_type: ColumnDataType = ColumnDataType.STRING,
        unit: Optional[str] = None,
    ) -> DecisionColumn:
        """
        Add a column and append an ANY condition for it to every non-default rule.

        Raises:
            DecisionTableError: If the field already has a column
        """
        if any(c.field_name == field_name for c in self.columns):
            raise DecisionTableError(f"Field {field_name} already has a column")

        column = DecisionColumn(
            id=f"col_{field_name}",
            field_name=field_name,
            display_name=display_name or field_name,
            entity_source=entity_source,
            data_type=data_type,
            unit=unit,
        )
        if any(c.id == column.id for c in self.columns):
            column.id = _new_id("col_")
        self.columns.append(column)

        for rule in self.rules:
            if rule.is_default:
                continue
            rule.conditions.append(self._wildcard_condition(column))
        return column

    def remove_column(self, column_id: str) -> DecisionColumn:
        """Remove a column and its condition from every rule."""
        column = self.get_column(column_id)
        self.columns = [c for c in self.columns if c.id != column_id]
        for rule in self.rules:
            rule.conditions = [c for c in rule.conditions if c.column_id != column_id]
        return column

    def add_rule(
        self,
        description: str = "New rule",
        output_touch_level: TouchLevel = TouchLevel.MODERATE,
    ) -> DecisionRule:
        """Append a rule after the highest order, with an ANY condition per column."""
        rule = DecisionRule(
            id=f"RULE-{uuid.uuid4().hex[:8].upper()}",
            order=max((r.order for r in self.ordered_rules), default=0) + 1,
            description=description,
            conditions=[self._wildcard_condition(c) for c in self.columns],
            output_touch_level=output_touch_level,
        )
        default = self.default_rule
        self.rules = self.ordered_rules + [rule] + ([default] if default else [])
        return rule

    def remove_rule(self, rule_id: str) -> DecisionRule:
        """Remove a rule and renumber the remaining rules from 1."""
        rule = self.get_rule(rule_id)
        self.rules = [r for r in self.rules if r.id != rule_id]
        self._renumber(self.ordered_rules)
        return rule

    def reorder_rules(self, rule_ids: List[str]) -> None:
        """
        Set evaluation order from a list of non-default rule ids.

        Raises:
            DecisionTableError: If rule_ids is not a permutation of the non-default rules
        """
        current = {r.id: r for r in self.rules if not r.is_default}
        if len(rule_ids) != len(current) or set(rule_ids) != set(current):
            raise DecisionTableError(
                "Reorder must list every non-default rule exactly once"
            )
        self._renumber([current[rule_id] for rule_id in rule_ids])

    def update_condition(
        self,
        rule_id: str,
        condition_id: str,
        operator: Optional[ConditionOperator] = None,
        value: Optional[str] = None,
        value2: Optional[str] = None,
    ) -> DecisionCondition:
        """Change the operator and/or operands of one condition."""
        rule = self.get_rule(rule_id)
        if rule.is_default:
            raise DecisionTableError("The default rule has no conditions")
        condition = rule.get_condition(condition_id)
        if operator is not None:
            condition.operator = operator
        if value is not None:
            condition.value = value
        if value2 is not None:
            condition.value2 = value2
        return condition

    def update_rule(
        self,
        rule_id: str,
        description: Optional[str] = None,
        output_touch_level: Optional[TouchLevel] = None,
    ) -> DecisionRule:
        rule = self.get_rule(rule_id)
        if description is not None:
            rule.description = description
        if output_touch_level is not None:
            rule.output_touch_level = output_touch_level
        return rule

    def set_default_rule(
        self,
        output_touch_level: TouchLevel,
        description: str = "Default catch-all",
    ) -> DecisionRule:
        """Create or update the table's single default rule."""
        default = self.default_rule
        if default is None:
            default = DecisionRule(
                id="RULE-DEFAULT",
                order=DEFAULT_RULE_ORDER,
                description=description,
                output_touch_level=output_touch_level,
                is_default=True,
            )
            if any(r.id == default.id for r in self.rules):
                default.id = _new_id("RULE-DEFAULT-")
            self.rules.append(default)
        else:
            default.output_touch_level = output_touch_level
            default.description = description
        return default

    def _wildcard_condition(self, column: DecisionColumn) -> DecisionCondition:
        return DecisionCondition(
            id=_new_id("c_"),
            column_id=column.id,
            field_name=column.field_name,
            operator=ConditionOperator.ANY,
            value="",
        )

    def _renumber(self, ordered: List[DecisionRule]) -> None:
        for position, rule in enumerate(ordered, start=1):
            rule.order = position

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def validate(self) -> List[TableIssue]:
        """
        Check the structural invariants the evaluator relies on.

        The evaluator never enforces these at runtime; this surfaces problems
        at authoring time. A missing default rule is only a warning because
        evaluation still falls back to MODERATE.
        """
        issues: List[TableIssue] = []
        column_ids = {c.id for c in self.columns}

        seen_fields = set()
        for column in self.columns:
            if column.field_name in seen_fields:
                issues.append(TableIssue(
                    IssueSeverity.ERROR,
                    f"Field {column.field_name} has more than one column",
                    column_id=column.id,
                ))
            seen_fields.add(column.field_name)

        defaults = [r for r in self.rules if r.is_default]
        if not defaults:
            issues.append(TableIssue(
                IssueSeverity.WARNING,
                "Table has no default rule; unmatched cases fall back to MODERATE",
            ))
        elif len(defaults) > 1:
            issues.append(TableIssue(
                IssueSeverity.ERROR,
                f"Table has {len(defaults)} default rules; at most one is allowed",
            ))

        ordered = self.ordered_rules
        orders = [r.order for r in ordered]
        if orders != list(range(1, len(ordered) + 1)):
            issues.append(TableIssue(
                IssueSeverity.WARNING,
                f"Rule orders {orders} are not contiguous from 1",
            ))

        for rule in ordered:
            referenced = [c.column_id for c in rule.conditions]
            for column_id in referenced:
                if column_id not in column_ids:
                    issues.append(TableIssue(
                        IssueSeverity.ERROR,
                        f"Rule {rule.id} references unknown column {column_id}",
                        rule_id=rule.id,
                        column_id=column_id,
                    ))
            for column in self.columns:
                count = referenced.count(column.id)
                if count != 1:
                    issues.append(TableIssue(
                        IssueSeverity.ERROR,
                        f"Rule {rule.id} has {count} conditions for column {column.id}",
                        rule_id=rule.id,
                        column_id=column.id,
                    ))
            for condition in rule.conditions:
                if condition.operator == ConditionOperator.BETWEEN and not (condition.value2 or "").strip():
                    issues.append(TableIssue(
                        IssueSeverity.WARNING,
                        f"Condition {condition.id} uses between without an upper bound",
                        rule_id=rule.id,
                        column_id=condition.column_id,
                    ))

        return issues

    def has_errors(self) -> bool:
        return any(i.severity == IssueSeverity.ERROR for i in self.validate())

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "transaction_type_key": self.transaction_type_key,
            "version": self.version,
            "status": self.status.value,
            "columns": [c.to_dict() for c in self.columns],
            "rules": [r.to_dict() for r in self.rules],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DecisionTable":
        return cls(
            id=data["id"],
            name=data["name"],
            transaction_type_key=data["transaction_type_key"],
            version=data.get("version") or "1.0",
            status=TableStatus(data.get("status", TableStatus.DRAFT.value)),
            columns=[DecisionColumn.from_dict(c) for c in data.get("columns", [])],
            rules=[DecisionRule.from_dict(r) for r in data.get("rules", [])],
        )
