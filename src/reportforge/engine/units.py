"""Unit-type algebra for formula calculations.

every block has a unit (count, currency, volume, rate) and a calculation has
to make sense for its operands' units. add/subtract need matching units,
multiply/divide produce a set of candidate result units - one candidate is
picked automatically, several need the user to choose.
"""

from reportforge.errors import UnitTypeError
from reportforge.models.catalog import SchemaCatalog
from reportforge.models.formula import CalculationOperator, MetricBlock, MetricOp, UnitType

# money fields are stored in minor units (cents)
CURRENCY_FIELDS = frozenset(
    {
        "amount",
        "unit_amount",
        "amount_received",
        "amount_refunded",
        "amount_captured",
        "amount_due",
        "amount_paid",
        "amount_remaining",
        "balance",
        "subtotal",
        "total",
        "starting_balance",
        "ending_balance",
        "fee",
        "net",
    }
)

VOLUME_FIELDS = frozenset({"quantity", "units", "seats"})

UNIT_LABELS = {
    UnitType.COUNT: "Count",
    UnitType.CURRENCY: "Volume ($)",
    UnitType.VOLUME: "Volume",
    UnitType.RATE: "Rate (%)",
}


def infer_unit_type(
    object_name: str,
    field_name: str,
    op: MetricOp,
    catalog: SchemaCatalog | None = None,
) -> UnitType:
    """Best guess at the unit of an aggregation over a field."""
    if op in (MetricOp.COUNT, MetricOp.DISTINCT_COUNT):
        return UnitType.COUNT
    if catalog is not None:
        schema_field = catalog.get_field(object_name, field_name)
        if schema_field is not None and schema_field.unit is not None:
            return schema_field.unit
    if field_name in CURRENCY_FIELDS:
        return UnitType.CURRENCY
    if field_name in VOLUME_FIELDS:
        return UnitType.VOLUME
    return UnitType.COUNT


def _multiply(left: UnitType, right: UnitType) -> list[UnitType]:
    pair = {left, right}
    if pair == {UnitType.CURRENCY} or pair == {UnitType.VOLUME}:
        raise UnitTypeError(
            f"Cannot multiply {UNIT_LABELS[left]} by {UNIT_LABELS[right]}",
            code="incompatible_units",
        )
    if pair == {UnitType.COUNT, UnitType.RATE}:
        # "customers x churn rate" could be either
        return [UnitType.COUNT, UnitType.RATE]
    if pair == {UnitType.CURRENCY, UnitType.VOLUME}:
        return [UnitType.CURRENCY]
    if len(pair) == 1:
        return [left]
    # count x X and rate x X both keep X
    (other,) = pair - {UnitType.COUNT} if UnitType.COUNT in pair else pair - {UnitType.RATE}
    return [other]


def _divide(left: UnitType, right: UnitType) -> list[UnitType]:
    if left == right:
        return [UnitType.RATE]
    if right == UnitType.COUNT:
        # revenue / customers: average order value, or a rate
        return [left, UnitType.RATE]
    if right == UnitType.RATE:
        return [left]
    if left == UnitType.CURRENCY and right == UnitType.VOLUME:
        return [UnitType.CURRENCY]
    return [UnitType.RATE]


def result_unit_types(
    operator: CalculationOperator,
    left: UnitType,
    right: UnitType,
) -> list[UnitType]:
    """Valid result units for `left operator right`.

    Raises:
        UnitTypeError: if the operands can't be combined at all.
    """
    if operator in (CalculationOperator.ADD, CalculationOperator.SUBTRACT):
        if left != right:
            verb = "Addition" if operator == CalculationOperator.ADD else "Subtraction"
            raise UnitTypeError(
                f"{verb} requires matching unit types. "
                f"Left is {UNIT_LABELS[left]}, right is {UNIT_LABELS[right]}.",
                code="unit_mismatch",
            )
        return [left]
    if operator == CalculationOperator.MULTIPLY:
        return _multiply(left, right)
    return _divide(left, right)


def pick_result_unit(
    operator: CalculationOperator,
    left: UnitType,
    right: UnitType,
    explicit: UnitType | None = None,
) -> UnitType:
    """Resolve the unit of a calculation result.

    an explicit choice wins as long as the combination itself is allowed.
    otherwise there has to be exactly one candidate.
    """
    candidates = result_unit_types(operator, left, right)
    if explicit is not None:
        return explicit
    if len(candidates) > 1:
        options = ", ".join(c.value for c in candidates)
        raise UnitTypeError(
            f"{UNIT_LABELS[left]} {operator.value} {UNIT_LABELS[right]} is ambiguous, "
            f"pick a result unit type ({options})",
            code="ambiguous_unit",
        )
    return candidates[0]


def format_value(value: float | None, unit_type: UnitType | None) -> str:
    """Human readable rendering, currency in major units."""
    if value is None:
        return "N/A"
    if unit_type == UnitType.CURRENCY:
        return f"${value / 100:,.2f}"
    if unit_type == UnitType.RATE:
        return f"{value * 100:.2f}%"
    if float(value).is_integer():
        return f"{int(value):,}"
    return f"{value:,.2f}"


def block_unit_type(block: MetricBlock, catalog: SchemaCatalog | None = None) -> UnitType:
    """Unit of a metric block: explicit override, else inferred from its source."""
    if block.unit_type is not None:
        return block.unit_type
    if block.source is None:
        return UnitType.COUNT
    return infer_unit_type(block.source.object, block.source.field, block.op, catalog)
