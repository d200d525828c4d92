"""Formula evaluation and validation.

evaluate() combines already-aggregated block results. it never raises for a
bad formula: problems come back as issues on the MetricResult, and a division
by zero is reported in the note rather than leaking inf/nan into a chart.

validate_formula() is the up-front check the editor runs before saving.
"""

import logging

from reportforge.engine.time import Bucket
from reportforge.engine.units import block_unit_type, pick_result_unit
from reportforge.errors import UnitTypeError
from reportforge.models.catalog import SchemaCatalog
from reportforge.models.formula import CalculationOperator, FieldRef, Formula, condition_value_error
from reportforge.models.query import BlockResult, MetricResult, SeriesPoint, ValidationIssue, ValidationResult

logger = logging.getLogger(__name__)


def combine(operator: CalculationOperator, left: float, right: float) -> tuple[float, bool]:
    """Apply operator to two numbers. second item is True when a zero division was absorbed."""
    if operator == CalculationOperator.ADD:
        return left + right, False
    if operator == CalculationOperator.SUBTRACT:
        return left - right, False
    if operator == CalculationOperator.MULTIPLY:
        return left * right, False
    if right == 0:
        return 0.0, True
    return left / right, False


def _empty_result(buckets: list[Bucket], note: str | None = None) -> MetricResult:
    return MetricResult(series=[SeriesPoint(date=b.label, value=0.0) for b in buckets], note=note)


def evaluate(
    formula: Formula,
    buckets: list[Bucket],
    block_results: list[BlockResult],
) -> MetricResult:
    """Compose block results into the formula's series and headline value.

    Args:
        formula: The formula the block results were computed for.
        buckets: Buckets shared by every block result.
        block_results: One BlockResult per formula block, same order.

    Returns:
        MetricResult. configuration problems land in `issues` with a None value.
    """
    if not formula.blocks or not block_results:
        return _empty_result(buckets, note="No metric blocks defined")

    calc = formula.calculation
    if calc is None or len(formula.blocks) == 1:
        first = block_results[0]
        return MetricResult(
            series=list(first.series),
            value=first.value,
            unit_type=formula.output_unit or first.unit_type,
            note=first.note,
            blocks=block_results,
        )

    by_id = {result.block_id: result for result in block_results}
    left, right = by_id.get(calc.left_operand), by_id.get(calc.right_operand)
    if left is None or right is None:
        result = _empty_result(buckets)
        result.blocks = block_results
        result.issues.append(
            ValidationIssue(
                code="unknown_operand",
                message=f"Calculation references missing blocks: {calc.left_operand}, {calc.right_operand}",
                location="calculation",
            )
        )
        return result

    try:
        unit_type = pick_result_unit(calc.operator, left.unit_type, right.unit_type, calc.result_unit_type)
    except UnitTypeError as e:
        result = _empty_result(buckets)
        result.blocks = block_results
        result.issues.append(ValidationIssue(code=e.code, message=str(e), location="calculation"))
        return result

    # block series always line up with the shared buckets, so combine by position
    series: list[SeriesPoint] = []
    zero_divisions = 0
    for bucket, lpoint, rpoint in zip(buckets, left.series, right.series):
        value, divided_by_zero = combine(calc.operator, lpoint.value, rpoint.value)
        zero_divisions += divided_by_zero
        series.append(SeriesPoint(date=bucket.label, value=value))

    value = None
    headline_by_zero = False
    if left.value is not None and right.value is not None:
        value, headline_by_zero = combine(calc.operator, left.value, right.value)

    notes = [n for n in (left.note, right.note) if n]
    if zero_divisions:
        notes.append(f"Division by zero in {zero_divisions} bucket(s), shown as 0")
    elif headline_by_zero:
        notes.append("Division by zero in the headline value, shown as 0")
    if zero_divisions or headline_by_zero:
        logger.debug("formula divided by zero in %d bucket(s)", zero_divisions)

    return MetricResult(
        series=series,
        value=value,
        unit_type=formula.output_unit or unit_type,
        note="; ".join(dict.fromkeys(notes)) or None,
        blocks=block_results,
    )


def _check_field(
    result: ValidationResult,
    catalog: SchemaCatalog,
    ref: FieldRef,
    location: str,
) -> None:
    obj = catalog.get_object(catalog.canonical_name(ref.object))
    if obj is None:
        result.add("unknown_object", f"Unknown object '{ref.object}'", location)
    elif obj.get_field(ref.field) is None:
        result.add("unknown_field", f"Unknown field '{ref.qualified}'", location)


def validate_formula(formula: Formula, catalog: SchemaCatalog | None = None) -> ValidationResult:
    """Check a formula's cross-field invariants and report every problem found."""
    result = ValidationResult()

    if not formula.blocks:
        result.add("no_blocks", "Formula has no metric blocks")

    seen: set[str] = set()
    for i, block in enumerate(formula.blocks):
        location = f"blocks[{i}]"
        if block.id in seen:
            result.add("duplicate_block_id", f"Block id '{block.id}' is used more than once", location)
        seen.add(block.id)

        if block.source is None:
            result.add("missing_source", f"Block '{block.name}' has no source field", f"{location}.source")
        elif catalog is not None:
            _check_field(result, catalog, block.source, f"{location}.source")

        for j, condition in enumerate(block.filters):
            filter_location = f"{location}.filters[{j}]"
            error = condition_value_error(condition.operator, condition.value)
            if error:
                result.add("invalid_filter", f"Filter on {condition.field.qualified}: {error}", filter_location)
            if catalog is not None:
                _check_field(result, catalog, condition.field, filter_location)

    calc = formula.calculation
    if calc is None:
        return result

    if len(formula.blocks) < 2:
        result.add("calculation_needs_two_blocks", "A calculation needs at least two blocks", "calculation")

    left, right = formula.get_block(calc.left_operand), formula.get_block(calc.right_operand)
    for operand, block in ((calc.left_operand, left), (calc.right_operand, right)):
        if block is None:
            result.add("unknown_operand", f"Calculation references unknown block '{operand}'", "calculation")
    if left is None or right is None:
        return result

    try:
        pick_result_unit(
            calc.operator,
            block_unit_type(left, catalog),
            block_unit_type(right, catalog),
            calc.result_unit_type,
        )
    except UnitTypeError as e:
        result.add(e.code, str(e), "calculation")
    return result
