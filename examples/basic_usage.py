"""Basic usage example for ReportForge."""

import random
from datetime import date, timedelta

from reportforge import ReportEngine
from reportforge.engine.units import format_value
from reportforge.models import Formula, ReportQuery


def generate_tables(customers: int = 50, payments: int = 400) -> dict[str, list[dict]]:
    """A small Stripe-like export: customers, payments and refunds."""
    random.seed(42)  # Reproducible data
    start = date(2024, 1, 1)

    customer_rows = [
        {
            "id": f"cus_{i}",
            "email": f"user{i}@example.com",
            "created": (start + timedelta(days=random.randint(0, 300))).isoformat(),
            "balance": random.choice([0, 0, 500, 2500]),
        }
        for i in range(customers)
    ]
    payment_rows = [
        {
            "id": f"pi_{i}",
            "customer_id": f"cus_{random.randrange(customers)}",
            "amount": random.choice([900, 1900, 4900, 9900]),
            "currency": random.choice(["usd", "usd", "eur"]),
            "status": random.choices(["succeeded", "failed"], weights=[9, 1])[0],
            "created": (start + timedelta(days=random.randint(0, 365))).isoformat(),
        }
        for i in range(payments)
    ]
    refund_rows = [
        {"id": f"re_{i}", "charge_id": None, "amount": p["amount"], "created": p["created"]}
        for i, p in enumerate(random.sample(payment_rows, 20))
    ]
    return {"customers": customer_rows, "payments": payment_rows, "refunds": refund_rows}


def main():
    """Demonstrate ReportForge capabilities."""
    engine = ReportEngine.from_tables(generate_tables())

    print("=" * 60)
    print("ReportForge Subscription Analytics Demo")
    print("=" * 60)

    # 1. Monthly revenue from successful payments
    revenue = Formula.model_validate(
        {
            "blocks": [
                {
                    "id": "revenue",
                    "name": "Revenue",
                    "source": "payment.amount",
                    "filters": [{"field": "payment.status", "operator": "equals", "value": "succeeded"}],
                }
            ]
        }
    )
    query = ReportQuery(formula=revenue, start=date(2024, 1, 1), end=date(2024, 6, 30), objects=["payment"])
    result = engine.compute(query)

    print("\n1. Monthly Revenue (first 6 months):")
    for point in result.series:
        print(f"   {point.date}: {format_value(point.value, result.unit_type)}")
    print(f"   Total: {format_value(result.value, result.unit_type)}")

    # 2. Average revenue per paying customer
    arpc = Formula.model_validate(
        {
            "blocks": [
                {"id": "revenue", "name": "Revenue", "source": "payment.amount"},
                {"id": "payers", "name": "Payers", "source": "payment.customer_id", "op": "distinct_count"},
            ],
            "calculation": {
                "operator": "divide",
                "left_operand": "revenue",
                "right_operand": "payers",
                "result_unit_type": "currency",
            },
        }
    )
    result = engine.compute(query.model_copy(update={"formula": arpc}))
    print(f"\n2. Revenue per Paying Customer: {format_value(result.value, result.unit_type)}")

    # 3. Comparison with the previous period
    comparison = engine.compare(query, "previous_period")
    print("\n3. Change vs Previous 6 Months:")
    print(f"   Previous: {format_value(comparison.baseline, result.unit_type)}")
    if comparison.percent_change is not None:
        print(f"   Change: {comparison.percent_change:+.1%}")

    # 4. Breakdown by currency
    print("\n4. Revenue by Currency:")
    for currency, group in engine.group_by(query, "payment.currency").items():
        print(f"   {currency}: {format_value(group.value, group.unit_type)}")

    # 5. Stock metric: latest customer balance
    balance = Formula.model_validate(
        {"blocks": [{"id": "balance", "name": "Balance", "source": "customer.balance", "type": "latest"}]}
    )
    result = engine.compute(
        ReportQuery(formula=balance, start=date(2024, 1, 1), end=date(2024, 12, 31), granularity="quarter")
    )
    print("\n5. Latest Customer Balance by Quarter:")
    for point in result.series:
        print(f"   {point.date}: {format_value(point.value, result.unit_type)}")

    # 6. Validation problems come back as issues, not exceptions
    broken = revenue.model_dump()
    broken["calculation"] = {"operator": "add", "left_operand": "revenue", "right_operand": "missing"}
    print("\n6. Validating a Broken Formula:")
    for issue in engine.validate(Formula.model_validate(broken)).issues:
        print(f"   [{issue.code}] {issue.message}")

    print("\n" + "=" * 60)
    print("Demo complete!")
    print("=" * 60)


if __name__ == "__main__":
    main()
