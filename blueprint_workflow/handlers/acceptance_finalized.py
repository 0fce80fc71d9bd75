"""Accepted acceptance -> invoice, payment and warranty records."""

import asyncio
from dataclasses import dataclass
from datetime import date, timedelta

from ..events import AcceptanceFinalizedPayload, Event, SystemEventType
from ..models import FollowUpEvent, StepResult, WorkflowContext
from ..workflow import HandlerOptions
from .base import HANDLER_RETRY_POLICY, RecordHandler

BILLING_PERCENTAGE = 80
PAYMENT_PERCENTAGE = 80
RETENTION_PERCENTAGE = 20
INVOICE_DUE_DAYS = 30
PAYMENT_DUE_DAYS = 45
CURRENCY = "TWD"


@dataclass(frozen=True)
class FinancialData:
    total_amount: float
    billing_amount: float
    payment_amount: float
    retention_amount: float


def calculate_financial_data(amount: float | None) -> FinancialData:
    total = amount or 0.0
    return FinancialData(
        total_amount=total,
        billing_amount=total * BILLING_PERCENTAGE / 100,
        payment_amount=total * PAYMENT_PERCENTAGE / 100,
        retention_amount=total * RETENTION_PERCENTAGE / 100,
    )


def add_one_year(day: date) -> date:
    try:
        return day.replace(year=day.year + 1)
    except ValueError:
        # Feb 29
        return day.replace(year=day.year + 1, day=28)


class AcceptanceFinalizedHandler(RecordHandler):
    """Creates billing records and starts the warranty for an accepted acceptance.

    The three records are created concurrently; one failing does not undo
    the others, it is reported in the result data instead.
    """

    id = "acceptance-finalized-handler"
    name = "Create invoice and warranty on acceptance"
    payload_model = AcceptanceFinalizedPayload
    created_records = (
        ("finance", "invoice_record_id"),
        ("finance", "payment_record_id"),
        ("warranties", "warranty_record_id"),
    )
    options = HandlerOptions(priority=7, retry_policy=HANDLER_RETRY_POLICY, timeout=15.0, critical=False)

    async def process(
        self, event: Event, payload: AcceptanceFinalizedPayload, context: WorkflowContext
    ) -> StepResult:
        if payload.final_decision != "accepted":
            return self.skipped("Acceptance not accepted")

        financial = calculate_financial_data(payload.amount)
        today = self.now().date()
        warranty_end = add_one_year(today)

        invoice, payment, warranty = await asyncio.gather(
            self._create_finance_record(event, payload, "invoice", financial.billing_amount, today, INVOICE_DUE_DAYS),
            self._create_finance_record(event, payload, "payment", financial.payment_amount, today, PAYMENT_DUE_DAYS),
            self._create_warranty_record(event, payload, today, warranty_end),
            return_exceptions=True,
        )

        created = {
            "invoice_record_id": invoice,
            "payment_record_id": payment,
            "warranty_record_id": warranty,
        }
        failures = [value for value in created.values() if isinstance(value, BaseException)]
        for key, value in created.items():
            if not isinstance(value, BaseException):
                context.data[key] = value
        if failures:
            self._logger.warning(f"Some operations failed: {len(failures)} error(s)")

        summary = {
            "acceptance_id": payload.acceptance_id,
            "invoice_generated": not isinstance(invoice, BaseException),
            "payment_generated": not isinstance(payment, BaseException),
            "warranty_created": not isinstance(warranty, BaseException),
        }
        follow_up = [FollowUpEvent(SystemEventType.INVOICE_GENERATED.value, dict(summary))]
        if summary["warranty_created"]:
            follow_up.append(
                FollowUpEvent(
                    SystemEventType.WARRANTY_PERIOD_STARTED.value,
                    {
                        "warranty_record_id": warranty,
                        "acceptance_id": payload.acceptance_id,
                        "start_date": today.isoformat(),
                        "end_date": warranty_end.isoformat(),
                    },
                )
            )

        return StepResult(
            step_id=self.id,
            success=True,
            data={**summary, "error_count": len(failures)},
            continue_workflow=True,
            follow_up=follow_up,
        )

    async def _create_finance_record(
        self,
        event: Event,
        payload: AcceptanceFinalizedPayload,
        record_type: str,
        amount: float,
        today: date,
        due_days: int,
    ) -> str:
        return await self._repository.create(
            event.blueprint_id,
            "finance",
            {
                "blueprint_id": event.blueprint_id,
                "type": record_type,
                "title": f"Acceptance {record_type}: {payload.acceptance_id}",
                "amount": amount,
                "currency": CURRENCY,
                "due_date": (today + timedelta(days=due_days)).isoformat(),
                "acceptance_id": payload.acceptance_id,
                "contract_id": payload.contract_id,
                "created_by": event.actor.user_id,
            },
        )

    async def _create_warranty_record(
        self, event: Event, payload: AcceptanceFinalizedPayload, start: date, end: date
    ) -> str:
        return await self._repository.create(
            event.blueprint_id,
            "warranties",
            {
                "blueprint_id": event.blueprint_id,
                "title": f"Warranty: {payload.acceptance_id}",
                "acceptance_id": payload.acceptance_id,
                "start_date": start.isoformat(),
                "end_date": end.isoformat(),
                "created_by": event.actor.user_id,
            },
        )
