"""
Bill Health Checks

DESIGN DECISION: Validation looks at a whole bill and reports what the
owner should look at before sharing it:

- Is there a payer, and can people actually pay them (account, bank, QR)?
- Does every item have somebody to pay for it?
- Do percentage splits add up?
- Do the totals still add up to the grand total?

IMPORTANT: Validation NEVER fixes anything. It only reports.
"""

from typing import Optional

from splitbill.engine.allocation import percent_mismatch, percent_total
from splitbill.engine.settlement import check_invariant
from splitbill.models.bill import Bill, SplitMethod
from splitbill.models.issues import (
    BillIssue,
    IssueCategory,
    IssueCode,
    ValidationResult,
)


# Payment profile fields a payer needs so others can transfer to them
PAYER_PROFILE_CHECKS = (
    ("account_number", "Payer account number missing"),
    ("bank_code", "Payer bank information missing"),
    ("qr_url", "Payer QR code missing"),
)


class BillValidator:
    """
    Runs every health check over a bill.

    Errors mean the numbers cannot be trusted yet; warnings are things
    the owner will probably want to fix before collecting money.
    """

    def _issue(
        self,
        code: IssueCode,
        message: str,
        severity: str = "warning",
        item_id: Optional[str] = None,
        participant_id: Optional[str] = None,
        **details,
    ) -> BillIssue:
        return BillIssue(
            category=IssueCategory.VALIDATION,
            code=code,
            message=message,
            severity=severity,
            item_id=item_id,
            participant_id=participant_id,
            details=details,
        )

    def _check_payer(self, bill: Bill) -> list[BillIssue]:
        payer = bill.payer
        if payer is None:
            return [self._issue(
                IssueCode.PAYER_MISSING,
                "No payer is assigned",
                severity="error",
            )]

        issues = []
        for field, message in PAYER_PROFILE_CHECKS:
            if not getattr(payer, field):
                issues.append(self._issue(
                    IssueCode.PAYMENT_PROFILE_INCOMPLETE,
                    message,
                    participant_id=payer.id,
                    field=field,
                ))
        return issues

    def _check_items(self, bill: Bill) -> list[BillIssue]:
        issues = []
        minimum = bill.settings.min_participants_per_item

        for item in bill.normal_items:
            name = item.name or "Unnamed item"
            included = sum(1 for s in item.shares if s.include)

            if included == 0:
                issues.append(self._issue(
                    IssueCode.ITEM_UNALLOCATED,
                    f"{name} has no participants",
                    item_id=item.id,
                ))
            elif minimum and included < minimum:
                issues.append(self._issue(
                    IssueCode.BELOW_MIN_PARTICIPANTS,
                    f"{name} has {included} participant(s), at least {minimum} expected",
                    item_id=item.id,
                    included=included,
                ))

            if item.fee == 0:
                issues.append(self._issue(
                    IssueCode.ZERO_FEE_ITEM,
                    f"{name} has no fee yet",
                    severity="info",
                    item_id=item.id,
                ))

            if (
                item.split_method is SplitMethod.PERCENT
                and included
                and percent_mismatch(item)
            ):
                total = percent_total(item)
                issues.append(self._issue(
                    IssueCode.PERCENT_MISMATCH,
                    f"{name}: percentages sum to {total:.1f}%, not 100%",
                    item_id=item.id,
                    percent_total=str(total),
                ))

        return issues

    def validate(self, bill: Bill) -> ValidationResult:
        """
        Run every check.

        Args:
            bill: The bill to check

        Returns:
            ValidationResult with all issues found
        """
        issues = self._check_payer(bill)
        issues.extend(self._check_items(bill))

        # The invariant needs a payer; its absence is already reported above
        if bill.payer is not None:
            violation = check_invariant(bill, strict=False)
            if violation is not None:
                issues.append(violation)

        warnings = [issue.message for issue in issues if issue.severity == "warning"]
        return ValidationResult(
            bill_id=bill.id,
            is_valid=not any(issue.severity == "error" for issue in issues),
            issues=issues,
            warnings=warnings,
        )

    def get_user_friendly_summary(self, result: ValidationResult) -> str:
        """
        Generate a user-friendly summary of validation results.

        This is what we show to the bill owner.
        """
        if result.is_valid and not result.warnings:
            return "✅ All checks passed! The bill is ready to share."

        lines = []

        if result.has_errors:
            lines.append("❌ This bill has problems that must be fixed:")
            for issue in result.issues:
                if issue.severity == "error":
                    lines.append(f"   • {issue.message}")

        if result.warnings:
            if lines:
                lines.append("")
            lines.append("⚠️ Please check the following:")
            for warning in result.warnings:
                lines.append(f"   • {warning}")

        return "\n".join(lines)
