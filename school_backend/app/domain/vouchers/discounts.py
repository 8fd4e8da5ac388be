"""
Discount computation and fee item composition.

The voucher engine never looks at discounts. Callers that want a discounted
voucher pass a composer, which turns the student's discount into a DISCOUNT
line computed against that voucher's own fee lines.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import List, Optional, Sequence

from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession

from school_backend.app.core.exceptions import ValidationError
from school_backend.app.domain.vouchers.status import ZERO, round_money, sum_money
from school_backend.app.models.discount import Discount
from school_backend.app.models.enums import DiscountType, FeeItemType

logger = logging.getLogger(__name__)

HUNDRED = Decimal("100")


@dataclass(frozen=True)
class FeeLine:
    """A fee voucher line before it is written."""
    item_type: str
    amount: Decimal
    
    @property
    def is_discount(self) -> bool:
        return self.item_type == FeeItemType.DISCOUNT.value


def compute_discount_amount(
    discount_type: DiscountType,
    discount_value: Decimal,
    lines: Sequence[FeeLine],
) -> Decimal:
    """
    Amount of the DISCOUNT line for a voucher made of ``lines``.
    
    PERCENTAGE takes that share of the non-discount lines, FLAT takes the
    value as is. The result is never positive and its magnitude never exceeds
    the sum of the positive lines.
    """
    charged = [line.amount for line in lines if not line.is_discount]
    ceiling = sum_money(amount for amount in charged if amount > 0)
    
    if discount_type == DiscountType.PERCENTAGE:
        base = max(sum_money(charged), ZERO)
        magnitude = round_money(base * Decimal(discount_value) / HUNDRED)
    else:
        magnitude = round_money(discount_value)
    
    magnitude = min(max(magnitude, ZERO), ceiling)
    return -magnitude if magnitude else ZERO


def check_discount_bound(lines: Sequence[FeeLine]) -> None:
    """
    Reject a voucher whose DISCOUNT lines outweigh its charges.
    
    Raises:
        ValidationError: The DISCOUNT magnitude exceeds the sum of the positive lines.
    """
    discounted = -sum_money(line.amount for line in lines if line.is_discount)
    charged = sum_money(line.amount for line in lines if not line.is_discount and line.amount > 0)
    if discounted > charged:
        raise ValidationError(
            f"Discount ({discounted:.2f}) exceeds the voucher charges ({charged:.2f})",
            details={"discount": float(discounted), "charges": float(charged)},
        )


async def get_discount(db: AsyncSession, student_id: int, class_id: int) -> Optional[Discount]:
    result = await db.execute(
        select(Discount).where(
            Discount.student_id == student_id,
            Discount.class_id == class_id,
        )
    )
    return result.scalar_one_or_none()


async def remove_class_discounts(db: AsyncSession, student_id: int, class_id: int) -> int:
    """Delete every discount the student holds for ``class_id``. Returns the row count."""
    result = await db.execute(
        delete(Discount).where(
            Discount.student_id == student_id,
            Discount.class_id == class_id,
        )
    )
    return result.rowcount or 0


class FeeItemComposer:
    """
    Builds the custom lines of a fee voucher.
    
    Appends a DISCOUNT line when the student holds a discount for the class of
    the enrollment being billed, unless the caller already supplied one.
    """
    
    @staticmethod
    async def compose(
        db: AsyncSession,
        student_id: int,
        class_id: int,
        base_lines: Sequence[FeeLine],
        custom_lines: Sequence[FeeLine],
    ) -> List[FeeLine]:
        composed = list(custom_lines)
        if any(line.is_discount for line in composed):
            return composed
        
        discount = await get_discount(db, student_id, class_id)
        if discount is None:
            return composed
        
        amount = compute_discount_amount(
            discount.discount_type,
            discount.discount_value,
            list(base_lines) + composed,
        )
        if amount < ZERO:
            composed.append(FeeLine(FeeItemType.DISCOUNT.value, amount))
            logger.debug(
                "Discount %s applied for student %s in class %s",
                amount, student_id, class_id,
            )
        return composed
