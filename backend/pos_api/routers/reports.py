"""
Reports router.
"""

from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from shared.config.constants import REPORT_ROLES
from shared.infrastructure.db import get_db
from shared.security.auth import current_user_context, require_outlet, require_roles
from shared.utils.exceptions import ValidationError
from shared.utils.schemas import SalesSummaryOutput
from pos_api.services.domain import ReportService


router = APIRouter(prefix="/api/reports", tags=["reports"])


@router.get("/sales-summary", response_model=SalesSummaryOutput)
def sales_summary(
    outlet_id: int,
    date_from: datetime,
    date_to: datetime,
    db: Session = Depends(get_db),
    ctx: dict[str, Any] = Depends(current_user_context),
) -> SalesSummaryOutput:
    """Order counts and PAID sales totals for ``[date_from, date_to)``."""
    require_roles(ctx, REPORT_ROLES)
    require_outlet(ctx, outlet_id)
    if date_to <= date_from:
        raise ValidationError("date_to must be after date_from")

    summary = ReportService(db).sales_summary(outlet_id, date_from, date_to)
    return SalesSummaryOutput(**vars(summary))
