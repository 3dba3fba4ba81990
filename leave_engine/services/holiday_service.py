from datetime import date, timedelta
from typing import List, Optional

from leave_engine.core.config import settings
from leave_engine.database import unit_of_work
from leave_engine.models.company_holiday import CompanyHoliday
from leave_engine.schemas.leave import HolidayCreate
from leave_engine.services.base import BaseService


class HolidayService(BaseService):
    """Company holiday calendar and working-day counting for one tenant."""

    def add_holiday(self, payload: HolidayCreate) -> CompanyHoliday:
        with unit_of_work(self.db):
            holiday = CompanyHoliday(
                tenant_id=self.tenant_id,
                name=payload.name,
                date=payload.date,
                description=payload.description,
                is_active=True,
            )
            self.db.add(holiday)
        self.db.refresh(holiday)
        self._logger.info(f"Added holiday '{holiday.name}' on {holiday.date}", extra={"tenant_id": self.tenant_id})
        return holiday

    def list_holidays(self, year: Optional[int] = None) -> List[CompanyHoliday]:
        query = self.db.query(CompanyHoliday).filter(
            CompanyHoliday.tenant_id == self.tenant_id,
            CompanyHoliday.is_active.is_(True),
        )
        if year is not None:
            query = query.filter(CompanyHoliday.date >= date(year, 1, 1), CompanyHoliday.date <= date(year, 12, 31))
        return query.order_by(CompanyHoliday.date).all()

    def count_leave_days(self, start_date: date, end_date: date, exclude_non_working_days: bool) -> int:
        """
        Inclusive day count of [start_date, end_date].
        With exclude_non_working_days, weekend days and active company holidays are skipped.
        """
        if end_date < start_date:
            return 0
        total = (end_date - start_date).days + 1
        if not exclude_non_working_days:
            return total

        weekend = set(settings.leave.weekend_days)
        holidays = {
            holiday_date
            for (holiday_date,) in self.db.query(CompanyHoliday.date)
            .filter(
                CompanyHoliday.tenant_id == self.tenant_id,
                CompanyHoliday.is_active.is_(True),
                CompanyHoliday.date >= start_date,
                CompanyHoliday.date <= end_date,
            )
            .all()
        }
        working = 0
        for offset in range(total):
            day = start_date + timedelta(days=offset)
            if day.isoweekday() in weekend or day in holidays:
                continue
            working += 1
        return working
