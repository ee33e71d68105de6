# ==============================================================================
# commission_admin/matrix/bulk.py
# ------------------------------------------------------------------------------
# Bulk entry: drafts a brand-new premium term across several years and all
# roles, then creates every cell in one commit. Independent of the edit
# buffer and the pending-change ledger.
# ==============================================================================

import logging
from dataclasses import dataclass, field

from .exceptions import BulkEntryError, MatrixValidationError
from .schema import MAX_YEAR, MIN_YEAR, ROLE_IDS, is_valid_year, validate_rate, validate_role
from .store import run_concurrently

MAX_SECTIONS = MAX_YEAR - MIN_YEAR + 1


def _zero_rates():
    return {int(role_id): 0.0 for role_id in ROLE_IDS}


@dataclass
class YearSection:
    year: int
    rates: dict = field(default_factory=_zero_rates)


@dataclass
class BulkFailure:
    year: int
    role_id: int
    error: str


@dataclass
class BulkCommitResult:
    created: list = field(default_factory=list)
    failures: list = field(default_factory=list)
    skipped_zero_rates: int = 0

    @property
    def success_count(self):
        return len(self.created)

    @property
    def failure_count(self):
        return len(self.failures)

    @property
    def ok(self):
        return not self.failures


class BulkEntryBuilder:
    """Draft of a new premium term: a label plus one section per commission year."""

    def __init__(self, premium_term=''):
        self.premium_term = premium_term
        self.sections = [YearSection(MIN_YEAR)]

    def reset(self):
        self.premium_term = ''
        self.sections = [YearSection(MIN_YEAR)]

    @property
    def years(self):
        return [section.year for section in self.sections]

    def section(self, year):
        for section in self.sections:
            if section.year == year:
                return section
        raise BulkEntryError(f"Year {year} is not part of this draft")

    def add_year_section(self):
        """Appends a section for the smallest year not yet used by this draft."""
        if len(self.sections) >= MAX_SECTIONS:
            raise BulkEntryError(f"Maximum {MAX_SECTIONS} years allowed")

        taken = set(self.years)
        year = MIN_YEAR
        while year in taken:
            year += 1

        section = YearSection(year)
        self.sections.append(section)
        return section

    def remove_year_section(self, year):
        if len(self.sections) == 1:
            raise BulkEntryError("At least one year is required")
        self.sections.remove(self.section(year))

    def renumber_year_section(self, old_year, new_year):
        if not is_valid_year(new_year):
            raise BulkEntryError(f"Year must be between {MIN_YEAR} and {MAX_YEAR}")
        section = self.section(old_year)
        if new_year != old_year and new_year in self.years:
            raise BulkEntryError(f"Year {new_year} already exists")
        section.year = new_year
        self.sections.sort(key=lambda s: s.year)

    def set_rate(self, year, role_id, rate):
        try:
            role_id = int(validate_role(role_id))
            rate = validate_rate(rate)
        except MatrixValidationError as e:
            raise BulkEntryError(str(e)) from e
        self.section(year).rates[role_id] = rate

    def copy_rates_from(self, source_year, target_year):
        source = self.section(source_year)
        self.section(target_year).rates = dict(source.rates)

    def has_zero_rates(self):
        return any(section.rates.get(int(role_id), 0) == 0
                   for section in self.sections for role_id in ROLE_IDS)

    async def commit(self, store, product_id, confirm_zero_rates):
        """
        Creates one record per (year, role) of the draft, all requests at once.

        Args:
            store (CommissionStore): where the records are created.
            product_id (str): parent product of every record.
            confirm_zero_rates (callable): asked once, only when some rate is
                exactly 0. True keeps the 0% cells, False leaves them out.

        Returns:
            BulkCommitResult: created records and one BulkFailure per failed
            request, carrying the store's error text.
        """
        premium_term = (self.premium_term or '').strip()
        if not premium_term:
            raise BulkEntryError("Premium term is required")

        include_zero_rates = not self.has_zero_rates() or bool(confirm_zero_rates())

        result = BulkCommitResult()
        planned = []
        for section in self.sections:
            for role_id in ROLE_IDS:
                rate = section.rates.get(int(role_id), 0.0)
                if rate == 0 and not include_zero_rates:
                    result.skipped_zero_rates += 1
                    continue
                planned.append((section.year, int(role_id), {
                    'product_id': product_id,
                    'premium_term': premium_term,
                    'role_id': int(role_id),
                    'commission_year': section.year,
                    'commission_rate': rate,
                }))

        logging.info(f"Bulk commit of '{premium_term}': {len(planned)} create request(s), "
                     f"{result.skipped_zero_rates} zero-rate cell(s) skipped.")
        outcomes = await run_concurrently(store.create(payload) for _, _, payload in planned)

        for (year, role_id, _), outcome in zip(planned, outcomes):
            if isinstance(outcome, Exception):
                logging.warning(f"Bulk create failed for '{premium_term}' year {year} role {role_id}: {outcome}")
                result.failures.append(BulkFailure(year, role_id, str(outcome)))
            else:
                result.created.append(outcome)

        if result.ok:
            self.reset()
        return result
