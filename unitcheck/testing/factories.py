"""Test factories for generating report data."""

from polyfactory import Use
from polyfactory.factories import DataclassFactory

from unitcheck.models.outcome import Outcome, ReportEntry


class OutcomeFactory(DataclassFactory[Outcome]):
    """Factory for Outcome."""

    __model__ = Outcome

    kind = "pass"
    message = None
    detail = None
    location = None
    cause = None


class ReportEntryFactory(DataclassFactory[ReportEntry]):
    """Factory for ReportEntry."""

    __model__ = ReportEntry

    container = None
    outcome = Use(OutcomeFactory.build)
