"""Test factories for generating test data."""

from polyfactory import Use
from polyfactory.factories import DataclassFactory

from webnn_harness.models.result import Subcases, UnitResult


class SubcasesFactory(DataclassFactory[Subcases]):
    """Factory for Subcases."""

    __model__ = Subcases

    total = 10
    passed = 10
    failed = 0


class UnitResultFactory(DataclassFactory[UnitResult]):
    """Factory for UnitResult; builds first-pass PASS results by default."""

    __model__ = UnitResult

    verdict = "PASS"
    subcases = Use(SubcasesFactory.build)
    suite = "wpt"
    details = None
    error = None
    failed_subtests = ()
    execution_time = 1.0
    retry_history = Use(list)
