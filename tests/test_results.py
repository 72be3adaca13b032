"""
Tests for ElementResult and ImportReport.
"""

from csv2gremlin import (
    ElementResult,
    ErrorKind,
    GraphConnectionError,
    ImportAborted,
    ImportReport,
    InvalidRecord,
    RemoteRejection,
    UnresolvedEndpoint,
)


def test_error_kind_from_exception():
    assert ErrorKind.from_exception(InvalidRecord("x")) is ErrorKind.INVALID_RECORD
    assert ErrorKind.from_exception(GraphConnectionError("x")) is ErrorKind.CONNECTION_ERROR
    assert ErrorKind.from_exception(RemoteRejection("x")) is ErrorKind.REMOTE_REJECTION
    assert (
        ErrorKind.from_exception(UnresolvedEndpoint("k", "source"))
        is ErrorKind.UNRESOLVED_ENDPOINT
    )


def test_error_kind_prints_canonical_name():
    assert str(ErrorKind.CONNECTION_ERROR) == "ConnectionError"
    assert str(ErrorKind.UNRESOLVED_ENDPOINT) == "UnresolvedEndpoint"


def test_element_result_success_and_failure():
    ok = ElementResult.success(3, "#9:1")
    assert ok.ok
    assert ok.index == 3
    assert ok.element_id == "#9:1"

    failed = ElementResult.from_exception(4, RemoteRejection("bad value"), attempts=1)
    assert not failed.ok
    assert failed.error_kind is ErrorKind.REMOTE_REJECTION
    assert failed.message == "bad value"
    assert failed.attempts == 1


def test_report_orders_results_by_index():
    report = ImportReport(element="edge")
    report.add(ElementResult.success(2, "e2"))
    report.add(ElementResult.failure(0, ErrorKind.UNRESOLVED_ENDPOINT, "no vertex"))
    report.add(ElementResult.success(1, "e1"))
    report.finalize(0.5)

    assert [r.index for r in report.results] == [0, 1, 2]
    assert report.attempted == 3
    assert report.succeeded == 2
    assert report.failed == 1
    assert report.failed_indices() == [0]
    assert report.exit_code == 1


def test_report_exit_codes():
    clean = ImportReport()
    clean.add(ElementResult.success(0, "v1"))
    assert clean.exit_code == 0

    aborted = ImportReport()
    aborted.aborted = ImportAborted("no session")
    assert aborted.exit_code == 2


def test_report_summary():
    report = ImportReport(element="vertex")
    report.add(ElementResult.success(0, "v1"))
    report.finalize()

    assert report.summary() == {
        "element": "vertex",
        "attempted": 1,
        "succeeded": 1,
        "failed": 0,
        "cancelled": False,
        "aborted": None,
    }


def test_report_render_lists_failures():
    report = ImportReport(element="edge")
    report.add(ElementResult.failure(0, ErrorKind.UNRESOLVED_ENDPOINT, "No vertex for 'Carol'"))
    report.add(ElementResult.failure(1, ErrorKind.REMOTE_REJECTION, "bad label"))
    report.add(ElementResult.failure(2, ErrorKind.CONNECTION_ERROR, "timed out"))
    report.finalize()

    text = report.render(max_failures=2)
    assert "Edge import: attempted=3 succeeded=0 failed=3" in text
    assert "row 0: UnresolvedEndpoint - No vertex for 'Carol'" in text
    assert "row 1: RemoteRejection - bad label" in text
    assert "row 2" not in text
    assert "... and 1 more failures" in text


def test_report_render_shows_abort_and_cancel():
    report = ImportReport()
    report.cancelled = True
    report.aborted = ImportAborted("Could not establish session: refused")

    text = report.render()
    assert "cancelled" in text
    assert "Run aborted: Could not establish session: refused" in text
