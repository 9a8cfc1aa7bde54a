import pytest

from tracker.filters import ViewFilters, normalize_filters


def test_defaults_are_unfiltered():
    filters = normalize_filters(None)
    assert filters == ViewFilters()
    assert filters.is_unfiltered


@pytest.mark.parametrize(
    "raw, expected",
    [
        ({"search": "  bơm  "}, ViewFilters(search="bơm")),
        ({"status": "PROCESSED"}, ViewFilters(status="processed")),
        ({"status": "done"}, ViewFilters()),
        ({"month": "03/2024"}, ViewFilters(month="03/2024")),
        ({"month": "3/2024"}, ViewFilters()),
        ({"month": "All"}, ViewFilters()),
    ],
)
def test_normalize_filters(raw, expected):
    assert normalize_filters(raw) == expected
