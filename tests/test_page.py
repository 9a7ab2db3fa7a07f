"""Tests for entitydb.page module."""

import pytest

from entitydb.page import DEFAULT_PAGE_SIZE, Direction, Order, Page, PageResult, total_page, trans_to_start_end


class TestArithmetic:
    @pytest.mark.parametrize(
        "page_number, page_size, expected",
        [
            (0, 20, (0, 20)),
            (2, 20, (40, 60)),
            (-3, 10, (0, 10)),
            (1, 0, (20, 40)),
        ],
    )
    def test_trans_to_start_end(self, page_number, page_size, expected):
        """Zero-based pages; negative numbers and bad sizes are normalised."""
        assert trans_to_start_end(page_number, page_size) == expected

    @pytest.mark.parametrize(
        "total, size, expected",
        [(45, 20, 3), (40, 20, 2), (1, 20, 1), (0, 20, 0), (-5, 20, 0), (45, 0, 3)],
    )
    def test_total_page(self, total, size, expected):
        assert total_page(total, size) == expected


class TestOrder:
    def test_direction_parse(self):
        assert Order("id", "desc").direction is Direction.DESC
        assert str(Order("id", Direction.ASC)) == "id ASC"
        assert str(Order("id")) == "id"

    def test_bad_direction(self):
        with pytest.raises(ValueError):
            Order("id", "sideways")


class TestPage:
    def test_normalisation(self):
        page = Page(-1, -5)
        assert page.page_number == 0
        assert page.page_size == DEFAULT_PAGE_SIZE

    def test_positions(self):
        page = Page(2, 10)
        assert page.start_position == 20
        assert page.end_position == 30

    def test_orders(self):
        page = Page(0, 10, Order("id")).add_order(Order("name", "DESC"))
        assert page.orders == [Order("id"), Order("name", Direction.DESC)]

    def test_equality(self):
        assert Page.of(1, 10) == Page(1, 10)
        assert Page(1, 10) != Page(2, 10)


class TestPageResult:
    def test_first_page_of_three(self):
        """45 rows in pages of 20: three pages, the first is not the last."""
        result = PageResult(0, 20, 45)
        assert result.total_page == 3
        assert result.is_first()
        assert not result.is_last()

    def test_last_page(self):
        result = PageResult(2, 20, 45)
        assert result.is_last()
        assert not result.is_first()

    def test_from_page_and_rows(self):
        """A Page supplies number and size; rows fill the list."""
        result = PageResult(Page(1, 5), total=12, rows=["a", "b"])
        assert (result.page, result.page_size, result.total_page) == (1, 5, 3)
        assert list(result) == ["a", "b"]

    def test_empty_result_is_last(self):
        assert PageResult(0, 20, 0).is_last()

    def test_to_dict(self):
        result = PageResult(0, 10, 1, rows=[{"id": 1}])
        assert result.to_dict() == {
            "page": 0,
            "page_size": 10,
            "total": 1,
            "total_page": 1,
            "rows": [{"id": 1}],
        }
