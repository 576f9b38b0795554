"""Tests for layout detection and dynamic grid discovery on raw cell grids."""
import pytest

from app.models.rate_sheet import GridLoanPurpose, GridType, LoanTerm, LoanType
from app.parsing.grids import find_fico_ltv_grids, find_grids, find_state_grid
from app.parsing.strategies import (
    DYNAMIC,
    ELEND,
    PRMG,
    ROCKET,
    WINDSOR,
    context_from_text,
    decimal_rate,
    detect_strategy,
    find_rate_tables,
    is_adjustment_sheet,
    signed_price,
)
from app.parsing.tables import GridSpec, slice_grid
from app.parsing.workbook import Workbook, col_to_index, to_float

HEADER = ["FICO Score", "<=60.00%", "60.01-70.00%", "70.01-75.00%", "75.01-80.00%"]


def _make_workbook(*sheet_names):
    return Workbook({name: [] for name in sheet_names})


def _fico_block(rows=4):
    labels = [">=780", "760-779", "740-759", "720-739", "700-719"][:rows]
    return [HEADER] + [[label, 0.0, -0.125, -0.25, -0.5] for label in labels]


class TestDetectStrategy:
    @pytest.mark.parametrize("sheets,expected", [
        (("WS DU & LP Pricing", "WS Rate Sheet Summary", "LLPA"), ROCKET),
        (("GNMA", "FHLMC-FNMA"), ELEND),
        (("Jumbo LLPA", "Jumbo Pricing"), WINDSOR),
        (("Agency Fixed", "ADJ Agency"), PRMG),
        (("Non-QM", "Notes"), PRMG),
        (("Sheet1",), DYNAMIC),
    ])
    def test_by_sheet_signature(self, sheets, expected):
        assert detect_strategy(_make_workbook(*sheets), "Unknown Lender") is expected

    def test_partial_signature_does_not_match(self):
        assert detect_strategy(_make_workbook("WS DU & LP Pricing"), "Unknown Lender") is DYNAMIC

    @pytest.mark.parametrize("lender,expected", [
        ("PRMG Wholesale", PRMG),
        ("Windsor Mortgage", WINDSOR),
        ("E-Lend", ELEND),
        ("Rocket Pro TPO", ROCKET),
        ("Acme Lending", DYNAMIC),
    ])
    def test_by_lender_name(self, lender, expected):
        assert detect_strategy(_make_workbook("Rates"), lender) is expected

    def test_signature_beats_name(self):
        assert detect_strategy(_make_workbook("GNMA", "FHLMC-FNMA"), "Rocket") is ELEND


class TestSheetHelpers:
    @pytest.mark.parametrize("name,expected", [
        ("ADJ Conv", True),
        ("Adjustments", True),
        ("Conv LLPA", True),
        ("Conv 30", False),
        ("Gradjet", False),
    ])
    def test_is_adjustment_sheet(self, name, expected):
        assert is_adjustment_sheet(name) is expected

    @pytest.mark.parametrize("raw,expected", [
        (-4.0, 104.0),
        (0.5, 99.5),
        (0.0, 100.0),
        (101.25, 101.25),
    ])
    def test_signed_price(self, raw, expected):
        assert signed_price(raw) == pytest.approx(expected)

    def test_decimal_rate(self):
        assert decimal_rate(0.07125) == pytest.approx(7.125)
        assert decimal_rate(7.125) == 7.125

    @pytest.mark.parametrize("text,term,loan_type", [
        ("Conventional 30 Year Fixed", LoanTerm.thirty, LoanType.conventional),
        ("FHA 15yr", LoanTerm.fifteen, LoanType.fha),
        ("Conv to VA 20-Year", LoanTerm.twenty, LoanType.va),
        ("Jumbo", None, LoanType.jumbo),
        ("Pricing", None, None),
    ])
    def test_context_from_text(self, text, term, loan_type):
        assert context_from_text(text) == (term, loan_type)

    def test_col_to_index(self):
        assert col_to_index("A") == 0
        assert col_to_index("K") == 10
        assert col_to_index("AA") == 26

    @pytest.mark.parametrize("raw,expected", [
        ("6.125%", 6.125),
        ("1,250", 1250.0),
        ("N/A", None),
        ("", None),
        (None, None),
        (True, None),
        (float("nan"), None),
    ])
    def test_to_float(self, raw, expected):
        assert to_float(raw) == expected


class TestRateTables:
    def test_lock_headers_without_day_word(self):
        rows = [["Rate", 15, 30, 45], [6.5, 100.0, 99.875, 99.75]]
        rates = find_rate_tables(rows, "30 Year Fixed")
        assert len(rates) == 1
        assert rates[0].price_45_day == 99.75

    def test_thirty_day_only_stands_in_for_fifteen(self):
        rows = [["Rate", "30 Day Lock"], [6.5, 100.5]]
        rates = find_rate_tables(rows, "Rates")
        assert rates[0].price_15_day == 100.5

    def test_stops_at_next_header(self):
        rows = [
            ["Rate", "15 Day"],
            [6.5, 100.0],
            ["Rate", "15 Day"],
            [7.0, 101.0],
        ]
        rates = find_rate_tables(rows, "Rates")
        assert [r.rate for r in rates] == [6.5, 7.0]


class TestFicoLtvGrids:
    def test_basic_grid(self):
        grids = find_fico_ltv_grids(_fico_block(), "Conv LLPA")
        assert len(grids) == 1
        grid = grids[0]
        assert grid.name == "Conv LLPA FICO/LTV Grid"
        assert grid.type == GridType.fico_ltv
        assert grid.loan_purpose == GridLoanPurpose.all
        assert grid.axes.y == [">=780", "760-779", "740-759", "720-739"]
        assert grid.axes.x == HEADER[1:]
        assert grid.data[2] == [0.0, -0.125, -0.25, -0.5]

    def test_too_few_rows(self):
        assert find_fico_ltv_grids(_fico_block(rows=2), "LLPA") == []

    def test_too_few_buckets(self):
        rows = [["FICO", "<=80%", ">80%"]] + [[label, 0.0, -0.5] for label in (">=780", "760-779", "740-759")]
        assert find_fico_ltv_grids(rows, "LLPA") == []

    def test_block_ends_at_non_fico_label(self):
        rows = _fico_block() + [["Condo", -0.75, -0.75, -0.75, -0.75]]
        grid = find_fico_ltv_grids(rows, "LLPA")[0]
        assert "Condo" not in grid.axes.y

    def test_two_grids_stacked(self):
        rows = _fico_block() + [[None]] + _fico_block(rows=3)
        grids = find_fico_ltv_grids(rows, "LLPA")
        assert [len(g.axes.y) for g in grids] == [4, 3]

    def test_na_cells(self):
        rows = _fico_block()
        rows[1] = [">=780", "N/A", 0.0, 0.0, 0.0]
        grid = find_fico_ltv_grids(rows, "LLPA")[0]
        assert grid.data[0][0] is None


class TestStateGrid:
    def test_value_beside_or_below(self):
        rows = [
            ["Group 1; ,CA,NY", None, -0.125],
            ["Group 2; ,TX,FL"],
            [-0.25],
        ]
        grid = find_state_grid(rows, "State LLPA")
        assert grid.name == "State LLPA State Adjustments"
        assert grid.axes.x == ["Adjustment"]
        assert grid.axes.y == ["Group 1; ,CA,NY", "Group 2; ,TX,FL"]
        assert grid.data == [[-0.125], [-0.25]]

    def test_no_groups(self):
        assert find_state_grid([["CA only", 0.5]], "State") is None

    def test_find_grids_combines(self):
        rows = _fico_block() + [[None], ["Group 1; ,CA,NY", -0.125]]
        grids = find_grids(rows, "LLPA")
        assert [g.type for g in grids] == [GridType.fico_ltv, GridType.state]


class TestSliceGrid:
    def test_fixed_position(self):
        rows = [[None] * 6 for _ in range(6)]
        rows[1][2:6] = ["<=60%", "60.01-75%", "75.01-80%", ">80%"]
        rows[3][0], rows[3][2:6] = ">=740", [0.0, 0.0, -0.25, "N/A"]
        rows[4][0], rows[4][2:6] = "<740", [-0.5, -0.75, -1.0, -1.25]
        spec = GridSpec(
            name="Fixed", grid_type=GridType.fico_ltv, loan_purpose=GridLoanPurpose.rt_refi,
            header_row=1, data_start_row=3, data_end_row=10,
            label_col="A", data_start_col="C", data_end_col="F",
        )
        grid = slice_grid(rows, spec)
        assert grid.axes.y == [">=740", "<740"]
        assert grid.data == [[0.0, 0.0, -0.25, None], [-0.5, -0.75, -1.0, -1.25]]
        assert grid.loan_purpose == GridLoanPurpose.rt_refi

    def test_header_past_end(self):
        spec = GridSpec(
            name="Fixed", grid_type=GridType.fico_ltv, loan_purpose=GridLoanPurpose.all,
            header_row=50, data_start_row=52, data_end_row=60,
            label_col="A", data_start_col="C", data_end_col="K",
        )
        assert slice_grid([[None]], spec) is None
