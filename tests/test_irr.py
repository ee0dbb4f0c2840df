import numpy as np
import numpy_financial as npf
import pytest

from caprisk.core.exceptions import InvalidCashFlow, NoRootFound
from caprisk.core.irr import irr_or_nan, npv, solve_irr, solve_irrs


def test_one_year_ten_percent():
    assert solve_irr([-100.0, 110.0]) == pytest.approx(0.10, abs=1e-6)


def test_npv_is_zero_at_returned_rate():
    cash_flows = [-31_500_000.0] + [1_250_000.0] * 9 + [1_400_000.0 + 29_000_000.0]
    rate = solve_irr(cash_flows)
    assert abs(npv(rate, cash_flows)) <= 1e-6 * 31_500_000.0


def test_matches_numpy_financial_for_conventional_flows():
    cash_flows = [-1000.0, 120.0, 130.0, 140.0, 150.0, 1200.0]
    assert solve_irr(cash_flows) == pytest.approx(npf.irr(cash_flows), abs=1e-9)


def test_npv_uses_undiscounted_first_flow():
    assert npv(0.10, [-100.0, 110.0]) == pytest.approx(0.0, abs=1e-12)
    assert npv(0.0, [-100.0, 40.0, 40.0]) == pytest.approx(-20.0)


def test_negative_irr_expands_bracket_downwards():
    assert solve_irr([-100.0, 50.0]) == pytest.approx(-0.5, abs=1e-9)
    assert solve_irr([-100.0, 10.0, 10.0]) < -0.5


def test_very_high_irr_expands_bracket_upwards():
    assert solve_irr([-1.0, 1000.0]) == pytest.approx(999.0, rel=1e-9)


def test_flat_income_exit_at_entry_cap_returns_cap_rate():
    price, noi = 31_500_000.0, 1_200_000.0
    cash_flows = [-price] + [noi] * 9 + [noi + price]
    assert solve_irr(cash_flows) == pytest.approx(noi / price, abs=1e-9)


@pytest.mark.parametrize("cash_flows", [
    [100.0, 10.0, 10.0],
    [0.0, 10.0, 10.0],
    [-100.0, -10.0, -10.0],
    [0.0, 0.0],
])
def test_no_sign_change_raises_no_root_found(cash_flows):
    with pytest.raises(NoRootFound):
        solve_irr(cash_flows)


@pytest.mark.parametrize("cash_flows", [[], [-100.0]])
def test_short_vector_raises_invalid_cash_flow(cash_flows):
    with pytest.raises(InvalidCashFlow):
        solve_irr(cash_flows)


def test_non_finite_flow_raises_no_root_found():
    with pytest.raises(NoRootFound):
        solve_irr([-100.0, 10.0, np.inf])
    with pytest.raises(NoRootFound):
        solve_irr([-100.0, np.nan, 120.0])


def test_expansion_limit_raises_no_root_found():
    with pytest.raises(NoRootFound):
        solve_irr([-1.0, 1e12], max_expansions=3)


def test_irr_or_nan_only_recovers_no_root_found():
    assert np.isnan(irr_or_nan([10.0, 10.0]))
    with pytest.raises(InvalidCashFlow):
        irr_or_nan([-10.0])


def test_solve_irrs_marks_failures():
    matrix = np.array([
        [-100.0, 110.0],
        [100.0, 10.0],
        [-100.0, np.inf],
    ])
    irrs, failed = solve_irrs(matrix)
    assert irrs[0] == pytest.approx(0.10)
    assert np.isnan(irrs[1]) and np.isnan(irrs[2])
    assert failed.tolist() == [False, True, True]


def test_repeated_solves_are_stable():
    cash_flows = [-31_500_000.0] + [1_180_000.0] * 9 + [1_300_000.0 + 26_000_000.0]
    assert round(solve_irr(cash_flows), 6) == round(solve_irr(list(cash_flows)), 6)


def test_root_inside_bracket_with_two_sign_changes():
    # a year of negative NOI at the end: NPV < 0 at both 0% and 100%, roots at 10% and 20%
    cash_flows = [-100.0, 230.0, -132.0]
    assert npv(0.0, cash_flows) < 0 and npv(1.0, cash_flows) < 0
    rate = solve_irr(cash_flows)
    assert rate == pytest.approx(0.10, abs=1e-8)
    assert abs(npv(rate, cash_flows)) < 1e-8


def test_downward_search_stays_above_minus_one():
    # NPV is negative at every rate above -100%, so the search must stop at the floor
    with pytest.raises(NoRootFound, match="rate floor"):
        solve_irr([-100.0, 1e-12])
