from __future__ import annotations

import pytest
from pydantic import ValidationError

from depotpack.batching import ArgumentBudget, command_size, environment_size, token_size
from depotpack.exceptions import ArgumentBudgetError

TOKENS = [f"//depot/hello/src/file{i:02d}.c" for i in range(20)]


@pytest.mark.unit
def test_sizes_count_terminators() -> None:
    assert token_size("abc") == 4
    assert command_size(["p4", "filelog", "-i"]) == 3 + 8 + 3
    assert environment_size({"P4PORT": "ssl:perforce:1666", "HOME": "/root"}) == (6 + 17 + 2) + (4 + 5 + 2)


@pytest.mark.unit
def test_for_command_adds_command_and_environment() -> None:
    budget = ArgumentBudget.for_command(["p4", "describe", "-s"], {"A": "1"}, ceiling=100)

    assert budget.baseline == 3 + 9 + 3 + 4


@pytest.mark.unit
@pytest.mark.parametrize("ceiling", [60, 75, 100, 250, 10_000])
def test_batches_preserve_order_and_stay_under_ceiling(ceiling: int) -> None:
    budget = ArgumentBudget(baseline=20, ceiling=ceiling)

    batches = list(budget.batches(TOKENS))

    assert [token for batch in batches for token in batch] == TOKENS
    assert all(batch for batch in batches)
    for batch in batches:
        assert budget.baseline + sum(token_size(t) for t in batch) <= ceiling


@pytest.mark.unit
def test_batches_flush_exactly_at_the_ceiling() -> None:
    budget = ArgumentBudget(baseline=10, ceiling=10 + 3 * 4)

    assert list(budget.batches(["aaa", "bbb", "ccc", "ddd"])) == [["aaa", "bbb", "ccc"], ["ddd"]]


@pytest.mark.unit
def test_single_unbounded_batch_when_everything_fits() -> None:
    budget = ArgumentBudget(baseline=0, ceiling=1_000_000)

    assert list(budget.batches(TOKENS)) == [TOKENS]


@pytest.mark.unit
def test_no_batches_for_no_tokens() -> None:
    budget = ArgumentBudget(baseline=5, ceiling=10)

    assert list(budget.batches([])) == []
    assert budget.map_batches([], len) == []


@pytest.mark.unit
def test_token_larger_than_budget_is_fatal() -> None:
    budget = ArgumentBudget(baseline=10, ceiling=20)

    with pytest.raises(ArgumentBudgetError):
        list(budget.batches(["short", "x" * 10]))


@pytest.mark.unit
def test_custom_size_function() -> None:
    budget = ArgumentBudget(baseline=0, ceiling=2)

    assert list(budget.batches(["a", "b", "c"], size=lambda _token: 1)) == [["a", "b"], ["c"]]


@pytest.mark.unit
@pytest.mark.parametrize("ceiling", [45, 90, 180, 100_000])
def test_union_of_batch_results_matches_one_unbounded_call(ceiling: int) -> None:
    budget = ArgumentBudget(baseline=10, ceiling=ceiling)
    calls: list[list[str]] = []

    def process(batch: list[str]) -> set[str]:
        calls.append(batch)
        return {token.rsplit("/", 1)[-1] for token in batch}

    results = budget.map_batches(TOKENS, process)

    assert len(results) == len(calls)
    assert set().union(*results) == {token.rsplit("/", 1)[-1] for token in TOKENS}


@pytest.mark.unit
def test_baseline_must_leave_room() -> None:
    with pytest.raises(ValidationError):
        ArgumentBudget(baseline=100, ceiling=100)
