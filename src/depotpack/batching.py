"""Split long argument lists into command lines that fit the host ``ARG_MAX``.

The kernel limits the combined size of a new process's arguments and
environment. Queries over many files or changes are therefore issued in
several invocations, each carrying as many tokens as fit. Splitting is only a
size limit: callers merge per-batch results and get the same answer as a
single unbounded invocation would give.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, TypeVar

from pydantic import BaseModel, ConfigDict, Field, model_validator

from depotpack.exceptions import ArgumentBudgetError
from depotpack.logging import logger

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Iterator, Mapping, Sequence

T = TypeVar("T")


def token_size(token: str) -> int:
    """Serialized size of one argument: its characters plus the terminating NUL."""
    return len(token) + 1


def command_size(argv: Sequence[str]) -> int:
    """Serialized size of a fixed command prefix (program name and options).

    Args:
        argv (Sequence[str]): the arguments every batch repeats

    Returns:
        int: the sum of ``len(arg) + 1`` over ``argv``
    """
    return sum(token_size(arg) for arg in argv)


def environment_size(env: Mapping[str, str]) -> int:
    """Serialized size of an environment: ``NAME=VALUE`` plus NUL for every variable.

    Args:
        env (Mapping[str, str]): the environment passed to the child process

    Returns:
        int: the sum of ``len(name) + len(value) + 2`` over ``env``
    """
    return sum(len(name) + len(value) + 2 for name, value in env.items())


class ArgumentBudget(BaseModel):
    """Size budget of one command invocation.

    Attributes:
        baseline: size already used by the fixed command prefix and the environment.
        ceiling: hard upper bound for baseline plus batched tokens.
    """

    model_config = ConfigDict(frozen=True)

    baseline: int = Field(..., ge=0)
    ceiling: int = Field(..., gt=0)

    @model_validator(mode="after")
    def _baseline_fits(self) -> ArgumentBudget:
        if self.baseline >= self.ceiling:
            msg = f"baseline {self.baseline} leaves no room under ceiling {self.ceiling}"
            raise ValueError(msg)
        return self

    @classmethod
    def for_command(cls, argv: Sequence[str], env: Mapping[str, str], ceiling: int) -> ArgumentBudget:
        """Budget for batches appended to ``argv`` and run with ``env``."""
        return cls(baseline=command_size(argv) + environment_size(env), ceiling=ceiling)

    def batches(
        self,
        tokens: Iterable[str],
        size: Callable[[str], int] = token_size,
    ) -> Iterator[list[str]]:
        """Group ``tokens`` into ordered batches that stay within the budget.

        Before a token is added, the current batch is flushed if the token
        would push the running size over the ceiling. The concatenation of the
        yielded batches is exactly ``tokens``.

        Args:
            tokens (Iterable[str]): the tokens, in order
            size (Callable[[str], int]): serialized size of one token

        Raises:
            ArgumentBudgetError: if a token does not fit even in an empty batch

        Yields:
            list[str]: the successive non-empty batches
        """
        batch: list[str] = []
        running = self.baseline
        for token in tokens:
            cost = size(token)
            if self.baseline + cost > self.ceiling:
                raise ArgumentBudgetError(token=token, ceiling=self.ceiling)
            if running + cost > self.ceiling and batch:
                yield batch
                batch = []
                running = self.baseline
            batch.append(token)
            running += cost
        if batch:
            yield batch

    def map_batches(
        self,
        tokens: Iterable[str],
        process: Callable[[list[str]], T],
        size: Callable[[str], int] = token_size,
    ) -> list[T]:
        """Run ``process`` on every batch, one after another.

        Args:
            tokens (Iterable[str]): the tokens, in order
            process (Callable[[list[str]], T]): per-batch callback, typically one subprocess call
            size (Callable[[str], int]): serialized size of one token

        Returns:
            list[T]: the callback results, in batch order
        """
        results: list[T] = []
        for number, batch in enumerate(self.batches(tokens, size), start=1):
            logger.debug("batch", number=number, tokens=len(batch))
            results.append(process(batch))
        return results
