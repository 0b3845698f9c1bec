from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

import pytest

from depotpack.exceptions import CommandError
from depotpack.runner import split_lines

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

FSTAT_EDIT_AND_DELETE = """\
... depotFile //depot/hello/bin/hello
... headAction edit
... headType xtext
... headTime 1700000100
... headRev 3
... headChange 120
... headModTime 1700000000

... depotFile //depot/hello/old.txt
... headAction delete
... headType text
... headTime 1700000200
... headRev 2
... headChange 130
... headModTime 0

"""


def _strip_revision(token: str) -> str:
    for marker in ("@", "#"):
        token = token.split(marker, 1)[0]
    return token


class FakeRunner:
    """Replays canned ``p4`` output and records every command it is given.

    Args:
        fstat: output of ``p4 fstat``
        filelog: ``filelog`` output per depot path; a batch gets the outputs
            of its paths concatenated
        describe: ``describe -s`` output per change id
        contents: file contents per depot path, written by ``print -o`` or
            returned by ``print``
        fail: sub-command that exits with status 1
    """

    def __init__(
        self,
        *,
        fstat: str = "",
        filelog: Mapping[str, str] | None = None,
        describe: Mapping[int, str] | None = None,
        contents: Mapping[str, str] | None = None,
        fail: str | None = None,
        env: Mapping[str, str] | None = None,
    ) -> None:
        self.fstat = fstat
        self.filelog = dict(filelog or {})
        self.describe = dict(describe or {})
        self.contents = dict(contents or {})
        self.fail = fail
        self.environment = dict(env or {})
        self.calls: list[list[str]] = []
        self.cwds: list[Path | None] = []

    def commands(self, subcommand: str) -> list[list[str]]:
        return [call for call in self.calls if len(call) > 1 and call[1] == subcommand]

    def run(self, argv: Sequence[str], *, cwd: Path | None = None) -> list[str]:
        argv = list(argv)
        self.calls.append(argv)
        self.cwds.append(cwd)
        program, subcommand, *rest = argv
        if subcommand == self.fail or program == self.fail:
            raise CommandError(command=tuple(argv), returncode=1, stdout="", stderr="boom")
        if program != "p4":
            return []
        if subcommand == "fstat":
            return split_lines(self.fstat)
        if subcommand == "filelog":
            return [line for token in rest[1:] for line in split_lines(self.filelog.get(_strip_revision(token), ""))]
        if subcommand == "describe":
            return [line for token in rest[1:] for line in split_lines(self.describe[int(token)])]
        if subcommand == "print":
            spec = _strip_revision(rest[-1])
            if "-o" in rest:
                target = Path(rest[rest.index("-o") + 1])
                target.write_text(self.contents[spec], encoding="utf-8")
                return []
            return split_lines(self.contents[spec])
        msg = f"unexpected command {argv}"
        raise AssertionError(msg)


@pytest.fixture
def fake_runner_factory() -> type[FakeRunner]:
    return FakeRunner


@pytest.fixture
def edit_and_delete_runner() -> FakeRunner:
    return FakeRunner(
        fstat=FSTAT_EDIT_AND_DELETE,
        filelog={
            "//depot/hello/bin/hello": (
                "//depot/hello/bin/hello\n"
                "... #3 change 120 edit on 2023/11/14 by alice@ws (xtext) 'Print a greeting'\n"
                "... #2 change 110 edit on 2023/11/13 by bob@ws (xtext) 'Add usage'\n"
                "... #1 change 100 add on 2023/11/12 by alice@ws (xtext) 'Initial import'\n"
            ),
            "//depot/hello/old.txt": (
                "//depot/hello/old.txt\n"
                "... #2 change 130 delete on 2023/11/15 by bob@ws (text) 'Drop old notes'\n"
                "... #1 change 100 add on 2023/11/12 by alice@ws (text) 'Initial import'\n"
            ),
        },
        describe={
            100: "Change 100 by alice@ws on 2023/11/12 10:00:00\n\n\tInitial import\n\nAffected files ...\n\n"
            "... //depot/hello/bin/hello#1 add\n... //depot/hello/old.txt#1 add\n\n",
            110: "Change 110 by bob@ws on 2023/11/13 11:00:00\n\n\tAdd usage\n\tand a --help flag\n\n",
            120: "Change 120 by alice@ws on 2023/11/14 12:00:00\n\n\tPrint a greeting\n\n",
            130: "Change 130 by bob@ws on 2023/11/15 13:00:00\n\n\tDrop old notes\n\n",
        },
        contents={"//depot/hello/bin/hello": "#!/bin/sh\necho hello\n"},
    )
