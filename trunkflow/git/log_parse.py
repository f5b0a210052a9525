"""
Parser for `git log` / `git show` output.

Parses the regular (not --pretty=format:) output because `--source` data is
only available there. Each commit block looks like:

    commit $hexsha $source
    Merge: $parents                  (merge commits only)
    Author:     $author
    AuthorDate: $date
    Commit:     $committer
    CommitDate: $date

        $title

        $body
        Change-Id: $changeId
        Story-Id: $storyId
    diff --git ... | diff --cc ...   (git show only)

The parser is a state machine driven by TRANSITIONS, a table mapping
(state, line class) to a handler and the next state. A pair missing from the
table is a parse error.
"""

import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable

from trunkflow.git.commit import Commit, DATE_FORMAT
from trunkflow.lib.errors import ParseError, DuplicateTagError

HEADER_RE = re.compile(r'^commit[ \t]+([0-9a-f]{4,64})(?:[ \t]+(.+?))?[ \t]*$')
MERGE_RE = re.compile(r'^Merge:[ \t]+(.+)$')
AUTHOR_RE = re.compile(r'^Author:[ \t]+(.+)$')
AUTHOR_DATE_RE = re.compile(r'^AuthorDate:[ \t]+(.+)$')
COMMITTER_RE = re.compile(r'^Commit:[ \t]+(.+)$')
COMMIT_DATE_RE = re.compile(r'^CommitDate:[ \t]+(.+)$')
DIFF_RE = re.compile(r'^diff --(?:git|cc|combined) ')

CHANGE_ID_TAG = "Change-Id"
STORY_ID_TAG = "Story-Id"

# The SF- spellings fill the same fields; using both forms in one commit is a duplicate
TAG_PATTERNS = {
    CHANGE_ID_TAG: re.compile(r'^[ \t]*(?:SF-Change-Id|Change-Id):[ \t]+([^ \t]+)', re.IGNORECASE),
    STORY_ID_TAG: re.compile(r'^[ \t]*(?:SF-Story-Key|Story-Id):[ \t]+([^ \t]+)', re.IGNORECASE),
}


class State(Enum):
    HEAD = "head"
    MERGE = "merge"
    AUTHOR = "author"
    AUTHOR_DATE = "author_date"
    COMMITTER = "committer"
    COMMIT_DATE = "commit_date"
    TITLE = "title"
    BODY = "body"
    DIFF = "diff"


class LineClass(Enum):
    HEADER = "header"
    MERGE = "merge"
    AUTHOR = "author"
    AUTHOR_DATE = "author_date"
    COMMITTER = "committer"
    COMMIT_DATE = "commit_date"
    DIFF = "diff"
    BLANK = "blank"
    TEXT = "text"


# Checked in order; the first match wins
_CLASSIFIERS = [
    (LineClass.HEADER, HEADER_RE),
    (LineClass.MERGE, MERGE_RE),
    (LineClass.AUTHOR, AUTHOR_RE),
    (LineClass.AUTHOR_DATE, AUTHOR_DATE_RE),
    (LineClass.COMMITTER, COMMITTER_RE),
    (LineClass.COMMIT_DATE, COMMIT_DATE_RE),
    (LineClass.DIFF, DIFF_RE),
]


def classify(line: str) -> LineClass:
    if not line.strip():
        return LineClass.BLANK
    for line_class, pattern in _CLASSIFIERS:
        if pattern.match(line):
            return line_class
    return LineClass.TEXT


@dataclass
class _Draft:
    """Fields collected for the commit currently being parsed."""
    sha: str
    source: str
    merge: str | None = None
    author: str = ""
    author_date: datetime | None = None
    committer: str = ""
    commit_date: datetime | None = None
    title: str = ""
    indent: int = 0
    lines: list[str] = field(default_factory=list)
    tags: dict[str, str] = field(default_factory=dict)

    def finalise(self) -> Commit:
        lines = list(self.lines)
        while lines and lines[-1] == "":
            lines.pop()
        return Commit(
            sha=self.sha,
            source=self.source,
            merge=self.merge,
            author=self.author,
            author_date=self.author_date,
            committer=self.committer,
            commit_date=self.commit_date,
            message_title=self.title,
            message="\n".join(lines),
            change_id=self.tags.get(CHANGE_ID_TAG),
            story_id=self.tags.get(STORY_ID_TAG),
        )


class _Scan:
    """Mutable parse state shared by the transition handlers."""

    def __init__(self):
        self.commits: list[Commit] = []
        self.draft: _Draft | None = None
        self.line_number = 0
        self.line = ""

    def error(self, reason: str) -> ParseError:
        return ParseError(self.line_number, self.line, reason)

    def close_draft(self) -> None:
        if self.draft is not None:
            self.commits.append(self.draft.finalise())
            self.draft = None


def _parse_date(scan: _Scan, value: str) -> datetime:
    try:
        return datetime.strptime(value.strip(), DATE_FORMAT)
    except ValueError:
        raise scan.error("invalid date") from None


def _start_commit(scan: _Scan) -> None:
    scan.close_draft()
    match = HEADER_RE.match(scan.line)
    scan.draft = _Draft(sha=match.group(1), source=match.group(2) or "")


def _set_merge(scan: _Scan) -> None:
    scan.draft.merge = MERGE_RE.match(scan.line).group(1).strip()


def _set_author(scan: _Scan) -> None:
    scan.draft.author = AUTHOR_RE.match(scan.line).group(1).strip()


def _set_author_date(scan: _Scan) -> None:
    scan.draft.author_date = _parse_date(scan, AUTHOR_DATE_RE.match(scan.line).group(1))


def _set_committer(scan: _Scan) -> None:
    scan.draft.committer = COMMITTER_RE.match(scan.line).group(1).strip()


def _set_commit_date(scan: _Scan) -> None:
    scan.draft.commit_date = _parse_date(scan, COMMIT_DATE_RE.match(scan.line).group(1))


def _set_title(scan: _Scan) -> None:
    line = scan.line
    title = line.strip()
    scan.draft.indent = len(line) - len(line.lstrip())
    scan.draft.title = title
    scan.draft.lines.append(title)
    _match_tags(scan, title)


def _append_body(scan: _Scan) -> None:
    draft = scan.draft
    line = scan.line
    _match_tags(scan, line.strip())
    prefix = line[:draft.indent]
    if prefix.strip() == "":
        line = line[draft.indent:]
    else:
        line = line.lstrip()
    draft.lines.append(line.rstrip())


def _match_tags(scan: _Scan, trimmed: str) -> None:
    draft = scan.draft
    for tag, pattern in TAG_PATTERNS.items():
        match = pattern.match(trimmed)
        if not match:
            continue
        if tag in draft.tags:
            raise DuplicateTagError(scan.line_number, scan.line, tag, draft.sha)
        draft.tags[tag] = match.group(1)


def _skip(scan: _Scan) -> None:
    pass


Handler = Callable[[_Scan], None]

TRANSITIONS: dict[tuple[State, LineClass], tuple[Handler, State]] = {
    (State.HEAD, LineClass.BLANK): (_skip, State.HEAD),
    (State.HEAD, LineClass.HEADER): (_start_commit, State.MERGE),

    # Merge line is optional, Author falls through
    (State.MERGE, LineClass.MERGE): (_set_merge, State.AUTHOR),
    (State.MERGE, LineClass.AUTHOR): (_set_author, State.AUTHOR_DATE),

    (State.AUTHOR, LineClass.AUTHOR): (_set_author, State.AUTHOR_DATE),
    (State.AUTHOR_DATE, LineClass.AUTHOR_DATE): (_set_author_date, State.COMMITTER),
    (State.COMMITTER, LineClass.COMMITTER): (_set_committer, State.COMMIT_DATE),
    (State.COMMIT_DATE, LineClass.COMMIT_DATE): (_set_commit_date, State.TITLE),

    (State.TITLE, LineClass.BLANK): (_skip, State.TITLE),
    (State.TITLE, LineClass.TEXT): (_set_title, State.BODY),

    (State.BODY, LineClass.BLANK): (_append_body, State.BODY),
    (State.BODY, LineClass.TEXT): (_append_body, State.BODY),
    (State.BODY, LineClass.MERGE): (_append_body, State.BODY),
    (State.BODY, LineClass.AUTHOR): (_append_body, State.BODY),
    (State.BODY, LineClass.AUTHOR_DATE): (_append_body, State.BODY),
    (State.BODY, LineClass.COMMITTER): (_append_body, State.BODY),
    (State.BODY, LineClass.COMMIT_DATE): (_append_body, State.BODY),
    (State.BODY, LineClass.DIFF): (_skip, State.DIFF),
    (State.BODY, LineClass.HEADER): (_start_commit, State.MERGE),

    (State.DIFF, LineClass.HEADER): (_start_commit, State.MERGE),
}

# Diff content is ignored until the next header
for _line_class in LineClass:
    if _line_class is not LineClass.HEADER:
        TRANSITIONS[(State.DIFF, _line_class)] = (_skip, State.DIFF)

# States in which the input may legally end
FINAL_STATES = {State.HEAD, State.BODY, State.DIFF}

EXPECTED = {
    State.MERGE: "expected Merge: or Author: line",
    State.AUTHOR: "expected Author: line",
    State.AUTHOR_DATE: "expected AuthorDate: line",
    State.COMMITTER: "expected Commit: line",
    State.COMMIT_DATE: "expected CommitDate: line",
    State.TITLE: "expected commit message title",
    State.HEAD: "expected commit header",
}


def parse_commits(text: str) -> list[Commit]:
    """Parse git log output into commits, oldest first.

    Raises:
        ParseError: on any malformed or missing field; nothing is returned
            for the input as a whole in that case
        DuplicateTagError: when a tag repeats within one commit
    """
    scan = _Scan()
    state = State.HEAD

    for scan.line_number, scan.line in enumerate(text.splitlines(), 1):
        line_class = classify(scan.line)
        entry = TRANSITIONS.get((state, line_class))
        if entry is None:
            raise scan.error(EXPECTED.get(state, "unexpected line"))
        handler, state = entry
        handler(scan)

    if state not in FINAL_STATES:
        scan.line = ""
        raise scan.error(f"unexpected end of input, {EXPECTED[state]}")
    scan.close_draft()

    # git log prints newest first
    scan.commits.reverse()
    return scan.commits
