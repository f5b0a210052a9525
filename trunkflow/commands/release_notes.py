"""
tflow release notes - Print the release notes for a release.

The notes list the stories assigned to the release in the issue tracker,
grouped into sections by story type. Sections are sorted by type name;
stories keep the tracker's order within a section.
"""

import html
import json
import logging
from dataclasses import dataclass, field

import yaml

from trunkflow.lib.config import Config
from trunkflow.lib.errors import TaskError, TrunkflowError
from trunkflow.lib.version import Version
from trunkflow.modules import get_issue_tracker
from trunkflow.modules.base import IssueTracker

logger = logging.getLogger(__name__)

FORMATS = ("json", "yaml", "markdown", "html")


@dataclass
class NotesSection:
    story_type: str
    stories: list = field(default_factory=list)


@dataclass
class ReleaseNotes:
    version: Version
    sections: list[NotesSection] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "version": self.version.base_string(),
            "sections": [
                {
                    "story_type": section.story_type,
                    "stories": [
                        {"id": story.readable_id, "title": story.title, "url": story.url}
                        for story in section.stories
                    ],
                }
                for section in self.sections
            ],
        }


def generate_release_notes(version: Version, stories: list) -> ReleaseNotes:
    sections: dict[str, NotesSection] = {}
    for story in stories:
        section = sections.get(story.story_type)
        if section is None:
            section = sections[story.story_type] = NotesSection(story.story_type)
        section.stories.append(story)
    return ReleaseNotes(version.base(), sorted(sections.values(), key=lambda s: s.story_type))


def release_notes(tracker: IssueTracker, version: Version) -> ReleaseNotes:
    """Collect the notes for version from the issue tracker.

    Raises:
        TaskError: if the stories cannot be fetched or there are none
    """
    task = f"Fetch stories assigned to release {version.base_string()}"
    logger.info(f"Run: {task}")
    try:
        stories = tracker.release_stories(version.base())
    except TrunkflowError as e:
        raise TaskError(task, e) from e
    if not stories:
        raise TaskError(task, TrunkflowError("no stories found"))
    return generate_release_notes(version, stories)


def _markdown(notes: ReleaseNotes) -> str:
    lines = [
        "## Release Notes ##",
        "",
        f"These are the release notes for version {notes.version.base_string()}.",
        "",
        "The following sections contain the release notes grouped by story type.",
    ]
    for section in notes.sections:
        lines += ["", f"### {section.story_type} ###", ""]
        lines += [f"* [[{s.readable_id}]({s.url})] - {s.title}" for s in section.stories]
    return "\n".join(lines) + "\n"


def _html(notes: ReleaseNotes) -> str:
    e = html.escape
    lines = [
        "<h2>Release Notes</h2>",
        "",
        f"<p>These are the release notes for version {e(notes.version.base_string())} "
        "as collected from the issue tracker.</p>",
    ]
    for section in notes.sections:
        lines += ["", f"<h3>{e(section.story_type)}</h3>", "<ul>"]
        lines += [
            f'  <li>[<a href="{e(s.url)}">{e(s.readable_id)}</a>] - {e(s.title)}</li>'
            for s in section.stories
        ]
        lines.append("</ul>")
    return "\n".join(lines) + "\n"


def encode_release_notes(notes: ReleaseNotes, fmt: str = "json", pretty: bool = False) -> str:
    """Render notes in one of FORMATS. pretty only affects json."""
    if fmt == "json":
        return json.dumps(notes.to_dict(), indent=2 if pretty else None) + "\n"
    if fmt == "yaml":
        return yaml.safe_dump(notes.to_dict(), default_flow_style=False, sort_keys=False)
    if fmt == "markdown":
        return _markdown(notes)
    if fmt == "html":
        return _html(notes)
    raise TrunkflowError(f"unknown release notes format: {fmt}")


def cmd_release_notes(args, config: Config) -> int:
    """Print the release notes for a release."""
    version = Version.parse(args.version)
    notes = release_notes(get_issue_tracker(config), version)
    print(encode_release_notes(notes, args.format, args.pretty), end="")
    return 0
