# =============================================================================
# PROPOSAL RELAY - MESSAGE COMPOSER
# =============================================================================
#
# Builds two artifacts from a ProposalEvent:
# - a short Telegram message (Markdown parse mode)
# - the proposal document for the docs repository (front matter + body)
#
# MESSAGE TEMPLATE (verbatim, order matters):
#   *New Executable Proposal*: <title>      | *New Social Proposal*: <title>
#   <empty>
#   Proposer: <display author>
#   <voting UI links>
#
# The ": <title>" suffix is dropped when no title is known. Title and
# author are escaped for legacy Markdown; headline and links are not.
#
# =============================================================================

import logging
from typing import List, Optional

import yaml
from markdown_it import MarkdownIt

from collector.models import ProposalEvent
from shared.enums import ProposalSource

logger = logging.getLogger(__name__)

AUTHOR_MARKER = "::authors"

HEADLINES = {
    ProposalSource.ONCHAIN: "New Executable Proposal",
    ProposalSource.OFFCHAIN: "New Social Proposal",
}

DOCUMENT_TYPES = {
    ProposalSource.ONCHAIN: "executable",
    ProposalSource.OFFCHAIN: "social",
}

TALLY_URL = "https://www.tally.xyz/gov/{slug}/proposal/{id}"
AGORA_URL = "https://agora.ensdao.org/proposals/{id}"
SNAPSHOT_URL = "https://snapshot.org/#/{space}/proposal/{id}"

# Entities of Telegram's legacy Markdown parse mode
MARKDOWN_SPECIAL = ("_", "*", "[", "`")

_markdown = MarkdownIt("commonmark")


def escape_markdown(text: str) -> str:
    """Backslash-escape text so Telegram shows it literally."""
    for char in MARKDOWN_SPECIAL:
        text = text.replace(char, f"\\{char}")
    return text


def _first_h1(tokens):
    for index, token in enumerate(tokens):
        if token.type == "heading_open" and token.tag == "h1":
            return index, token
    return None, None


def extract_title(markdown: str) -> Optional[str]:
    """
    Return the text of the first depth-1 heading, or None.

    Only real block-level headings count: a "# " inside a code fence is not
    a heading.
    """
    tokens = _markdown.parse(markdown or "")
    index, _ = _first_h1(tokens)
    if index is None or index + 1 >= len(tokens):
        return None
    return tokens[index + 1].content.strip() or None


def effective_title(event: ProposalEvent) -> Optional[str]:
    """Heading of the body first, then the title the indexer returned."""
    return extract_title(event.body) or event.title


def insert_author_marker(markdown: str) -> str:
    """Insert AUTHOR_MARKER beneath the first depth-1 heading, if there is one."""
    tokens = _markdown.parse(markdown)
    _, heading = _first_h1(tokens)
    if heading is None or heading.map is None:
        return markdown

    lines = markdown.splitlines()
    end = heading.map[1]
    rest = lines[end:]
    while rest and not rest[0].strip():
        rest.pop(0)

    return "\n".join(lines[:end] + ["", AUTHOR_MARKER, ""] + rest)


class MessageComposer:
    """
    Renders notifications and documents.

    Stateless apart from the link targets, which depend on the DAO being
    watched.
    """

    def __init__(self, tally_slug: str = "ens", snapshot_space: str = "ens.eth"):
        self.tally_slug = tally_slug
        self.snapshot_space = snapshot_space

    def links(self, event: ProposalEvent) -> str:
        if event.is_onchain:
            tally = TALLY_URL.format(slug=self.tally_slug, id=event.id)
            agora = AGORA_URL.format(id=event.id)
            return f"[Tally]({tally}) | [Agora]({agora})"
        snapshot = SNAPSHOT_URL.format(space=self.snapshot_space, id=event.id)
        return f"[Snapshot]({snapshot})"

    def compose_notification(
        self,
        event: ProposalEvent,
        display_author: str,
        title: Optional[str] = None,
    ) -> str:
        """
        Build the chat message for a proposal.

        Args:
            event: Proposal to announce
            display_author: Resolved name or truncated address
            title: Detected title (optional)

        Returns:
            Four-line message in Telegram Markdown
        """
        headline = f"*{HEADLINES[event.source]}*"
        if title:
            headline = f"{headline}: {escape_markdown(title)}"

        lines: List[str] = [
            headline,
            "",
            f"Proposer: {escape_markdown(display_author)}",
            self.links(event),
        ]
        return "\n".join(lines)

    def compose_document(
        self,
        event: ProposalEvent,
        author: str,
        title: Optional[str] = None,
    ) -> str:
        """
        Build the docs page for a proposal.

        The author marker is only injected when a title was detected and the
        body has a depth-1 heading to put it under. No heading is synthesized.
        """
        body = event.body.strip()
        if title:
            body = insert_author_marker(body)
        else:
            logger.debug(f"No title for {event.short_id}, author marker skipped")

        front_matter = yaml.safe_dump(
            {
                "authors": [author],
                "proposal": {"type": DOCUMENT_TYPES[event.source]},
            },
            sort_keys=False,
            default_flow_style=False,
            allow_unicode=True,
        )
        return f"---\n{front_matter}---\n\n{body}\n"
