"""
Markdown Rendering

Supports the three constructs the chat bubbles need: **bold**, [label](url)
links and newlines. Text is parsed into nodes and every node is rendered
explicitly, so anything else in the input comes out HTML-escaped.
"""

import re
from dataclasses import dataclass, field
from html import escape
from urllib.parse import urlparse

from models import Sender

BOT_LINK_CLASS = "text-blue-600 dark:text-blue-400 hover:underline"
USER_LINK_CLASS = "text-white underline hover:text-blue-200"

SAFE_LINK_SCHEMES = {"http", "https", "mailto"}

TOKEN_PATTERN = re.compile(
    r"\*\*(?P<bold>.*?)\*\*"
    r"|\[(?P<label>[^\]]+)\]\((?P<href>[^)]+)\)"
    r"|(?P<newline>\n)"
)


@dataclass
class Text:
    text: str


@dataclass
class Bold:
    children: list = field(default_factory=list)


@dataclass
class Link:
    label: str
    href: str


@dataclass
class LineBreak:
    pass


Node = Text | Bold | Link | LineBreak


def _is_safe_href(href: str) -> bool:
    return urlparse(href.strip()).scheme.lower() in SAFE_LINK_SCHEMES


def parse_markdown(text: str) -> list[Node]:
    nodes: list[Node] = []
    position = 0

    for match in TOKEN_PATTERN.finditer(text):
        if match.start() > position:
            nodes.append(Text(text[position:match.start()]))

        if match.group("bold") is not None:
            nodes.append(Bold(parse_markdown(match.group("bold"))))
        elif match.group("href") is not None:
            label, href = match.group("label"), match.group("href")
            if _is_safe_href(href):
                nodes.append(Link(label=label, href=href.strip()))
            else:
                nodes.append(Text(match.group(0)))
        else:
            nodes.append(LineBreak())

        position = match.end()

    if position < len(text):
        nodes.append(Text(text[position:]))
    return nodes


def _render_node(node: Node, link_class: str) -> str:
    if isinstance(node, Text):
        return escape(node.text)
    if isinstance(node, Bold):
        inner = "".join(_render_node(child, link_class) for child in node.children)
        return f"<strong>{inner}</strong>"
    if isinstance(node, Link):
        return (
            f'<a href="{escape(node.href)}" target="_blank" rel="noopener noreferrer" '
            f'class="{escape(link_class)}">{escape(node.label)}</a>'
        )
    return "<br />"


def render_html(content: str | list[Node], link_class: str = BOT_LINK_CLASS) -> str:
    nodes = parse_markdown(content) if isinstance(content, str) else content
    return "".join(_render_node(node, link_class) for node in nodes)


def link_class_for(sender: Sender) -> str:
    return BOT_LINK_CLASS if sender == "bot" else USER_LINK_CLASS
