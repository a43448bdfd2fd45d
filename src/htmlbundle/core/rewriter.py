"""
HTML rewrite actions.

Stages never touch a document directly: they record what should happen to
the element that carried a given attribute, and HTMLRewriter applies all the
actions for one document in a single parse. Every target element is looked
up before anything is mutated, so the result does not depend on the order
the actions were recorded in.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional, Sequence, Tuple

from bs4 import BeautifulSoup

from .registry import Attribute


@dataclass
class RewriteAction:
    document: str           # registry key of the HTML document
    attribute: Attribute    # original attribute, as scanned

    def apply(self, soup: BeautifulSoup, element, resolve_path, transform_text):
        raise NotImplementedError


@dataclass
class ReplaceWithLiteral(RewriteAction):
    """Replace the element with a new ``<tag>`` holding ``text``."""
    tag: str = 'style'
    text: str = ''
    source: Optional[str] = None   # registry key the text came from

    def apply(self, soup, element, resolve_path, transform_text):
        replacement = soup.new_tag(self.tag)
        replacement.string = transform_text(self.source, self.text) if self.source else self.text
        element.replace_with(replacement)


@dataclass
class SetAttribute(RewriteAction):
    """Point the attribute at the final output of ``target``."""
    target: str = ''
    suffix: str = ''               # query string / fragment kept from the original value

    def apply(self, soup, element, resolve_path, transform_text):
        reference = resolve_path(self.target)
        if reference is None:
            return
        element[self.attribute.name] = reference + self.suffix


@dataclass
class RemoveAttribute(RewriteAction):
    name: str = 'src'

    def apply(self, soup, element, resolve_path, transform_text):
        if element.has_attr(self.name):
            del element[self.name]


@dataclass
class SetContent(RewriteAction):
    """Replace the element's children with ``text``."""
    text: str = ''
    source: Optional[str] = None

    def apply(self, soup, element, resolve_path, transform_text):
        element.string = transform_text(self.source, self.text) if self.source else self.text


def _identity(source, text):
    return text


class HTMLRewriter:
    def __init__(self, excluded_selectors: Sequence[str] = ('a',), parser: str = 'html.parser'):
        self.logger = logging.getLogger(__name__)
        self.excluded_selectors = [s for s in excluded_selectors if s and s.strip()]
        self.parser = parser

    def selector_for(self, attribute: Attribute) -> str:
        if not self.excluded_selectors:
            return attribute.selector
        return f"{attribute.selector}:not({', '.join(self.excluded_selectors)})"

    def apply(self,
              html_text: str,
              actions: Iterable[RewriteAction],
              resolve_path: Callable[[str], Optional[str]],
              transform_text: Optional[Callable[[Optional[str], str], str]] = None) -> str:
        """
        Apply the actions recorded for one document.

        Args:
            html_text: Current document text
            actions: Actions recorded for this document
            resolve_path: Maps a registry key to the reference to write into
                the document, or None to leave the attribute as written
            transform_text: Applied to inlined text before insertion, given
                the registry key the text came from

        Returns:
            The rewritten document text
        """
        soup = BeautifulSoup(html_text, self.parser)
        transform_text = transform_text or _identity

        targets: List[Tuple[RewriteAction, list]] = []
        for action in actions:
            elements = soup.select(self.selector_for(action.attribute))
            if not elements:
                self.logger.debug(f"No element for {action.attribute.selector} in {action.document}")
            targets.append((action, elements))

        for action, elements in targets:
            for element in elements:
                action.apply(soup, element, resolve_path, transform_text)
        return str(soup)
