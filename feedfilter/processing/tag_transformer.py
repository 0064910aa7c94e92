"""
Tag Transformer
===============

Rewrites a parsed feed in place: removes configured tags, splits tag text
into new or existing sibling tags, and strips regex matches from tag text.

The three phases always run in that order. Split and cleanup only run when
``cleanup_tags`` is enabled.
"""

import re
from dataclasses import dataclass, field
from typing import List, Optional

from lxml import etree

from ..config.settings import FeedSettings, TagCleanupRule, TagSplitRule
from ..utils.exceptions import ErrorCode, RuleError
from ..utils.logging import get_logger_for_component


XML_NAMESPACE = "http://www.w3.org/XML/1998/namespace"
CHANNEL_TAG = "channel"
LINK_TAG = "link"


@dataclass
class RuleSet:
    """Ordered removal, split and cleanup rules."""

    tags_to_remove: List[str] = field(default_factory=list)
    cleanup_enabled: bool = False
    split_rules: List[TagSplitRule] = field(default_factory=list)
    cleanup_rules: List[TagCleanupRule] = field(default_factory=list)

    @classmethod
    def from_settings(cls, settings: FeedSettings) -> "RuleSet":
        return cls(
            tags_to_remove=list(settings.tags_to_remove),
            cleanup_enabled=settings.cleanup_tags,
            split_rules=list(settings.tag_split),
            cleanup_rules=settings.all_cleanup_rules(),
        )


@dataclass
class TransformStats:
    """What a single transform changed."""

    removed: int = 0
    split: int = 0
    cleaned: int = 0
    skipped_rules: List[str] = field(default_factory=list)


def local_name(element) -> Optional[str]:
    """Local part of an element's name; None for comments and PIs."""
    if not isinstance(element.tag, str):
        return None
    return etree.QName(element).localname


def element_value(element) -> str:
    """Concatenated text of the element and all of its descendants."""
    return "".join(element.itertext())


def set_element_value(element, value: str) -> None:
    """Replace the element's content with a single text value.

    Attributes and the element's own tail are kept.
    """
    for child in list(element):
        element.remove(child)
    element.text = value


def remove_element(element) -> bool:
    """Detach an element while keeping the surrounding layout intact.

    Returns False for the root element, which cannot be removed.
    """
    parent = element.getparent()
    if parent is None:
        return False

    tail = element.tail
    previous = element.getprevious()

    if tail and tail.strip():
        # Mixed content: the text after the element belongs to the parent
        if previous is not None:
            previous.tail = (previous.tail or "") + tail
        else:
            parent.text = (parent.text or "") + tail
    elif element.getnext() is None:
        # Last child: its tail holds the indentation of the closing tag
        if previous is not None:
            previous.tail = tail
        else:
            parent.text = tail

    parent.remove(element)
    return True


def _qualified(namespace: Optional[str], name: str) -> str:
    return f"{{{namespace}}}{name}" if namespace else name


class TagTransformer:
    """Applies a RuleSet to an lxml document."""

    def __init__(self, logger=None):
        self.logger = logger or get_logger_for_component("monitor")

    def transform(self, doc, rule_set: RuleSet) -> TransformStats:
        """Run removal, split and cleanup against ``doc`` in place.

        Args:
            doc: lxml ElementTree (or root element) to rewrite
            rule_set: Rules to apply

        Returns:
            TransformStats describing the changes
        """
        root = doc.getroot() if hasattr(doc, "getroot") else doc
        stats = TransformStats()

        try:
            default_namespace = root.nsmap.get(None)

            for tag in rule_set.tags_to_remove:
                stats.removed += self._apply_removal(root, tag, default_namespace, stats)

            if rule_set.cleanup_enabled:
                self._apply_split_rules(root, rule_set.split_rules, stats)
                self._apply_cleanup_rules(root, rule_set.cleanup_rules, stats)
        except Exception as e:
            self.logger.error(f"Error processing feed content: {e}")
            raise

        return stats

    # Phase 1 - removal

    def _apply_removal(
        self, root, tag: str, default_namespace: Optional[str], stats: TransformStats
    ) -> int:
        if tag == LINK_TAG:
            return self._remove_links(root)

        if ":" in tag:
            parts = tag.split(":")
            prefix, name = parts[0], parts[1]
            namespace = XML_NAMESPACE if prefix == "xml" else root.nsmap.get(prefix)

            if namespace is None:
                error = RuleError(
                    f"Namespace prefix '{prefix}' not found in the document",
                    tag_name=tag,
                    error_code=ErrorCode.RULE_UNRESOLVED_PREFIX,
                )
                self.logger.warning(f"Warning: {error}")
                stats.skipped_rules.append(tag)
                return 0

            return self._remove_all(root, _qualified(namespace, name))

        return self._remove_all(root, _qualified(default_namespace, tag))

    def _remove_all(self, root, qualified_name: str) -> int:
        removed = 0
        for element in list(root.iter(qualified_name)):
            if remove_element(element):
                removed += 1
            else:
                self.logger.warning(
                    f"Cannot remove root element '{qualified_name}', skipping"
                )
        return removed

    def _remove_links(self, root) -> int:
        """Remove every link element except the channel's own link."""
        candidates = []
        for element in root.iter(etree.Element):
            if local_name(element) != LINK_TAG:
                continue
            parent = element.getparent()
            if parent is None or local_name(parent) != CHANNEL_TAG:
                candidates.append(element)

        removed = sum(1 for element in candidates if remove_element(element))

        self.logger.info(
            f"Preserved channel link element, removed {removed} other link elements"
        )
        return removed

    # Phase 2 - split

    def _apply_split_rules(
        self, root, rules: List[TagSplitRule], stats: TransformStats
    ) -> None:
        if not rules:
            return

        for rule in rules:
            if (
                not rule.tag_name.strip()
                or not rule.split_pattern.strip()
                or not rule.new_tags
            ):
                continue

            try:
                regex = self._compile(rule.split_pattern, rule.tag_name)
            except RuleError as e:
                self.logger.error(f"Skipping split rule: {e}")
                stats.skipped_rules.append(rule.tag_name)
                continue

            if regex.groups < 2:
                continue

            elements = [e for e in root.iter(etree.Element) if local_name(e) == rule.tag_name]
            for element in elements:
                if self._split_element(element, rule, regex):
                    stats.split += 1

        self.logger.info(f"Processed tag splitting for {len(rules)} tag types")

    def _split_element(self, element, rule: TagSplitRule, regex) -> bool:
        original_value = element_value(element)
        if not original_value:
            return False

        match = regex.search(original_value)
        if match is None:
            return False

        parent = element.getparent()
        if parent is None:
            return False

        first = match.group(1) or ""
        second = match.group(2) or ""
        parent_namespace = etree.QName(parent).namespace

        for new_tag_name, template in rule.new_tags.items():
            new_value = template.replace("$1", first).replace("$2", second).strip()

            existing = next(
                (child for child in parent if local_name(child) == new_tag_name),
                None,
            )

            if existing is not None:
                set_element_value(existing, new_value)
            elif new_tag_name == rule.tag_name:
                set_element_value(element, new_value)
            else:
                new_element = etree.Element(_qualified(parent_namespace, new_tag_name))
                new_element.text = new_value
                new_element.tail = element.tail
                element.addnext(new_element)

        return True

    # Phase 3 - cleanup

    def _apply_cleanup_rules(
        self, root, rules: List[TagCleanupRule], stats: TransformStats
    ) -> None:
        if not rules:
            return

        for rule in rules:
            if not rule.tag_name or not rule.cleanup_pattern:
                continue

            try:
                regex = self._compile(rule.cleanup_pattern, rule.tag_name)
            except RuleError as e:
                self.logger.error(f"Skipping cleanup rule: {e}")
                stats.skipped_rules.append(rule.tag_name)
                continue

            elements = [
                e for e in root.iter(etree.Element)
                if local_name(e) == rule.tag_name and element_value(e)
            ]
            for element in elements:
                set_element_value(element, regex.sub("", element_value(element)).strip())
                stats.cleaned += 1

        self.logger.info(f"Cleaned up content for {len(rules)} tag types")

    @staticmethod
    def _compile(pattern: str, tag_name: str):
        try:
            return re.compile(pattern)
        except re.error as e:
            raise RuleError(
                f"Invalid pattern '{pattern}' for tag '{tag_name}': {e}",
                tag_name=tag_name,
            ) from e
