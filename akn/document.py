"""
Structured Document Engine

A small XML document model used for both the Akoma Ntoso identity metadata
document and the signature document. Documents are an explicit tree of
DocumentNode objects plus an eId -> node index, so that cross-element
pointers (refersTo, href="#...") resolve in constant time.

Serialization and parsing go through lxml.
"""

import logging
from typing import Dict, Iterator, List, Optional

from lxml import etree

from identity.errors import DuplicateElementId, InvalidArgument

logger = logging.getLogger(__name__)

AKN_NAMESPACE = "http://docs.oasis-open.org/legaldocml/ns/akn/3.0"

ID_ATTRIBUTE = "eId"


class DocumentNode:
    """One element of a structured document."""

    __slots__ = ("tag", "attributes", "text", "children", "parent")

    def __init__(
        self,
        tag: str,
        attributes: Optional[Dict[str, str]] = None,
        text: Optional[str] = None,
    ):
        self.tag = tag
        self.attributes = {k: v for k, v in (attributes or {}).items() if v is not None}
        self.text = text
        self.children: List["DocumentNode"] = []
        self.parent: Optional["DocumentNode"] = None

    @property
    def e_id(self) -> Optional[str]:
        return self.attributes.get(ID_ATTRIBUTE)

    def get(self, name: str, default: Optional[str] = None) -> Optional[str]:
        return self.attributes.get(name, default)

    def child(self, tag: str) -> Optional["DocumentNode"]:
        """First direct child with the given tag, or None."""
        for node in self.children:
            if node.tag == tag:
                return node
        return None

    def children_by_tag(self, tag: str) -> List["DocumentNode"]:
        return [node for node in self.children if node.tag == tag]

    def iter(self) -> Iterator["DocumentNode"]:
        """Depth-first walk starting at this node."""
        yield self
        for node in self.children:
            yield from node.iter()

    def __repr__(self) -> str:
        return f"DocumentNode({self.tag!r}, {self.attributes!r})"


class StructuredDocument:
    """
    Generic XML document with an element id index.

    Usage:
        >>> doc = StructuredDocument("akomaNtoso", namespace=AKN_NAMESPACE)
        >>> body = doc.append(doc.root, "mainBody", {"eId": "mainBody"})
        >>> doc.find_element_by_id("#mainBody") is body
        True
    """

    def __init__(self, root_tag: Optional[str] = None, namespace: Optional[str] = None):
        self.namespace = namespace
        self.root: Optional[DocumentNode] = None
        self._index: Dict[str, DocumentNode] = {}
        if root_tag is not None:
            self.root = self._register(DocumentNode(root_tag))

    @property
    def is_empty(self) -> bool:
        return self.root is None

    def _register(self, node: DocumentNode) -> DocumentNode:
        e_id = node.e_id
        if e_id is not None:
            if e_id in self._index:
                raise DuplicateElementId(f"Duplicate element id: {e_id}")
            self._index[e_id] = node
        return node

    def append(
        self,
        parent: DocumentNode,
        tag: str,
        attributes: Optional[Dict[str, str]] = None,
        text: Optional[str] = None,
    ) -> DocumentNode:
        """
        Create a child element under parent and index its eId.

        Args:
            parent: Node receiving the new child
            tag: Element local name
            attributes: Attributes; None values are dropped
            text: Optional text content

        Returns:
            The new node

        Raises:
            DuplicateElementId: If the eId is already used in this document
        """
        node = self._register(DocumentNode(tag, attributes, text))
        node.parent = parent
        parent.children.append(node)
        return node

    def find_element_by_id(self, e_id: str) -> Optional[DocumentNode]:
        """Look up an element by eId; a leading '#' pointer marker is ignored."""
        if not e_id:
            return None
        return self._index.get(e_id.lstrip("#"))

    def find(self, *path: str) -> Optional[DocumentNode]:
        """Follow a chain of child tags from the root."""
        node = self.root
        for tag in path:
            if node is None:
                return None
            node = node.child(tag)
        return node

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def _qualified(self, tag: str) -> str:
        if self.namespace:
            return f"{{{self.namespace}}}{tag}"
        return tag

    def _to_element(self, node: DocumentNode, parent=None):
        if parent is None:
            nsmap = {None: self.namespace} if self.namespace else None
            element = etree.Element(self._qualified(node.tag), nsmap=nsmap)
        else:
            element = etree.SubElement(parent, self._qualified(node.tag))
        try:
            for name, value in node.attributes.items():
                element.set(name, value)
            if node.text is not None:
                element.text = node.text
        except ValueError as e:
            raise InvalidArgument(f"Element {node.tag} holds text that is not XML compatible: {e}") from e
        for child in node.children:
            self._to_element(child, element)
        return element

    def serialize(self) -> str:
        """Render the document as UTF-8 XML text."""
        if self.root is None:
            raise InvalidArgument("Cannot serialize an empty document")
        element = self._to_element(self.root)
        return etree.tostring(
            element,
            pretty_print=True,
            xml_declaration=True,
            encoding="UTF-8",
        ).decode("utf-8")

    @classmethod
    def load_from_text(cls, text: str) -> "StructuredDocument":
        """
        Parse XML text into a document.

        Raises:
            InvalidArgument: If the text is not well-formed XML
            DuplicateElementId: If two elements share an eId
        """
        parser = etree.XMLParser(remove_blank_text=True, resolve_entities=False, no_network=True)
        try:
            root = etree.fromstring(text.encode("utf-8"), parser)
        except etree.XMLSyntaxError as e:
            raise InvalidArgument(f"Malformed document: {e}") from e

        document = cls(namespace=etree.QName(root).namespace)
        document.root = document._load_element(root)
        logger.debug(f"Loaded document with {len(document._index)} indexed elements")
        return document

    def _load_element(self, element, parent: Optional[DocumentNode] = None) -> DocumentNode:
        node = self._register(
            DocumentNode(etree.QName(element).localname, dict(element.attrib), element.text)
        )
        if parent is not None:
            node.parent = parent
            parent.children.append(node)
        for child in element.iterchildren(tag=etree.Element):
            self._load_element(child, node)
        return node
