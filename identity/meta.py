"""
Identity Metadata Document

Builds the Akoma Ntoso metadata document of an Intelligible Identity from
the subject's information and references, and reconstructs the same
information and references by walking a parsed document.

Document layout:
    akomaNtoso/doc
      meta/identification      FRBRWork, FRBRExpression, FRBRManifestation
      meta/references          one TLC element per reference
      preface/longTitle        "Identity issued by <issuer> for <subject>"
      mainBody/tblock          "Identity Information" section, one paragraph
                               per reference with an entity back-link, then
                               any caller-supplied sections

Round trip:
    parse(build(information, references)) == (meta.information, meta.references)
    where meta.information / meta.references are the completed values
    (defaults applied, fixed components appended) that build wrote.
"""

import logging
from typing import Dict, Mapping, Optional, Tuple, Union

from eth_utils import encode_hex, keccak

from akn.document import AKN_NAMESPACE, DocumentNode, StructuredDocument
from identity.errors import InvalidArgument, MissingRequiredReference
from identity.models import (
    DEFAULT_REFERENCE_TYPE,
    IID,
    IID_ISSUER,
    REQUIRED_REFERENCES,
    BodySection,
    ComponentData,
    FRBRDescriptor,
    IdentityInformation,
    Reference,
    References,
)

logger = logging.getLogger(__name__)

AKN_PATH_TEMPLATE = "/akn/eu/doc/{date}/{did}"

INFORMATION_SECTION_ID = "identity_information"
INFORMATION_SECTION_TITLE = "Identity Information"
ENTITY_ID_PREFIX = "ii_block_"
PARAGRAPH_ID_PREFIX = "ii_p_"

# (model field, element tag, this-suffix, uri-suffix)
DESCRIPTORS = (
    ("frbr_work", "FRBRWork", "/main", ""),
    ("frbr_expression", "FRBRExpression", "/eng@!main", "/eng@"),
    ("frbr_manifestation", "FRBRManifestation", "/eng@/main.xml", "/eng@.akn"),
)

FIXED_COMPONENTS = {
    "FRBRWork": (
        ComponentData(e_id="wmain", href="#emain", name="main", show_as="Main document"),
        ComponentData(e_id="wdiddoc", href="#ediddoc", name="diddoc", show_as="DID Document"),
    ),
    "FRBRExpression": (
        ComponentData(e_id="emain", href="#mmain", name="main", show_as="Main document"),
        ComponentData(e_id="ediddoc", href="#wdiddoc", name="diddoc", show_as="DID Document"),
    ),
    "FRBRManifestation": (
        ComponentData(e_id="mmain", href="main.xml", name="main", show_as="Main document"),
        ComponentData(e_id="mdiddoc", href="diddoc.json", name="diddoc", show_as="DID Document"),
    ),
}

# Element ids written by the document layout itself
RESERVED_ELEMENT_IDS = frozenset(
    ["longTitle", "mainBody", INFORMATION_SECTION_ID]
    + [component.e_id for components in FIXED_COMPONENTS.values() for component in components]
)
RESERVED_ID_PREFIXES = (ENTITY_ID_PREFIX, PARAGRAPH_ID_PREFIX)


def check_element_ids(references: References, information: IdentityInformation):
    """
    Reject caller ids that collide with the document layout or with each other.

    Reference ids, section ids and caller component ids all land in the
    same element id index. Caller components reusing a fixed component id
    are allowed, they are replaced when the descriptor is completed.

    Raises:
        InvalidArgument: If an id is reserved, starts with a reserved prefix,
            or is used twice
    """
    caller_ids = [reference.e_id.lstrip("#") for reference in references.values()]
    caller_ids.extend(information.additional_body)
    for field, _, _, _ in DESCRIPTORS:
        caller_ids.extend(
            component.e_id
            for component in getattr(information, field).components
            if component.e_id not in RESERVED_ELEMENT_IDS
        )

    seen = set()
    for e_id in caller_ids:
        if e_id in RESERVED_ELEMENT_IDS or e_id.startswith(RESERVED_ID_PREFIXES):
            raise InvalidArgument(f"Element id {e_id} is reserved by the identity document layout")
        if e_id in seen:
            raise InvalidArgument(f"Element id {e_id} is used more than once")
        seen.add(e_id)


def identity_base_path(identity_date: str, did: str) -> str:
    return AKN_PATH_TEMPLATE.format(date=identity_date, did=did)


def identity_directory(information: IdentityInformation) -> str:
    """Directory of the identity package, e.g. /akn/eu/doc/2024-01-01/<did>/eng@/"""
    return f"{identity_base_path(information.identity_date, information.did)}/eng@/"


def document_digest(text: str) -> str:
    """Keccak-256 hex digest of a serialized document."""
    return encode_hex(keccak(text=text))


def complete_references(references: Mapping[str, Union[Reference, dict]]) -> References:
    """
    Validate the reference set and fill in the element defaults.

    Args:
        references: Reference entries keyed by relationship name

    Returns:
        A new ordered dict of references with e_id, show_as and type set

    Raises:
        MissingRequiredReference: If iid, iidDIDDoc or iidIssuer is missing
    """
    missing = [key for key in REQUIRED_REFERENCES if key not in references]
    if missing:
        raise MissingRequiredReference(
            f"Needs {' && '.join(REQUIRED_REFERENCES)}; missing: {', '.join(missing)}"
        )

    completed = {}
    for key, value in references.items():
        reference = Reference.model_validate(value).model_copy(deep=True)
        if reference.e_id is None:
            reference.e_id = f"#{key}"
        if reference.show_as is None:
            reference.show_as = key
        if reference.type is None:
            reference.type = DEFAULT_REFERENCE_TYPE
        completed[key] = reference
    return completed


def complete_descriptor(
    tag: str,
    descriptor: FRBRDescriptor,
    this: str,
    uri: str,
    date: str,
    author: str,
) -> FRBRDescriptor:
    """Merge caller overrides over the canonical locators and append the fixed components."""
    fixed = FIXED_COMPONENTS[tag]
    fixed_ids = {component.e_id for component in fixed}
    components = [c.model_copy() for c in descriptor.components if c.e_id not in fixed_ids]
    components.extend(c.model_copy() for c in fixed)

    return FRBRDescriptor(
        this=descriptor.this or this,
        uri=descriptor.uri or uri,
        date=descriptor.date or date,
        author=descriptor.author or author,
        components=components,
    )


def _attribute(node: Optional[DocumentNode], tag: str, name: str) -> Optional[str]:
    if node is None:
        return None
    child = node.child(tag)
    return child.get(name) if child is not None else None


class IdentityMeta:
    """
    Intelligible Identity metadata document.

    Wraps a StructuredDocument. Built once from information and references,
    or loaded from text with from_string() and parsed back with
    parse_information_and_references().
    """

    def __init__(
        self,
        information: Optional[Union[IdentityInformation, dict]] = None,
        references: Optional[Mapping[str, Union[Reference, dict]]] = None,
    ):
        """
        Create the metadata document.

        Args:
            information: Identity's personal information; when omitted the
                         document is left empty for later loading
            references: References to other persons, organizations, objects

        Raises:
            MissingRequiredReference: If a reserved reference key is missing
            InvalidArgument: If a reference or section id is reserved by the
                document layout (see RESERVED_ELEMENT_IDS)
        """
        self._document = StructuredDocument(namespace=AKN_NAMESPACE)
        self.information: Optional[IdentityInformation] = None
        self.references: Optional[References] = None

        if information is not None:
            self._build(IdentityInformation.model_validate(information), references or {})

    @property
    def is_empty(self) -> bool:
        return self._document.is_empty

    def find_element_by_id(self, e_id: str) -> Optional[DocumentNode]:
        return self._document.find_element_by_id(e_id)

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    def _build(self, information: IdentityInformation, references: Mapping[str, Union[Reference, dict]]):
        references = complete_references(references)
        check_element_ids(references, information)
        issuer = references[IID_ISSUER]
        base = identity_base_path(information.identity_date, information.did)

        descriptors = {}
        for field, tag, this_suffix, uri_suffix in DESCRIPTORS:
            descriptors[field] = complete_descriptor(
                tag,
                getattr(information, field),
                this=f"{base}{this_suffix}",
                uri=f"{base}{uri_suffix}",
                date=information.identity_date,
                author=issuer.e_id,
            )

        self.information = information.model_copy(update=descriptors, deep=True)
        self.references = references

        doc = StructuredDocument("akomaNtoso", namespace=AKN_NAMESPACE)
        body_doc = doc.append(doc.root, "doc", {"name": "identity"})
        meta = doc.append(body_doc, "meta")

        identification = doc.append(meta, "identification", {"source": issuer.e_id})
        for field, tag, _, _ in DESCRIPTORS:
            self._append_descriptor(doc, identification, tag, descriptors[field])

        references_block = doc.append(meta, "references", {"source": issuer.e_id})
        for reference in references.values():
            doc.append(
                references_block,
                reference.type,
                {
                    "eId": reference.e_id.lstrip("#"),
                    "href": reference.href,
                    "showAs": reference.show_as,
                },
            )

        preface = doc.append(body_doc, "preface")
        long_title = doc.append(preface, "longTitle", {"eId": "longTitle"})
        doc.append(
            long_title,
            "p",
            text=f"Identity issued by {issuer.entity} for {references[IID].entity}",
        )

        main_body = doc.append(body_doc, "mainBody", {"eId": "mainBody"})
        information_block = doc.append(main_body, "tblock", {"eId": INFORMATION_SECTION_ID})
        doc.append(information_block, "heading", text=INFORMATION_SECTION_TITLE)
        for key, reference in references.items():
            paragraph = doc.append(information_block, "p", {"eId": f"{PARAGRAPH_ID_PREFIX}{key}"})
            doc.append(
                paragraph,
                "entity",
                {"eId": f"{ENTITY_ID_PREFIX}{key}", "refersTo": reference.e_id},
                text=reference.entity,
            )

        for section_id, section in self.information.additional_body.items():
            block = doc.append(main_body, "tblock", {"eId": section_id})
            doc.append(block, "heading", text=section.title)
            for n, text in enumerate(section.paragraphs, start=1):
                doc.append(block, "p", {"eId": f"{section_id}__p_{n}"}, text=text)

        self._document = doc
        logger.info(f"Built identity metadata document for {information.did} ({len(references)} references)")

    @staticmethod
    def _append_descriptor(doc: StructuredDocument, parent: DocumentNode, tag: str, descriptor: FRBRDescriptor):
        node = doc.append(parent, tag)
        doc.append(node, "FRBRthis", {"value": descriptor.this})
        doc.append(node, "FRBRuri", {"value": descriptor.uri})
        doc.append(node, "FRBRdate", {"date": descriptor.date, "name": "issuance"})
        doc.append(node, "FRBRauthor", {"href": descriptor.author})
        component_info = doc.append(node, "componentInfo")
        for component in descriptor.components:
            doc.append(
                component_info,
                "componentData",
                {
                    "eId": component.e_id,
                    "href": component.href,
                    "name": component.name,
                    "showAs": component.show_as,
                },
            )

    def finalize(self) -> str:
        """Serialize the document to Akoma Ntoso XML."""
        return self._document.serialize()

    # ------------------------------------------------------------------
    # Parsing
    # ------------------------------------------------------------------

    @classmethod
    def from_string(cls, text: str) -> "IdentityMeta":
        """Load a metadata document from its XML text."""
        meta = cls()
        meta._document = StructuredDocument.load_from_text(text)
        return meta

    @staticmethod
    def _parse_descriptor(node: Optional[DocumentNode]) -> FRBRDescriptor:
        if node is None:
            return FRBRDescriptor()
        component_info = node.child("componentInfo")
        components = []
        if component_info is not None:
            for entry in component_info.children_by_tag("componentData"):
                components.append(ComponentData(
                    e_id=entry.get("eId"),
                    href=entry.get("href"),
                    name=entry.get("name"),
                    show_as=entry.get("showAs"),
                ))
        return FRBRDescriptor(
            this=_attribute(node, "FRBRthis", "value"),
            uri=_attribute(node, "FRBRuri", "value"),
            date=_attribute(node, "FRBRdate", "date"),
            author=_attribute(node, "FRBRauthor", "href"),
            components=components,
        )

    def parse_information_and_references(self) -> Optional[Tuple[IdentityInformation, References]]:
        """
        Reconstruct the information and references objects from the document.

        Returns:
            (information, references), or None if the document has no content

        Raises:
            InvalidArgument: If the document has no identity information section
        """
        if self._document.is_empty:
            return None

        doc = self._document
        identification = doc.find("doc", "meta", "identification")
        information_block = doc.find_element_by_id(INFORMATION_SECTION_ID)
        if identification is None or information_block is None:
            raise InvalidArgument("Document is not an identity metadata document")

        descriptors = {
            field: self._parse_descriptor(identification.child(tag))
            for field, tag, _, _ in DESCRIPTORS
        }

        did = None
        references: Dict[str, Reference] = {}
        for paragraph in information_block.children_by_tag("p"):
            entity = paragraph.child("entity")
            if entity is None:
                continue
            key = (entity.e_id or "")[len(ENTITY_ID_PREFIX):]
            if key == IID:
                did = entity.text or ""

            refers_to = entity.get("refersTo")
            if refers_to is None:
                continue
            target = doc.find_element_by_id(refers_to)
            if target is None:
                logger.warning(f"Reference {key} points to missing element {refers_to}")
                continue
            references[key] = Reference(
                type=target.tag,
                entity=entity.text or "",
                e_id=refers_to,
                href=target.get("href"),
                show_as=target.get("showAs"),
            )

        if did is None:
            raise InvalidArgument("Document has no identity subject paragraph")

        additional_body = {}
        main_body = doc.find_element_by_id("mainBody")
        for block in main_body.children_by_tag("tblock"):
            if block.e_id == INFORMATION_SECTION_ID:
                continue
            heading = block.child("heading")
            additional_body[block.e_id] = BodySection(
                title=(heading.text or "") if heading is not None else "",
                paragraphs=[p.text or "" for p in block.children_by_tag("p")],
            )

        information = IdentityInformation(
            identity_date=descriptors["frbr_manifestation"].date,
            did=did,
            additional_body=additional_body,
            **descriptors,
        )
        return information, references
