"""
Signature Document

Container for the signatures over an identity package (signature.xml),
stored next to the metadata document.

    <signatures>
      <signature eId="signature_1">
        <signer refersTo="#iidIssuer">Issuer entity</signer>
        <timestamp>1700000000000</timestamp>
        <value>0x...</value>
      </signature>
    </signatures>
"""

from typing import List

from pydantic import BaseModel, Field

from akn.document import StructuredDocument
from identity.errors import InvalidArgument


class SignatureRecord(BaseModel):
    """A named signature entry."""
    name: str = Field(..., description="Element id of the signature")
    signer_ref: str = Field(..., description="Signer element reference, e.g. #iidIssuer")
    signer_label: str = Field(..., description="Signer entity label")
    timestamp: int = Field(..., description="Milliseconds since the epoch")
    value: str = Field(..., description="Hex signature (0x-prefixed)")


class SignatureDocument:
    """Signature document built on the structured document engine."""

    ROOT_TAG = "signatures"

    def __init__(self):
        self._document = StructuredDocument(self.ROOT_TAG)

    @property
    def signatures(self) -> List[SignatureRecord]:
        records = []
        for node in self._document.root.children_by_tag("signature"):
            signer = node.child("signer")
            timestamp = node.child("timestamp")
            value = node.child("value")
            if signer is None or timestamp is None or value is None:
                raise InvalidArgument(f"Incomplete signature entry: {node.e_id}")
            records.append(SignatureRecord(
                name=node.e_id,
                signer_ref=signer.get("refersTo"),
                signer_label=signer.text or "",
                timestamp=int(timestamp.text),
                value=value.text or "",
            ))
        return records

    def add_signature(self, signer_ref: str, signer_label: str, timestamp: int, value: str) -> SignatureRecord:
        """
        Append a signature entry.

        Args:
            signer_ref: Reference to the signer element (e.g. "#iidIssuer")
            signer_label: Signer entity label
            timestamp: Signing time in milliseconds since the epoch
            value: Signature value

        Returns:
            The appended SignatureRecord
        """
        doc = self._document
        name = f"signature_{len(doc.root.children_by_tag('signature')) + 1}"
        node = doc.append(doc.root, "signature", {"eId": name})
        doc.append(node, "signer", {"refersTo": signer_ref}, text=signer_label)
        doc.append(node, "timestamp", text=str(int(timestamp)))
        doc.append(node, "value", text=value)

        return SignatureRecord(
            name=name,
            signer_ref=signer_ref,
            signer_label=signer_label,
            timestamp=int(timestamp),
            value=value,
        )

    def finalize(self) -> str:
        """Serialize the signature document to XML."""
        return self._document.serialize()

    @classmethod
    def from_string(cls, text: str) -> "SignatureDocument":
        """
        Load a signature document from XML text.

        Raises:
            InvalidArgument: If the text is not a signature document
        """
        document = StructuredDocument.load_from_text(text)
        if document.root.tag != cls.ROOT_TAG:
            raise InvalidArgument(f"Not a signature document: <{document.root.tag}>")
        signature_doc = cls()
        signature_doc._document = document
        return signature_doc
