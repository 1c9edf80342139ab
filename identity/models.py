"""
Identity Data Models

Value objects describing the subject of an Intelligible Identity and the
references (issuer, DID document, software, smart contract...) its metadata
document points to.
"""

from typing import Dict, List, Optional

from pydantic import BaseModel, Field

# Reserved reference keys every identity must carry
IID = "iid"
IID_DID_DOC = "iidDIDDoc"
IID_ISSUER = "iidIssuer"
REQUIRED_REFERENCES = (IID, IID_DID_DOC, IID_ISSUER)

DEFAULT_REFERENCE_TYPE = "TLCReference"


class ComponentData(BaseModel):
    """One component entry of a FRBR descriptor (e.g. main document, DID document)."""
    e_id: str = Field(..., description="Element id of the component")
    href: str = Field(..., description="Locator of the component")
    name: str = Field(..., description="Component name")
    show_as: Optional[str] = Field(None, description="Display label")


class FRBRDescriptor(BaseModel):
    """
    Bibliographic descriptor (Work, Expression or Manifestation).

    Locator fields left as None are synthesized from the identity date and
    subject DID when the metadata document is built.
    """
    this: Optional[str] = None
    uri: Optional[str] = None
    date: Optional[str] = None
    author: Optional[str] = None
    components: List[ComponentData] = Field(default_factory=list)


class BodySection(BaseModel):
    """Caller-supplied section of the document body."""
    title: str
    paragraphs: List[str] = Field(default_factory=list)


class IdentityInformation(BaseModel):
    """Personal information of the identity subject."""
    identity_date: str = Field(..., description="Issuance date, YYYY-MM-DD")
    did: str = Field(..., description="Subject identifier")
    frbr_work: FRBRDescriptor = Field(default_factory=FRBRDescriptor)
    frbr_expression: FRBRDescriptor = Field(default_factory=FRBRDescriptor)
    frbr_manifestation: FRBRDescriptor = Field(default_factory=FRBRDescriptor)
    additional_body: Dict[str, BodySection] = Field(default_factory=dict)


class Reference(BaseModel):
    """
    One named relationship of the identity.

    e_id and show_as default to "#<key>" and "<key>" once the reference is
    placed in a metadata document; href is usually a content-addressed
    locator filled in after the referenced file is hashed.
    """
    entity: str = Field(..., description="Entity label shown in the document body")
    type: Optional[str] = Field(None, description="Akoma Ntoso TLC element name")
    e_id: Optional[str] = Field(None, description="Element reference, e.g. #iidIssuer")
    show_as: Optional[str] = Field(None, description="Display label")
    href: Optional[str] = Field(None, description="Resolvable locator")


References = Dict[str, Reference]
