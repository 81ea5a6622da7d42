"""Typed vector index records.

The vector index only understands flat string-keyed metadata. Inside the
engine the metadata is carried as VectorMetadata with a typed ChunkTag and is
flattened by to_payload() / restored by from_payload() at the client boundary.
"""

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field


class MedicineTag(BaseModel):
    type: Literal["medicine"] = "medicine"


class DiseaseTag(BaseModel):
    type: Literal["disease"] = "disease"


class PatientTag(BaseModel):
    """Marks a chunk as patient data. Excluded from general retrieval."""

    type: Literal["patient"] = "patient"
    patient_id: str


ChunkTag = Annotated[Union[MedicineTag, DiseaseTag, PatientTag], Field(discriminator="type")]

GENERAL_TAG_TYPES: tuple[str, ...] = ("medicine", "disease")


def tag_from_subtype(subtype: Any) -> MedicineTag | DiseaseTag:
    """Map a document rag subtype ("MEDICINE" / "DISEASE") to its tag. Defaults to medicine."""
    value = getattr(subtype, "value", subtype)
    if isinstance(value, str) and value.lower() == "disease":
        return DiseaseTag()
    return MedicineTag()


class VectorMetadata(BaseModel):
    """Metadata stored alongside each child vector.

    Holds a reference to the parent chunk, never the parent text itself.

    Attributes:
        document_id:      Owning document.
        document_title:   Human-readable title for display.
        parent_chunk_id:  Relational id of the parent chunk.
        child_text:       Text of this child chunk.
        parent_index:     Zero-based parent position within the document.
        child_index:      Zero-based child position within the parent.
        tag:              Category of the chunk, patient tags carry the patient id.
    """

    document_id: str
    document_title: str
    parent_chunk_id: str
    child_text: str
    parent_index: int
    child_index: int
    tag: ChunkTag = Field(default_factory=MedicineTag)

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "documentId": self.document_id,
            "documentTitle": self.document_title,
            "parentChunkId": self.parent_chunk_id,
            "childText": self.child_text,
            "parentIndex": self.parent_index,
            "childIndex": self.child_index,
            "type": self.tag.type,
        }
        if isinstance(self.tag, PatientTag):
            payload["patient"] = True
            payload["patientId"] = self.tag.patient_id
        return payload

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "VectorMetadata":
        """Restore typed metadata from a flat payload.

        Raises:
            ValueError: If the parent chunk reference is missing or null, or the tag is unknown.
        """
        tag_type = payload.get("type") or "medicine"
        if tag_type == "patient":
            tag: Any = PatientTag(patient_id=str(payload.get("patientId") or ""))
        elif tag_type == "disease":
            tag = DiseaseTag()
        elif tag_type == "medicine":
            tag = MedicineTag()
        else:
            raise ValueError(f"Unknown chunk tag type '{tag_type}'.")
        parent_chunk_id = payload.get("parentChunkId")
        if parent_chunk_id is None or not str(parent_chunk_id).strip():
            raise ValueError("Vector payload has no parent chunk reference.")
        return cls(
            document_id=str(payload.get("documentId") or ""),
            document_title=str(payload.get("documentTitle") or ""),
            parent_chunk_id=str(parent_chunk_id),
            child_text=str(payload.get("childText") or ""),
            parent_index=int(payload.get("parentIndex") or 0),
            child_index=int(payload.get("childIndex") or 0),
            tag=tag,
        )


class VectorEntry(BaseModel):
    """A vector ready to be upserted. id is the engine-independent vector key."""

    id: str
    vector: list[float]
    metadata: VectorMetadata


class ChildHit(BaseModel):
    """A single ranked hit returned by a vector index query. metadata is None when not requested."""

    id: str
    score: float
    metadata: VectorMetadata | None = None


class SearchFilter(BaseModel):
    """Engine-independent query filter.

    Attributes:
        tag_types:   Allowed tag types. Empty means no restriction.
        patient_id:  Restrict to the patient data of one patient.
    """

    tag_types: list[str] = []
    patient_id: str | None = None

    @classmethod
    def general(cls, tag_types: list[str] | None = None) -> "SearchFilter":
        """Filter for general retrieval. Patient data can never be selected."""
        allowed = [t for t in (tag_types or GENERAL_TAG_TYPES) if t in GENERAL_TAG_TYPES]
        return cls(tag_types=allowed or list(GENERAL_TAG_TYPES))

    @classmethod
    def for_patient(cls, patient_id: str) -> "SearchFilter":
        return cls(tag_types=["patient"], patient_id=patient_id)
